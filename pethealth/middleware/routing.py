"""
Clasificación de rutas de página (públicas / protegidas / de auth) y
redirección de dispositivos móviles. Las rutas de API, websocket, media y
ficheros estáticos pasan sin tocar.
"""
from fastapi import Request
from fastapi.responses import RedirectResponse
from urllib.parse import urlencode
import re

from ..config import get_settings
from ..security import user_id_from_token

PUBLIC = "public"
AUTH = "auth"
PROTECTED = "protected"
OTHER = "other"
PASSTHROUGH = "passthrough"

PUBLIC_PATHS = ("/signin", "/signup", "/reset-password", "/mobile-not-supported")
AUTH_PATHS = ("/signin", "/signup")
PROTECTED_PATHS = ("/dashboard", "/settings", "/pets")
PASSTHROUGH_PREFIXES = ("/api", "/ws", "/media", "/static", "/health", "/docs", "/redoc", "/__/auth")

MOBILE_PATH = "/mobile-not-supported"
SIGNIN_PATH = "/signin"
DASHBOARD_PATH = "/dashboard"

# Teléfonos, no tablets
MOBILE_UA_RE = re.compile(
    r"Mobile|iP(hone|od)|Android.+Mobile|IEMobile|Windows Phone|BlackBerry|BB10|Opera Mini|"
    r"Opera Mobi|webOS|Kindle|Silk-Accelerated|Fennec|Mobile Safari|SymbianOS|Nokia",
    re.IGNORECASE,
)
TABLET_UA_RE = re.compile(r"iPad|Tablet|Nexus (7|9|10)|SM-T\d+", re.IGNORECASE)


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def is_mobile_user_agent(ua: str | None) -> bool:
    if not ua:
        return False
    if TABLET_UA_RE.search(ua):
        return False
    return bool(MOBILE_UA_RE.search(ua))


def classify_path(path: str) -> str:
    if path == "/favicon.ico" or "." in path.rsplit("/", 1)[-1]:
        return PASSTHROUGH
    if any(_matches(path, p) for p in PASSTHROUGH_PREFIXES):
        return PASSTHROUGH
    if any(_matches(path, p) for p in AUTH_PATHS):
        return AUTH
    if path == "/" or any(_matches(path, p) for p in PUBLIC_PATHS):
        return PUBLIC
    if any(_matches(path, p) for p in PROTECTED_PATHS):
        return PROTECTED
    return OTHER


def resolve_redirect(path: str, user_agent: str | None, authenticated: bool) -> str | None:
    """Devuelve la URL a la que redirigir o None para dejar pasar."""
    kind = classify_path(path)
    if kind == PASSTHROUGH:
        return None
    if is_mobile_user_agent(user_agent) and kind not in (PUBLIC, AUTH):
        return MOBILE_PATH
    if kind == AUTH and authenticated:
        return DASHBOARD_PATH
    if kind == PROTECTED and not authenticated:
        return f"{SIGNIN_PATH}?{urlencode({'redirect': path})}"
    return None


async def route_guard(request: Request, call_next):
    settings = get_settings()
    token = request.cookies.get(settings.session_cookie_name)
    target = resolve_redirect(
        request.url.path,
        request.headers.get("user-agent"),
        user_id_from_token(token) is not None,
    )
    if target is not None:
        return RedirectResponse(target, status_code=307)
    return await call_next(request)
