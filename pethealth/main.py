from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.staticfiles import StaticFiles
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from pymongo.errors import PyMongoError
import logging

from .config import get_settings
from .ownership import OwnershipError
from .middleware.routing import route_guard
from .routers import auth, pets, appointments, medications, weights, feeding, notes, views, websocket

# Configurar logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Configurar rate limiting
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(title=settings.app_name)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.mount("/media", StaticFiles(directory=settings.media_dir), name="media")

def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api")

@app.exception_handler(OwnershipError)
async def ownership_error_handler(request: Request, exc: OwnershipError):
    """Acceso denegado: 403 en la API, redirección al dashboard en las páginas."""
    if _is_api(request):
        return JSONResponse(
            status_code=403,
            content={
                "detail": "Acceso denegado",
                "redirect": exc.redirect,
                "notification": {
                    "variant": "destructive",
                    "title": "Acceso denegado",
                    "description": "No tienes permiso para ver esta mascota.",
                },
            },
        )
    return RedirectResponse(f"{exc.redirect}?notice=access-denied", status_code=303)

@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Error de base de datos en {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=503,
        content={
            "detail": "Servicio no disponible",
            "notification": {
                "variant": "destructive",
                "title": "Error",
                "description": "No se pudo completar la operación. Inténtalo de nuevo.",
                "dismissible": True,
            },
        },
    )

# Configuración de CORS según entorno
if settings.env == "dev":
    cors_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    cors_regex = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"
    cors_headers = ["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"]
else:
    # Producción: solo el frontend configurado
    frontend_url = settings.frontend_base_url
    cors_origins = [frontend_url] if frontend_url else []
    cors_regex = None
    cors_headers = ["Authorization", "Content-Type", "Accept"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_origin_regex=cors_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=cors_headers,
    expose_headers=["Content-Type"],
)
app.middleware("http")(route_guard)

@app.get("/health")
async def health():
    return {"status": "ok", "env": settings.env}

# API
PET_SCOPE = "/api/pets/{pet_id}"
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(pets.router, prefix="/api/pets", tags=["pets"])
app.include_router(appointments.router, prefix=f"{PET_SCOPE}/appointments", tags=["appointments"])
app.include_router(medications.router, prefix=f"{PET_SCOPE}/medications", tags=["medications"])
app.include_router(weights.router, prefix=f"{PET_SCOPE}/weights", tags=["weights"])
app.include_router(feeding.router, prefix=f"{PET_SCOPE}/feeding-schedules", tags=["feeding"])
app.include_router(notes.router, prefix=f"{PET_SCOPE}/notes", tags=["notes"])
app.include_router(websocket.router, tags=["websocket"])

# Páginas
app.include_router(views.router, tags=["views"])
