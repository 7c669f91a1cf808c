from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from pydantic import BaseModel, EmailStr, Field, field_validator
from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime, timedelta, timezone
from bson import ObjectId
import hashlib
import hmac
import httpx
import re
import secrets
import logging

from ..db import get_db
from ..config import get_settings
from ..security import (
    hash_password, verify_password, create_access_token, create_reset_token,
    decode_token, get_current_user, password_fingerprint,
)
from ..realtime import ChangeBus, get_bus, publish_signout
from ..schemas.user import UserOut, UserUpdateMe, TokenOut
from ..utils import to_id, utcnow
from ..middleware.rate_limit import apply_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
MAX_PHONE_ATTEMPTS = 5

# Validadores personalizados
def validate_phone(phone: str) -> str:
    """Valida formato de teléfono internacional (permite espacios y guiones)"""
    cleaned = re.sub(r'[\s\-]', '', phone or "")
    if not re.match(r'^\+\d{9,15}$', cleaned):
        raise ValueError("Formato de teléfono inválido. Use formato internacional (ej: +34600123456)")
    return cleaned

def validate_password_strength(password: str) -> str:
    if len(password) < 6:
        raise ValueError("La contraseña debe tener al menos 6 caracteres")
    if len(password) > 72:  # Límite de bcrypt
        raise ValueError("La contraseña no puede exceder 72 caracteres")
    return password

class Signup(BaseModel):
    email: EmailStr = Field(..., description="Email válido")
    password: str = Field(..., min_length=6, max_length=72, description="Contraseña (mín. 6 caracteres)")
    display_name: str | None = Field(None, max_length=50, description="Nombre visible")

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)

class Login(BaseModel):
    email: EmailStr = Field(..., description="Email del usuario")
    password: str = Field(..., min_length=1, description="Contraseña")

class GoogleLogin(BaseModel):
    id_token: str = Field(..., min_length=10)

class PhoneStart(BaseModel):
    phone: str

    @field_validator('phone')
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return validate_phone(v)

class PhoneConfirm(BaseModel):
    verification_id: str = Field(..., pattern=r"^[0-9a-fA-F]{24}$")
    code: str = Field(..., pattern=r"^\d{6}$")

class PasswordResetRequest(BaseModel):
    email: EmailStr

class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6, max_length=72)

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)

# ---------- Sesión ----------

def _start_session(response: Response, user_id: str) -> dict:
    """Emite el token y lo refleja en la cookie que lee el middleware de rutas."""
    token = create_access_token(user_id)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.jwt_expires_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.env != "dev",
        path="/",
    )
    return {"access_token": token, "token_type": "bearer"}

def _hash_code(code: str) -> str:
    return hmac.new(settings.jwt_secret.encode(), code.encode(), hashlib.sha256).hexdigest()

def _as_aware(dt: datetime) -> datetime:
    # Mongo devuelve datetimes naive en UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

# ---------- Email / contraseña ----------

@router.post("/signup", status_code=status.HTTP_201_CREATED, response_model=UserOut)
async def signup(request: Request, response: Response, payload: Signup, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 5 registros por minuto por IP
    apply_rate_limit(request, "5/minute")

    exists = await db.users.find_one({"email": payload.email})
    if exists:
        raise HTTPException(409, "Email ya registrado")

    doc = {
        "email": payload.email,
        "password_hash": hash_password(payload.password),
        "display_name": payload.display_name or payload.email.split("@")[0],
        "providers": ["password"],
        "created_at": utcnow(),
    }
    res = await db.users.insert_one(doc)
    _start_session(response, str(res.inserted_id))
    return to_id(await db.users.find_one({"_id": res.inserted_id}))

@router.post("/login", response_model=TokenOut)
async def login(request: Request, response: Response, payload: Login, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 10 intentos de login por minuto por IP
    apply_rate_limit(request, "10/minute")

    user = await db.users.find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(401, "Credenciales inválidas")
    return _start_session(response, str(user["_id"]))

# ---------- Google ----------

async def verify_google_id_token(id_token: str, transport: httpx.AsyncBaseTransport | None = None) -> dict:
    """Valida el ID token contra el endpoint tokeninfo de Google. Sin GOOGLE_CLIENT_ID no se acepta ninguno."""
    if not settings.google_client_id:
        logger.error("Login con Google sin GOOGLE_CLIENT_ID configurado")
        raise HTTPException(503, "El acceso con Google no está disponible")
    try:
        async with httpx.AsyncClient(timeout=10, transport=transport) as client:
            r = await client.get(GOOGLE_TOKENINFO_URL, params={"id_token": id_token})
    except httpx.HTTPError as e:
        logger.error(f"Error contactando con Google: {e}", exc_info=True)
        raise HTTPException(503, "No se pudo verificar con Google. Inténtalo de nuevo.")
    if r.status_code != 200:
        raise HTTPException(401, "Token de Google inválido")
    info = r.json()
    if info.get("aud") != settings.google_client_id:
        raise HTTPException(401, "Token de Google emitido para otra aplicación")
    if not info.get("sub"):
        raise HTTPException(401, "Token de Google inválido")
    return info

@router.post("/google", response_model=TokenOut)
async def login_google(request: Request, response: Response, payload: GoogleLogin, db: AsyncIOMotorDatabase = Depends(get_db)):
    apply_rate_limit(request, "10/minute")
    info = await verify_google_id_token(payload.id_token)

    user = await db.users.find_one({"google_sub": info["sub"]})
    if not user and info.get("email") and str(info.get("email_verified")).lower() == "true":
        # enlaza con una cuenta existente del mismo email
        user = await db.users.find_one({"email": info["email"]})
        if user:
            await db.users.update_one(
                {"_id": user["_id"]},
                {"$set": {"google_sub": info["sub"]}, "$addToSet": {"providers": "google"}},
            )
    if not user:
        doc = {
            "email": info.get("email"),
            "google_sub": info["sub"],
            "display_name": info.get("name") or (info.get("email") or "").split("@")[0] or None,
            "photo_url": info.get("picture"),
            "providers": ["google"],
            "created_at": utcnow(),
        }
        if not doc["email"]:
            # índice único sparse: sin email el campo no debe existir
            doc.pop("email")
        res = await db.users.insert_one(doc)
        user = {"_id": res.inserted_id}
    return _start_session(response, str(user["_id"]))

# ---------- Teléfono / SMS ----------

@router.post("/phone/start")
async def phone_start(request: Request, payload: PhoneStart, db: AsyncIOMotorDatabase = Depends(get_db)):
    apply_rate_limit(request, "3/minute")
    code = f"{secrets.randbelow(10**6):06d}"
    doc = {
        "phone": payload.phone,
        "code_hash": _hash_code(code),
        "attempts": 0,
        "expires_at": utcnow() + timedelta(minutes=settings.phone_code_ttl_minutes),
    }
    res = await db.phone_verifications.insert_one(doc)
    # No hay pasarela SMS: el envío queda en el log
    logger.info("Código de verificación para %s: %s", payload.phone, code)
    return {"verification_id": str(res.inserted_id)}

@router.post("/phone/confirm", response_model=TokenOut)
async def phone_confirm(request: Request, response: Response, payload: PhoneConfirm, db: AsyncIOMotorDatabase = Depends(get_db)):
    apply_rate_limit(request, "10/minute")
    oid = ObjectId(payload.verification_id)
    ver = await db.phone_verifications.find_one({"_id": oid})
    if not ver or _as_aware(ver["expires_at"]) < utcnow():
        raise HTTPException(400, "Código caducado o inexistente")
    if ver.get("attempts", 0) >= MAX_PHONE_ATTEMPTS:
        await db.phone_verifications.delete_one({"_id": oid})
        raise HTTPException(429, "Demasiados intentos")
    if not hmac.compare_digest(ver["code_hash"], _hash_code(payload.code)):
        await db.phone_verifications.update_one({"_id": oid}, {"$inc": {"attempts": 1}})
        raise HTTPException(400, "Código incorrecto")

    await db.phone_verifications.delete_one({"_id": oid})
    user = await db.users.find_one({"phone": ver["phone"]})
    if not user:
        res = await db.users.insert_one({
            "phone": ver["phone"],
            "providers": ["phone"],
            "display_name": None,
            "created_at": utcnow(),
        })
        user = {"_id": res.inserted_id}
    return _start_session(response, str(user["_id"]))

# ---------- Restablecer contraseña ----------

@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
async def password_reset(request: Request, payload: PasswordResetRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    apply_rate_limit(request, "3/minute")
    user = await db.users.find_one({"email": payload.email})
    # misma respuesta exista o no la cuenta
    if user and user.get("password_hash"):
        token = create_reset_token(str(user["_id"]), user["password_hash"])
        logger.info("Enlace de restablecimiento para %s: %s/reset-password?token=%s",
                    payload.email, settings.frontend_base_url, token)
    return {"status": "sent"}

@router.post("/password-reset/confirm", status_code=status.HTTP_204_NO_CONTENT)
async def password_reset_confirm(payload: PasswordResetConfirm, db: AsyncIOMotorDatabase = Depends(get_db)):
    data = decode_token(payload.token, expected_type="reset")
    if not data or not ObjectId.is_valid(data["sub"]):
        raise HTTPException(400, "Enlace inválido o caducado")
    user = await db.users.find_one({"_id": ObjectId(data["sub"])})
    if not user or not hmac.compare_digest(password_fingerprint(user.get("password_hash", "")), str(data.get("pwh", ""))):
        raise HTTPException(400, "Enlace inválido o caducado")
    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password)}},
    )
    return None

# ---------- Sesión actual ----------

@router.get("/me", response_model=UserOut)
async def me(current=Depends(get_current_user)):
    return current

@router.patch("/me", response_model=UserOut)
async def update_me(
    payload: UserUpdateMe,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    oid = ObjectId(current["id"])
    await db.users.update_one({"_id": oid}, {"$set": {"display_name": payload.display_name.strip()}})
    return to_id(await db.users.find_one({"_id": oid}))

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    response: Response,
    current=Depends(get_current_user),
    bus: ChangeBus = Depends(get_bus),
):
    response.delete_cookie(settings.session_cookie_name, path="/")
    # las conexiones en vivo del usuario se cierran al recibir el evento
    await publish_signout(bus, current["id"])
    return None
