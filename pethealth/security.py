from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
import hashlib
import hmac

from .config import get_settings
from .db import get_db
from .utils import to_id

settings = get_settings()
ALGO = "HS256"
pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")
# auto_error=False: el token también puede llegar en la cookie de sesión
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(plain: str) -> str:
    return pwd.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd.verify(plain, hashed)


def create_access_token(user_id: str, expires_hours: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours or settings.jwt_expires_hours)
    payload = {"sub": user_id, "exp": expire, "typ": "access"}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGO)


def password_fingerprint(password_hash: str) -> str:
    """HMAC del hash: cambia con la contraseña sin exponer el hash en el token."""
    return hmac.new(settings.jwt_secret.encode(), password_hash.encode(), hashlib.sha256).hexdigest()[:16]


def create_reset_token(user_id: str, password_hash: str) -> str:
    """Token de un solo uso: deja de valer en cuanto cambia la contraseña."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.reset_token_minutes)
    payload = {"sub": user_id, "exp": expire, "typ": "reset", "pwh": password_fingerprint(password_hash)}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGO)


def decode_token(token: str, expected_type: str = "access") -> Optional[dict]:
    """Devuelve el payload o None si el token es inválido, ha caducado o no es del tipo esperado."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except JWTError:
        return None
    if payload.get("typ", "access") != expected_type or not payload.get("sub"):
        return None
    return payload


def user_id_from_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    payload = decode_token(token)
    return str(payload["sub"]) if payload else None


async def get_current_user_id(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> str:
    # Authorization: Bearer tiene prioridad sobre la cookie espejo
    token = token or request.cookies.get(settings.session_cookie_name)
    if not token:
        raise HTTPException(status_code=401, detail="No autenticado", headers={"WWW-Authenticate": "Bearer"})
    user_id = user_id_from_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Token inválido")
    return user_id


async def get_current_user(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    if not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Token inválido")
    doc = await db.users.find_one({"_id": ObjectId(user_id)})
    if not doc:
        raise HTTPException(status_code=401, detail="Usuario no encontrado")
    return to_id(doc)
