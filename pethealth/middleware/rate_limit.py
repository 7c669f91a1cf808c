"""
Rate limiting por endpoint usando slowapi
"""
from fastapi import Request, HTTPException
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from limits import parse

def apply_rate_limit(request: Request, limit: str):
    """
    Aplica rate limiting a un endpoint específico.
    Uso: apply_rate_limit(request, "5/minute")

    Si el limiter no está configurado (por ejemplo, en tests), la función no hace nada.
    """
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is None:
        return

    key = f"{request.url.path}:{get_remote_address(request)}"
    item = parse(limit)
    try:
        allowed = limiter.limiter.hit(item, key)
    except RateLimitExceeded:
        allowed = False
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Demasiadas solicitudes. Límite: {limit}. Intenta más tarde."
        )
