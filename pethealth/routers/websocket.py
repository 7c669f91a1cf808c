# pethealth/routers/websocket.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from typing import Dict, Optional, Set
import logging

from ..db import get_db
from ..config import get_settings
from ..ownership import OwnershipError
from ..realtime import ChangeBus, SessionContext, get_bus
from ..security import user_id_from_token

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

class ConnectionManager:
    """Conexiones activas por usuario (un usuario puede tener varias pestañas)."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self.active_connections.setdefault(user_id, set()).add(websocket)

    def disconnect(self, websocket: WebSocket, user_id: str):
        conns = self.active_connections.get(user_id)
        if conns is None:
            return
        conns.discard(websocket)
        if not conns:
            del self.active_connections[user_id]

manager = ConnectionManager()

def _error(code: str, message: str, sub_id: Optional[str] = None, **extra) -> dict:
    return {"type": "error", "id": sub_id, "code": code, "message": message, **extra}

async def handle_message(session: SessionContext, data: dict) -> Optional[dict]:
    """Procesa un mensaje del cliente. Devuelve una respuesta directa o None."""
    message_type = data.get("type")
    sub_id = data.get("id")

    if message_type == "ping":
        return {"type": "pong"}

    if message_type == "unsubscribe":
        if not sub_id or not session.unsubscribe(str(sub_id)):
            return _error("invalid_request", "Suscripción desconocida", sub_id)
        return {"type": "unsubscribed", "id": sub_id}

    if message_type == "subscribe":
        kind = data.get("collection")
        if not sub_id or not kind:
            return _error("invalid_request", "Faltan campos requeridos", sub_id)
        try:
            # el primer snapshot lo envía la propia sesión
            await session.subscribe(str(sub_id), kind, data.get("pet_id"))
        except OwnershipError as e:
            return _error("access_denied", "Acceso denegado", sub_id, redirect=e.redirect)
        except ValueError as e:
            return _error("invalid_request", str(e), sub_id)
        except PyMongoError as e:
            logger.error(f"Error abriendo suscripción {kind}: {e}", exc_info=True)
            return _error("unavailable", "No se pudieron cargar los datos. Inténtalo de nuevo.", sub_id)
        return None

    return _error("invalid_request", f"Tipo de mensaje desconocido: {message_type}", sub_id)

@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    """
    Suscripciones en vivo. El token va en ?token= o en la cookie de sesión.
    Cada mensaje 'snapshot' trae el resultado completo de la suscripción.
    """
    user_id = user_id_from_token(token or websocket.cookies.get(settings.session_cookie_name))
    if not user_id:
        await websocket.close(code=1008, reason="Invalid token")
        return

    await manager.connect(websocket, user_id)

    async def close_socket():
        await websocket.close(code=1000, reason="Signed out")

    session = SessionContext(db, user_id, bus, send=websocket.send_json, on_signout=close_socket)
    try:
        async with session:
            await websocket.send_json({"type": "connected", "user_id": user_id})
            while not session.signed_out:
                data = await websocket.receive_json()
                if not isinstance(data, dict):
                    await websocket.send_json(_error("invalid_request", "Mensaje inválido"))
                    continue
                reply = await handle_message(session, data)
                if reply is not None:
                    await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    except RuntimeError:
        # receive tras el cierre por logout
        if not session.signed_out:
            logger.error("WebSocket cerrado inesperadamente", exc_info=True)
    except Exception as e:
        logger.error(f"Error en WebSocket: {e}", exc_info=True)
    finally:
        manager.disconnect(websocket, user_id)
