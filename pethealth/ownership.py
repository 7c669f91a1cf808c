# pethealth/ownership.py
"""
Guardia de propiedad: antes de leer, suscribirse o escribir cualquier registro
que cuelga de una mascota, se comprueba que la mascota es del usuario.
Falla en cerrado: id mal formado, mascota inexistente o de otro dueño
producen el mismo OwnershipError.
"""
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
import logging

from .db import get_db
from .security import get_current_user

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/dashboard"


class OwnershipError(Exception):
    """El usuario no es dueño de la mascota (o la mascota no existe)."""

    def __init__(self, pet_id: str, reason: str = "not_owner"):
        super().__init__(f"Acceso denegado a la mascota {pet_id} ({reason})")
        self.pet_id = pet_id
        self.reason = reason
        self.redirect = DASHBOARD_PATH


async def verify_pet_ownership(db: AsyncIOMotorDatabase, user_id: str, pet_id: str) -> dict:
    """Lee la mascota una vez y devuelve el documento si pertenece a user_id."""
    if not ObjectId.is_valid(pet_id):
        raise OwnershipError(pet_id, "invalid_id")
    pet = await db.pets.find_one({"_id": ObjectId(pet_id)})
    if not pet:
        raise OwnershipError(pet_id, "not_found")
    if str(pet.get("owner_id")) != user_id:
        logger.warning("Usuario %s intentó acceder a la mascota %s", user_id, pet_id)
        raise OwnershipError(pet_id, "not_owner")
    return pet


async def get_owned_pet(
    pet_id: str,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> dict:
    """Dependencia para rutas /pets/{pet_id}/..."""
    return await verify_pet_ownership(db, current["id"], pet_id)
