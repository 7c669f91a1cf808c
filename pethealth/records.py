# pethealth/records.py
"""
Operaciones comunes de los registros que cuelgan de una mascota (citas,
medicaciones, pesos, comidas, notas). Los routers llaman aquí después de la
guardia de propiedad; todas las escrituras filtran además por owner_id y
pet_id, así que un id de otro usuario nunca coincide.
"""
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
import logging

from .realtime import ChangeBus, SortSpec, publish_delete, publish_upsert, sort_records
from .utils import to_id, utcnow

logger = logging.getLogger(__name__)


def _scope(owner_id: str, pet_id: str) -> dict:
    return {"owner_id": owner_id, "pet_id": pet_id}


def _record_oid(record_id: str) -> ObjectId:
    if not ObjectId.is_valid(record_id):
        raise HTTPException(status_code=404, detail="Registro no encontrado")
    return ObjectId(record_id)


async def list_records(db: AsyncIOMotorDatabase, collection: str, owner_id: str, pet_id: str, sort: SortSpec) -> list[dict]:
    docs = await db[collection].find(_scope(owner_id, pet_id)).to_list(None)
    return sort_records([to_id(d) for d in docs], sort)


async def get_record(db: AsyncIOMotorDatabase, collection: str, owner_id: str, pet_id: str, record_id: str) -> dict:
    doc = await db[collection].find_one({"_id": _record_oid(record_id), **_scope(owner_id, pet_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Registro no encontrado")
    return to_id(doc)


async def create_record(db: AsyncIOMotorDatabase, bus: ChangeBus, collection: str, owner_id: str, pet_id: str, data: dict) -> dict:
    now = utcnow()
    doc = {**data, **_scope(owner_id, pet_id), "created_at": now, "updated_at": now}
    res = await db[collection].insert_one(doc)
    created = await db[collection].find_one({"_id": res.inserted_id})
    await publish_upsert(bus, collection, created)
    logger.info("%s %s creado para la mascota %s", collection, res.inserted_id, pet_id)
    return to_id(created)


async def update_record(
    db: AsyncIOMotorDatabase, bus: ChangeBus, collection: str, owner_id: str, pet_id: str, record_id: str, data: dict
) -> dict:
    oid = _record_oid(record_id)
    # los campos de propiedad nunca vienen del formulario
    data = {k: v for k, v in data.items() if k not in ("_id", "id", "owner_id", "pet_id", "created_at")}
    result = await db[collection].update_one(
        {"_id": oid, **_scope(owner_id, pet_id)},
        {"$set": {**data, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Registro no encontrado")
    updated = await db[collection].find_one({"_id": oid})
    await publish_upsert(bus, collection, updated)
    return to_id(updated)


async def delete_record(db: AsyncIOMotorDatabase, bus: ChangeBus, collection: str, owner_id: str, pet_id: str, record_id: str) -> None:
    result = await db[collection].delete_one({"_id": _record_oid(record_id), **_scope(owner_id, pet_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Registro no encontrado")
    await publish_delete(bus, collection, owner_id, record_id)
