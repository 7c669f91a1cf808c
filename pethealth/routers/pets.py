from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from typing import List
import logging

from ..db import get_db, CHILD_COLLECTIONS
from ..security import get_current_user
from ..ownership import get_owned_pet
from ..realtime import ChangeBus, get_bus, publish_upsert, publish_delete, publish_purge, sort_records, PETS_SORT
from ..schemas.pet import PetCreate, PetUpdate, PetOut
from ..storage import save_pet_image, delete_pet_image
from ..utils import to_id, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("", response_model=List[PetOut])
async def my_pets(
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    docs = await db.pets.find({"owner_id": current["id"]}).to_list(None)
    return sort_records([to_id(d) for d in docs], PETS_SORT)

@router.post("", response_model=PetOut, status_code=status.HTTP_201_CREATED)
async def create_pet(
    payload: PetCreate,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    now = utcnow()
    doc = payload.model_dump()
    doc["owner_id"] = current["id"]     # lo pone el backend
    doc["image_url"] = None
    doc["created_at"] = now
    doc["updated_at"] = now
    res = await db.pets.insert_one(doc)
    doc["_id"] = res.inserted_id
    await publish_upsert(bus, "pets", doc)
    return to_id(doc)

@router.get("/{pet_id}", response_model=PetOut)
async def get_pet(pet=Depends(get_owned_pet)):
    return to_id(pet)

@router.put("/{pet_id}", response_model=PetOut)
async def update_pet(
    payload: PetUpdate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    await db.pets.update_one(
        {"_id": pet["_id"], "owner_id": pet["owner_id"]},
        {"$set": {**payload.model_dump(), "updated_at": utcnow()}},
    )
    updated = await db.pets.find_one({"_id": pet["_id"]})
    await publish_upsert(bus, "pets", updated)
    return to_id(updated)

@router.put("/{pet_id}/image", response_model=PetOut)
async def upload_pet_image(
    file: UploadFile = File(...),
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    owner_id = pet["owner_id"]
    url = await save_pet_image(file, owner_id)
    try:
        await db.pets.update_one(
            {"_id": pet["_id"], "owner_id": owner_id},
            {"$set": {"image_url": url, "updated_at": utcnow()}},
        )
    except PyMongoError:
        # sin documento que la referencie, la imagen nueva sobra
        delete_pet_image(url, owner_id)
        raise

    # la anterior solo se borra cuando el documento ya apunta a la nueva
    old_url = pet.get("image_url")
    if old_url and old_url != url:
        delete_pet_image(old_url, owner_id)

    updated = await db.pets.find_one({"_id": pet["_id"]})
    await publish_upsert(bus, "pets", updated)
    return to_id(updated)

@router.delete("/{pet_id}/image", response_model=PetOut)
async def remove_pet_image(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    if not pet.get("image_url"):
        raise HTTPException(status_code=404, detail="La mascota no tiene imagen")
    await db.pets.update_one(
        {"_id": pet["_id"], "owner_id": pet["owner_id"]},
        {"$set": {"image_url": None, "updated_at": utcnow()}},
    )
    delete_pet_image(pet["image_url"], pet["owner_id"])
    updated = await db.pets.find_one({"_id": pet["_id"]})
    await publish_upsert(bus, "pets", updated)
    return to_id(updated)

@router.delete("/{pet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pet(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    owner_id = pet["owner_id"]
    pet_id = str(pet["_id"])
    result = await db.pets.delete_one({"_id": pet["_id"], "owner_id": owner_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Mascota no encontrada")
    await publish_delete(bus, "pets", owner_id, pet_id)

    scope = {"owner_id": owner_id, "pet_id": pet_id}
    for name in CHILD_COLLECTIONS:
        await db[name].delete_many(scope)
        await publish_purge(bus, name, owner_id, scope)

    # borra fichero en disco (best effort)
    delete_pet_image(pet.get("image_url"), owner_id)
    logger.info("Mascota %s eliminada por %s", pet_id, owner_id)
    return None
