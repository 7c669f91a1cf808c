from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from ..db import get_db
from ..ownership import get_owned_pet
from ..realtime import ChangeBus, get_bus, CHILD_SORTS
from ..records import list_records, get_record, create_record, update_record, delete_record
from ..schemas.weight import WeightCreate, WeightUpdate, WeightOut

router = APIRouter()
COLLECTION = "weights"

@router.get("", response_model=List[WeightOut])
async def list_weights(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_records(db, COLLECTION, pet["owner_id"], str(pet["_id"]), CHILD_SORTS[COLLECTION])

@router.post("", response_model=WeightOut, status_code=status.HTTP_201_CREATED)
async def create_weight(
    payload: WeightCreate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    return await create_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), payload.model_dump())

@router.get("/{weight_id}", response_model=WeightOut)
async def get_weight(
    weight_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_record(db, COLLECTION, pet["owner_id"], str(pet["_id"]), weight_id)

@router.put("/{weight_id}", response_model=WeightOut)
async def update_weight(
    weight_id: str,
    payload: WeightUpdate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    return await update_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), weight_id, payload.model_dump())

@router.delete("/{weight_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_weight(
    weight_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    await delete_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), weight_id)
    return None
