from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from ..db import get_db
from ..ownership import get_owned_pet
from ..realtime import ChangeBus, get_bus, CHILD_SORTS
from ..records import list_records, get_record, create_record, update_record, delete_record
from ..schemas.feeding import FeedingScheduleCreate, FeedingScheduleUpdate, FeedingScheduleOut

router = APIRouter()
COLLECTION = "feeding_schedules"

@router.get("", response_model=List[FeedingScheduleOut])
async def list_feeding_schedules(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_records(db, COLLECTION, pet["owner_id"], str(pet["_id"]), CHILD_SORTS[COLLECTION])

@router.post("", response_model=FeedingScheduleOut, status_code=status.HTTP_201_CREATED)
async def create_feeding_schedule(
    payload: FeedingScheduleCreate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    return await create_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), payload.model_dump())

@router.get("/{schedule_id}", response_model=FeedingScheduleOut)
async def get_feeding_schedule(
    schedule_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_record(db, COLLECTION, pet["owner_id"], str(pet["_id"]), schedule_id)

@router.put("/{schedule_id}", response_model=FeedingScheduleOut)
async def update_feeding_schedule(
    schedule_id: str,
    payload: FeedingScheduleUpdate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    return await update_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), schedule_id, payload.model_dump())

@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_feeding_schedule(
    schedule_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    await delete_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), schedule_id)
    return None
