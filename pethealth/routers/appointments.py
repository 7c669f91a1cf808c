from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from ..db import get_db
from ..ownership import get_owned_pet
from ..realtime import ChangeBus, get_bus, CHILD_SORTS
from ..records import list_records, get_record, create_record, update_record, delete_record
from ..insights import appointment_label
from ..schemas.appointment import AppointmentCreate, AppointmentUpdate, AppointmentOut

router = APIRouter()
COLLECTION = "appointments"

def _to_out(rec: dict) -> dict:
    rec["display_type"] = appointment_label(rec)
    return rec

@router.get("", response_model=List[AppointmentOut])
async def list_appointments(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    docs = await list_records(db, COLLECTION, pet["owner_id"], str(pet["_id"]), CHILD_SORTS[COLLECTION])
    return [_to_out({**d, "pet_name": pet.get("name")}) for d in docs]

@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    rec = await create_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), payload.model_dump())
    return _to_out(rec)

@router.get("/{appointment_id}", response_model=AppointmentOut)
async def get_appointment(
    appointment_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return _to_out(await get_record(db, COLLECTION, pet["owner_id"], str(pet["_id"]), appointment_id))

@router.put("/{appointment_id}", response_model=AppointmentOut)
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    rec = await update_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), appointment_id, payload.model_dump())
    return _to_out(rec)

@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    await delete_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), appointment_id)
    return None
