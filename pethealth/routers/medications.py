from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from ..db import get_db
from ..ownership import get_owned_pet
from ..realtime import ChangeBus, get_bus, CHILD_SORTS
from ..records import list_records, get_record, create_record, update_record, delete_record
from ..insights import medication_badge
from ..schemas.medication import MedicationIn, MedicationOut, medication_document

router = APIRouter()
COLLECTION = "medications"

def _to_out(rec: dict) -> dict:
    rec["badge"] = medication_badge(rec)
    return rec

@router.get("", response_model=List[MedicationOut])
async def list_medications(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    docs = await list_records(db, COLLECTION, pet["owner_id"], str(pet["_id"]), CHILD_SORTS[COLLECTION])
    return [_to_out(d) for d in docs]

@router.post("", response_model=MedicationOut, status_code=status.HTTP_201_CREATED)
async def create_medication(
    payload: MedicationIn,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    rec = await create_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), medication_document(payload.root))
    return _to_out(rec)

@router.get("/{medication_id}", response_model=MedicationOut)
async def get_medication(
    medication_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return _to_out(await get_record(db, COLLECTION, pet["owner_id"], str(pet["_id"]), medication_id))

@router.put("/{medication_id}", response_model=MedicationOut)
async def update_medication(
    medication_id: str,
    payload: MedicationIn,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    """Cambiar de estado reescribe los campos que dependen de él (end_date / next_due_date)."""
    rec = await update_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), medication_id, medication_document(payload.root))
    return _to_out(rec)

@router.delete("/{medication_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medication(
    medication_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    await delete_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), medication_id)
    return None
