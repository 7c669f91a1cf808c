from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from ..db import get_db
from ..ownership import get_owned_pet
from ..realtime import ChangeBus, get_bus, CHILD_SORTS
from ..records import list_records, get_record, create_record, update_record, delete_record
from ..schemas.note import NoteCreate, NoteUpdate, NoteOut

router = APIRouter()
COLLECTION = "notes"

@router.get("", response_model=List[NoteOut])
async def list_notes(
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await list_records(db, COLLECTION, pet["owner_id"], str(pet["_id"]), CHILD_SORTS[COLLECTION])

@router.post("", response_model=NoteOut, status_code=status.HTTP_201_CREATED)
async def create_note(
    payload: NoteCreate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    return await create_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), payload.model_dump())

@router.get("/{note_id}", response_model=NoteOut)
async def get_note(
    note_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_record(db, COLLECTION, pet["owner_id"], str(pet["_id"]), note_id)

@router.put("/{note_id}", response_model=NoteOut)
async def update_note(
    note_id: str,
    payload: NoteUpdate,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    return await update_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), note_id, payload.model_dump())

@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: str,
    pet=Depends(get_owned_pet),
    db: AsyncIOMotorDatabase = Depends(get_db),
    bus: ChangeBus = Depends(get_bus),
):
    await delete_record(db, bus, COLLECTION, pet["owner_id"], str(pet["_id"]), note_id)
    return None
