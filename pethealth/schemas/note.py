from pydantic import BaseModel, Field
from typing import Optional, Literal

NoteCategory = Literal["behavior", "health", "general", "emergency"]

class NoteCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    content: str = Field(..., min_length=1, max_length=2000)
    category: NoteCategory = "general"

NoteUpdate = NoteCreate

class NoteOut(BaseModel):
    id: str
    pet_id: str
    owner_id: str
    title: str
    content: str
    category: Optional[NoteCategory] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
