from pydantic import BaseModel, Field, field_validator
from typing import Optional
from ..utils import validate_date_str

class PetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    species: str = Field(..., min_length=1, max_length=50)
    breed: Optional[str] = Field(None, max_length=80)
    birth_date: str = Field(..., description="Fecha de nacimiento YYYY-MM-DD")

    @field_validator("name", "species")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Campo obligatorio")
        return v

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: str) -> str:
        return validate_date_str(v)

# El diálogo de edición envía el formulario completo
PetUpdate = PetCreate

class PetOut(BaseModel):
    id: str
    owner_id: str
    name: str
    species: str
    breed: Optional[str] = None
    birth_date: str
    image_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
