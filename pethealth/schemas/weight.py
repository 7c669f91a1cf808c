from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import Optional
from ..utils import validate_date_str

class WeightUnit(str, Enum):
    lbs = "lbs"
    kg  = "kg"

class WeightCreate(BaseModel):
    weight: float = Field(..., gt=0, description="Peso (mayor que 0)")
    unit: WeightUnit = WeightUnit.lbs
    date: str
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return validate_date_str(v)

    class Config:
        use_enum_values = True

WeightUpdate = WeightCreate

class WeightOut(BaseModel):
    id: str
    pet_id: str
    owner_id: str
    weight: float
    unit: WeightUnit
    date: str
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
