from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import Optional
from ..utils import validate_time_str

class FeedingUnit(str, Enum):
    cups  = "cups"
    grams = "grams"
    oz    = "oz"

class FeedingScheduleCreate(BaseModel):
    time_of_day: str = Field(..., description="Hora HH:MM (24h)")
    food_type: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., ge=0)
    unit: FeedingUnit = FeedingUnit.cups
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("time_of_day")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_str(v)

    class Config:
        use_enum_values = True

FeedingScheduleUpdate = FeedingScheduleCreate

class FeedingScheduleOut(BaseModel):
    id: str
    pet_id: str
    owner_id: str
    time_of_day: str
    food_type: str
    amount: float
    unit: FeedingUnit
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
