from pydantic import BaseModel, Field, ValidationInfo, field_validator
from enum import Enum
from typing import Optional
from ..utils import validate_date_str, validate_time_str

class AppointmentType(str, Enum):
    checkup     = "checkup"
    grooming    = "grooming"
    emergency   = "emergency"
    vaccination = "vaccination"
    other       = "other"

class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"

class AppointmentCreate(BaseModel):
    # "type" va antes que custom_type: el validador de custom_type lo necesita ya validado
    type: AppointmentType = AppointmentType.checkup
    custom_type: Optional[str] = Field(None, max_length=50, validate_default=True)
    date: str
    time: str
    vet_name: Optional[str] = Field(None, max_length=100)
    clinic: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)
    status: AppointmentStatus = AppointmentStatus.scheduled

    @field_validator("custom_type")
    @classmethod
    def require_custom_type(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Si el tipo es 'other' hay que especificarlo"""
        v = (v or "").strip() or None
        if info.data.get("type") == AppointmentType.other:
            if not v:
                raise ValueError("Indica el tipo de cita")
            return v
        return None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return validate_date_str(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_str(v)

    class Config:
        use_enum_values = True

AppointmentUpdate = AppointmentCreate

class AppointmentOut(BaseModel):
    id: str
    pet_id: str
    owner_id: str
    type: AppointmentType
    custom_type: Optional[str] = None
    display_type: str
    date: str
    time: str
    vet_name: Optional[str] = None
    clinic: Optional[str] = None
    notes: Optional[str] = None
    status: AppointmentStatus
    pet_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
