"""
Formularios de medicación / vacuna / tratamiento.

Los campos obligatorios dependen del estado, así que el formulario es una
unión discriminada por ``status``: cada variante declara sus propios campos
y un único validador (``MedicationForm``) elige la variante correcta.

* active        -> next_due_date opcional (>= date), sin end_date
* completed     -> end_date obligatorio (>= date)
* discontinued  -> end_date obligatorio (>= date), end_reason opcional
"""
from pydantic import BaseModel, Discriminator, Field, RootModel, Tag, TypeAdapter, ValidationInfo, field_validator
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from ..utils import parse_date, validate_date_str

class MedicationType(str, Enum):
    medication  = "medication"
    vaccination = "vaccination"
    treatment   = "treatment"

class MedicationStatus(str, Enum):
    active       = "active"
    completed    = "completed"
    discontinued = "discontinued"

def _not_before_start(v: str, info: ValidationInfo, label: str) -> str:
    validate_date_str(v)
    start = info.data.get("date")
    # Si date ya falló, su propio error basta
    if start and parse_date(v) < parse_date(start):
        raise ValueError(f"{label} debe ser igual o posterior a la fecha de inicio")
    return v

class _MedicationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: MedicationType = MedicationType.medication
    date: str
    prescribed_by: Optional[str] = Field(None, max_length=100)
    dosage: Optional[str] = Field(None, max_length=100)
    frequency: Optional[str] = Field(None, max_length=100)
    duration: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return validate_date_str(v)

    class Config:
        use_enum_values = True

class ActiveMedication(_MedicationBase):
    status: Literal["active"] = "active"
    next_due_date: Optional[str] = None

    @field_validator("next_due_date")
    @classmethod
    def validate_next_due(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not v:
            return None
        return _not_before_start(v, info, "La próxima dosis")

class EndedMedication(_MedicationBase):
    end_date: str
    end_reason: Optional[str] = Field(None, max_length=500)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: str, info: ValidationInfo) -> str:
        return _not_before_start(v, info, "La fecha de fin")

class CompletedMedication(EndedMedication):
    status: Literal["completed"]

class DiscontinuedMedication(EndedMedication):
    status: Literal["discontinued"]

def _status_tag(value) -> str:
    # Sin status el formulario es de una medicación activa
    if isinstance(value, dict):
        return value.get("status") or MedicationStatus.active.value
    return getattr(value, "status", MedicationStatus.active.value)

MedicationForm = Annotated[
    Union[
        Annotated[ActiveMedication, Tag("active")],
        Annotated[CompletedMedication, Tag("completed")],
        Annotated[DiscontinuedMedication, Tag("discontinued")],
    ],
    Discriminator(_status_tag),
]

class MedicationIn(RootModel[MedicationForm]):
    """Cuerpo de POST/PUT: la variante validada queda en .root"""

_form_adapter = TypeAdapter(MedicationForm)

def validate_medication(data: dict) -> _MedicationBase:
    """Valida un formulario suelto (fuera de FastAPI)."""
    return _form_adapter.validate_python(data)

def medication_document(form: _MedicationBase) -> dict:
    """Campos a persistir. Los que no aplican al estado se guardan como None."""
    doc = form.model_dump()
    doc.setdefault("next_due_date", None)
    doc.setdefault("end_date", None)
    doc.setdefault("end_reason", None)
    return doc

class MedicationOut(BaseModel):
    id: str
    pet_id: str
    owner_id: str
    name: str
    type: MedicationType
    date: str
    status: MedicationStatus
    next_due_date: Optional[str] = None
    end_date: Optional[str] = None
    end_reason: Optional[str] = None
    prescribed_by: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    notes: Optional[str] = None
    badge: Optional[str] = None
    pet_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
