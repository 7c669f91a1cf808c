# pethealth/utils.py
from typing import Any, Dict, Optional
import re
from bson import ObjectId
from datetime import date, datetime, timezone

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

def to_id(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Convierte _id -> id (str) y todos los ObjectIds a strings.
    También convierte datetime a ISO format strings.
    Si doc es None, devuelve {}.
    """
    if doc is None:
        return {}
    d = dict(doc)

    if "_id" in d:
        d["id"] = str(d.pop("_id"))

    for key, value in d.items():
        if isinstance(value, ObjectId):
            d[key] = str(value)
        elif isinstance(value, datetime):
            d[key] = value.isoformat()
        elif isinstance(value, dict):
            d[key] = to_id(value)
        elif isinstance(value, list):
            d[key] = [
                str(item) if isinstance(item, ObjectId)
                else item.isoformat() if isinstance(item, datetime)
                else to_id(item) if isinstance(item, dict)
                else item
                for item in value
            ]

    return d

# ==================== Fechas ====================

def utcnow() -> datetime:
    """Marca de tiempo de servidor para created_at/updated_at."""
    return datetime.now(timezone.utc)

def parse_date(value: str) -> date:
    """YYYY-MM-DD -> date. Lanza ValueError si el formato o la fecha no son válidos."""
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise ValueError("Formato de fecha inválido (YYYY-MM-DD)")
    return date.fromisoformat(value)

def validate_date_str(value: str) -> str:
    parse_date(value)
    return value

def validate_time_str(value: str) -> str:
    if not TIME_RE.match(value or ""):
        raise ValueError("Formato de hora inválido (HH:MM)")
    return value

