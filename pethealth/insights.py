# pethealth/insights.py
"""
Vistas derivadas: estados de medicación, estadísticas de peso y agregados del
dashboard. Todo son funciones puras sobre el snapshot completo (listas de
dicts tal como salen de ``to_id``); se recalculan en cada snapshot.
"""
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from .utils import parse_date

DUE_SOON_DAYS = 7
MOVING_AVERAGE_WINDOW = 7
RANGE_MONTHS = {"1m": 1, "3m": 3, "6m": 6, "1y": 12}
DEFAULT_RANGE_MONTHS = 6

BADGE_OVERDUE = "Overdue"
BADGE_DUE_SOON = "Due Soon"
BADGE_ACTIVE = "Active"
BADGE_COMPLETED = "Completed"
BADGE_DISCONTINUED = "Discontinued"

Record = Dict[str, Any]


def _today(today: Optional[date]) -> date:
    return today or date.today()


def _safe_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError:
        return None

# ==================== Medicaciones ====================

def is_overdue(due: str, today: Optional[date] = None) -> bool:
    d = _safe_date(due)
    return d is not None and d < _today(today)


def is_due_soon(due: str, today: Optional[date] = None, days: int = DUE_SOON_DAYS) -> bool:
    """Entre hoy y hoy + days, ambos incluidos."""
    d = _safe_date(due)
    t = _today(today)
    return d is not None and t <= d <= t + timedelta(days=days)


def needs_attention(due: str, today: Optional[date] = None, days: int = DUE_SOON_DAYS) -> bool:
    """Vencida o dentro del horizonte."""
    return is_overdue(due, today) or is_due_soon(due, today, days)


def medication_badge(med: Record, today: Optional[date] = None, days: int = DUE_SOON_DAYS) -> str:
    status = med.get("status")
    if status == "completed":
        return BADGE_COMPLETED
    if status == "discontinued":
        return BADGE_DISCONTINUED
    due = med.get("next_due_date")
    if due and is_overdue(due, today):
        return BADGE_OVERDUE
    if due and is_due_soon(due, today, days):
        return BADGE_DUE_SOON
    return BADGE_ACTIVE


def with_badges(meds: Iterable[Record], today: Optional[date] = None, days: int = DUE_SOON_DAYS) -> List[Record]:
    return [{**m, "badge": medication_badge(m, today, days)} for m in meds]


def medication_buckets(meds: List[Record], today: Optional[date] = None, days: int = DUE_SOON_DAYS) -> Dict[str, List[Record]]:
    t = _today(today)
    meds = with_badges(meds, t, days)
    active = [m for m in meds if m.get("status") == "active"]
    due = [
        m for m in active
        if (d := _safe_date(m.get("next_due_date"))) is not None and d <= t
    ]
    due_ids = {m.get("id") for m in due}
    return {
        "active": active,
        "completed": [m for m in meds if m.get("status") == "completed"],
        "discontinued": [m for m in meds if m.get("status") == "discontinued"],
        "due": due,
        # activas que no están ya listadas como pendientes
        "other_active": [m for m in active if m.get("id") not in due_ids],
    }

# ==================== Peso ====================

def _by_date(records: Iterable[Record], reverse: bool = False) -> List[Record]:
    return sorted(
        records,
        key=lambda r: (_safe_date(r.get("date")) or date.min, str(r.get("created_at") or "")),
        reverse=reverse,
    )


def weight_stats(weights: List[Record]) -> Optional[Dict[str, Any]]:
    """Último registro y variación respecto al anterior; None si no hay registros."""
    if not weights:
        return None
    ordered = _by_date(weights, reverse=True)
    latest = ordered[0]
    previous = ordered[1] if len(ordered) > 1 else None

    change = 0.0
    change_percent = 0.0
    if previous is not None:
        change = float(latest["weight"]) - float(previous["weight"])
        prev_weight = float(previous["weight"])
        change_percent = (change * 100) / prev_weight if prev_weight else 0.0

    return {
        "latest": latest,
        "previous": previous,
        "change": change,
        "change_percent": change_percent,
        "total": len(weights),
    }


def moving_average(values: List[float], window: int = MOVING_AVERAGE_WINDOW) -> List[float]:
    """Media móvil hacia atrás: cada punto promedia hasta `window` muestras previas (incluida)."""
    out = []
    for i in range(len(values)):
        chunk = values[max(0, i - window + 1): i + 1]
        out.append(sum(chunk) / len(chunk))
    return out


def weight_chart(weights: List[Record]) -> Dict[str, Any]:
    ordered = _by_date(weights)
    values = [float(r["weight"]) for r in ordered]
    if not values:
        return {"points": [], "average": None, "min": None, "max": None, "y_domain": None}

    ma = moving_average(values)
    points = [
        {"date": r["date"], "weight": v, "ma7": m, "unit": r.get("unit")}
        for r, v, m in zip(ordered, values, ma)
    ]
    lo, hi = min(values), max(values)
    padding = (hi - lo) * 0.1
    return {
        "points": points,
        "average": sum(values) / len(values),
        "min": lo,
        "max": hi,
        "y_domain": [max(0.0, lo - padding), hi + padding],
    }


def _months_ago(today: date, months: int) -> date:
    year, month = divmod(today.month - 1 - months, 12)
    year += today.year
    month += 1
    # día 31 -> último día del mes destino
    for day in (today.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return date(year, month, 28)


def filter_weights_by_range(weights: List[Record], time_range: str = "6m", today: Optional[date] = None) -> List[Record]:
    if time_range == "all":
        return list(weights)
    cutoff = _months_ago(_today(today), RANGE_MONTHS.get(time_range, DEFAULT_RANGE_MONTHS))
    return [w for w in weights if (d := _safe_date(w.get("date"))) is not None and d >= cutoff]

# ==================== Agregados ====================

def appointment_label(apt: Record) -> str:
    if apt.get("type") == "other" and apt.get("custom_type"):
        return apt["custom_type"]
    return apt.get("type") or ""


def attach_pet_names(records: Iterable[Record], pets: Iterable[Record]) -> List[Record]:
    """Se recalcula cada vez que cambia cualquiera de las dos listas."""
    names = {p.get("id"): p.get("name") for p in pets}
    return [{**r, "pet_name": names.get(r.get("pet_id"))} for r in records]


def upcoming_appointments(appointments: List[Record], today: Optional[date] = None, strict: bool = True) -> List[Record]:
    """Citas programadas posteriores a hoy (o desde hoy si strict=False), en orden ascendente."""
    t = _today(today)
    out = []
    for apt in appointments:
        if apt.get("status") != "scheduled":
            continue
        d = _safe_date(apt.get("date"))
        if d is None or d < t or (strict and d == t):
            continue
        out.append(apt)
    return sorted(out, key=lambda a: (a["date"], a.get("time") or ""))


def dashboard_summary(
    pets: List[Record],
    appointments: List[Record],
    medications: List[Record],
    today: Optional[date] = None,
    days: int = DUE_SOON_DAYS,
    recent_limit: int = 5,
) -> Dict[str, Any]:
    t = _today(today)
    upcoming = attach_pet_names(upcoming_appointments(appointments, t), pets)
    attention = [
        m for m in medications
        if m.get("status") == "active" and m.get("next_due_date") and needs_attention(m["next_due_date"], t, days)
    ]
    attention = sorted(attach_pet_names(with_badges(attention, t, days), pets), key=lambda m: m["next_due_date"])
    overdue = [m for m in attention if m["badge"] == BADGE_OVERDUE]
    recent_pets = sorted(pets, key=lambda p: str(p.get("created_at") or ""), reverse=True)[:recent_limit]

    return {
        "stats": {
            "total_pets": len(pets),
            "upcoming_appointments": len(upcoming),
            "active_medications": len(attention),
            "due_medications": len(overdue),
        },
        "recent_pets": recent_pets,
        "upcoming_appointments": [{**a, "display_type": appointment_label(a)} for a in upcoming[:recent_limit]],
        "medications": attention[:recent_limit],
        "overdue_medications": overdue,
    }


def pet_overview(
    appointments: List[Record],
    medications: List[Record],
    weights: List[Record],
    today: Optional[date] = None,
    days: int = DUE_SOON_DAYS,
) -> Dict[str, Any]:
    t = _today(today)
    upcoming = upcoming_appointments(appointments, t, strict=False)
    buckets = medication_buckets(medications, t, days)
    latest = _by_date(weights, reverse=True)[:1]
    return {
        "stats": {
            "upcoming_appointments": len(upcoming),
            "active_medications": len(buckets["active"]),
            "due_medications": len(buckets["due"]),
            "latest_weight": {"weight": latest[0]["weight"], "unit": latest[0].get("unit")} if latest else None,
        },
        "upcoming_appointments": [{**a, "display_type": appointment_label(a)} for a in upcoming[:3]],
        "medications": buckets["active"][:3],
        "weights": _by_date(weights, reverse=True)[:5],
    }


class ViewCache:
    """
    Memoiza una vista derivada por versión de snapshot: mientras no llegue un
    snapshot nuevo se devuelve el mismo resultado.
    """

    def __init__(self, compute: Callable[..., Any]):
        self._compute = compute
        self._key = None
        self._value = None

    def get(self, key, *args, **kwargs):
        if self._key != key or self._value is None:
            self._value = self._compute(*args, **kwargs)
            self._key = key
        return self._value
