# pethealth/routers/views.py
"""
Modelos de vista de las páginas protegidas. Cada página lee un snapshot de
sus consultas (con la guardia de propiedad delante) y devuelve los datos ya
derivados; el cliente que quiera actualizaciones abre /ws con el mismo kind.
"""
from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import date

from ..db import get_db
from ..security import get_current_user
from ..realtime import open_subscription
from ..schemas.user import UserOut
from .. import insights

router = APIRouter()


@router.get("/dashboard")
async def dashboard(
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await open_subscription(db, current["id"], "dashboard")
    _, view = sub.view()
    return {"user": UserOut(**current).model_dump(), **view}


@router.get("/settings")
async def settings_page(current=Depends(get_current_user)):
    return {"user": UserOut(**current).model_dump()}


@router.get("/pets/{pet_id}")
async def pet_page(
    pet_id: str,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await open_subscription(db, current["id"], "overview", pet_id)
    _, view = sub.view()
    return {"pet": sub.pet, **view}


@router.get("/pets/{pet_id}/medications")
async def medications_page(
    pet_id: str,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await open_subscription(db, current["id"], "medications", pet_id)
    data = sub.data()
    buckets = insights.medication_buckets(data["medications"], date.today())
    return {"pet": sub.pet, **buckets}


@router.get("/pets/{pet_id}/weight")
async def weight_page(
    pet_id: str,
    time_range: str = Query("6m", alias="range", pattern=r"^(1m|3m|6m|1y|all)$"),
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await open_subscription(db, current["id"], "weights", pet_id)
    weights = sub.data()["weights"]
    # las estadísticas usan todo el histórico; gráfica y tabla, el rango elegido
    visible = insights.filter_weights_by_range(weights, time_range)
    return {
        "pet": sub.pet,
        "range": time_range,
        "stats": insights.weight_stats(weights),
        "chart": insights.weight_chart(visible),
        "records": visible,
    }


@router.get("/pets/{pet_id}/feeding")
async def feeding_page(
    pet_id: str,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await open_subscription(db, current["id"], "feeding_schedules", pet_id)
    return {"pet": sub.pet, "schedules": sub.data()["feeding_schedules"]}


@router.get("/pets/{pet_id}/notes")
async def notes_page(
    pet_id: str,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await open_subscription(db, current["id"], "notes", pet_id)
    return {"pet": sub.pet, "notes": sub.data()["notes"]}
