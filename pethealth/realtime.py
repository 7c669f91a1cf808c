# pethealth/realtime.py
"""
Consultas en vivo.

Cada escritura de los routers publica un ChangeEvent en el ChangeBus. Una
LiveQuery mantiene un índice {id: registro} de su vista filtrada y aplica los
cambios uno a uno (upsert / delete); cada cambio relevante produce un snapshot
completo y ordenado que el cliente usa para reemplazar su estado.

SessionContext es la sesión explícita de una conexión: se abre suscribiéndose
al bus (cambios de datos y de autenticación) y se cierra dándose de baja.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from . import insights
from .ownership import verify_pet_ownership
from .utils import to_id

logger = logging.getLogger(__name__)

OP_UPSERT = "upsert"
OP_DELETE = "delete"
OP_PURGE = "purge"      # borrado masivo: doc lleva el filtro de igualdad
OP_SIGNOUT = "signout"

Record = Dict[str, Any]
SortSpec = List[Tuple[str, int]]


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    op: str
    owner_id: str
    doc_id: Optional[str] = None
    doc: Optional[Record] = None


Listener = Callable[[ChangeEvent], Awaitable[None]]


class ChangeBus:
    """Pub/sub en proceso, con oyentes agrupados por dueño."""

    def __init__(self):
        self._listeners: Dict[str, Set[Listener]] = defaultdict(set)

    def subscribe(self, owner_id: str, listener: Listener) -> Callable[[], None]:
        self._listeners[owner_id].add(listener)

        def unsubscribe():
            listeners = self._listeners.get(owner_id)
            if listeners is None:
                return
            listeners.discard(listener)
            if not listeners:
                self._listeners.pop(owner_id, None)

        return unsubscribe

    def listener_count(self, owner_id: str) -> int:
        return len(self._listeners.get(owner_id, ()))

    async def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners.get(event.owner_id, ())):
            try:
                await listener(event)
            except Exception as e:
                # Un oyente roto no debe tumbar la escritura que publicó el cambio
                logger.error(f"Error notificando {event.collection}/{event.op}: {e}", exc_info=True)


bus = ChangeBus()

def get_bus() -> ChangeBus:
    return bus


async def publish_upsert(bus: ChangeBus, collection: str, doc: dict) -> None:
    rec = to_id(doc)
    await bus.publish(ChangeEvent(collection, OP_UPSERT, rec["owner_id"], rec["id"], rec))

async def publish_delete(bus: ChangeBus, collection: str, owner_id: str, doc_id: str) -> None:
    await bus.publish(ChangeEvent(collection, OP_DELETE, owner_id, doc_id))

async def publish_purge(bus: ChangeBus, collection: str, owner_id: str, filters: dict) -> None:
    await bus.publish(ChangeEvent(collection, OP_PURGE, owner_id, None, dict(filters)))

async def publish_signout(bus: ChangeBus, owner_id: str) -> None:
    await bus.publish(ChangeEvent("auth", OP_SIGNOUT, owner_id))

# ==================== LiveQuery ====================

def _sort_key(record: Record, field_name: str):
    value = record.get(field_name)
    if value is None:
        return (0, "")
    if field_name in ("time", "time_of_day") and isinstance(value, str):
        # "8:00" -> "08:00" para que el orden lexicográfico sea el horario
        value = value.zfill(5)
    return (1, value)


def sort_records(records: List[Record], sort: SortSpec) -> List[Record]:
    out = list(records)
    # ordenaciones estables, de la clave menos significativa a la más
    for field_name, direction in reversed(sort):
        out.sort(key=lambda r: _sort_key(r, field_name), reverse=direction < 0)
    return out


@dataclass(frozen=True)
class Snapshot:
    collection: str
    version: int
    records: Tuple[Record, ...]


class LiveQuery:
    def __init__(self, collection: str, filters: Dict[str, Any], sort: Optional[SortSpec] = None):
        self.collection = collection
        self.filters = dict(filters)
        self.sort = list(sort or [])
        self.version = 0
        self._index: Dict[str, Record] = {}

    def matches(self, record: Record) -> bool:
        return all(record.get(k) == v for k, v in self.filters.items())

    async def load(self, db: AsyncIOMotorDatabase) -> Snapshot:
        docs = await db[self.collection].find(self.filters).to_list(None)
        self.reset(to_id(d) for d in docs)
        return self.snapshot()

    def reset(self, records) -> None:
        self._index = {r["id"]: r for r in records}
        self.version += 1

    def apply(self, event: ChangeEvent) -> bool:
        """Aplica un cambio al índice. Devuelve True si el resultado visible cambió."""
        if event.collection != self.collection:
            return False

        if event.op == OP_PURGE:
            flt = event.doc or {}
            gone = [k for k, r in self._index.items() if all(r.get(f) == v for f, v in flt.items())]
            for k in gone:
                del self._index[k]
            if gone:
                self.version += 1
            return bool(gone)

        if event.op == OP_DELETE or event.doc is None or not self.matches(event.doc):
            # un upsert que ya no cumple el filtro también sale de la vista
            if self._index.pop(event.doc_id, None) is None:
                return False
            self.version += 1
            return True

        self._index[event.doc_id] = event.doc
        self.version += 1
        return True

    def snapshot(self) -> Snapshot:
        records = sort_records(list(self._index.values()), self.sort)
        return Snapshot(self.collection, self.version, tuple(records))

# ==================== Suscripciones ====================

CHILD_SORTS: Dict[str, SortSpec] = {
    "appointments": [("date", 1), ("time", 1)],
    "medications": [("date", -1)],
    "weights": [("date", -1)],
    "feeding_schedules": [("time_of_day", 1)],
    "notes": [("created_at", -1)],
}
PETS_SORT: SortSpec = [("created_at", -1)]

Derive = Callable[[Dict[str, List[Record]], date], Any]


def _derive_appointments(data, today):
    upcoming = insights.upcoming_appointments(data["appointments"], today, strict=False)
    return {"upcoming": [{**a, "display_type": insights.appointment_label(a)} for a in upcoming]}

def _derive_medications(data, today):
    return insights.medication_buckets(data["medications"], today)

def _derive_weights(data, today):
    weights = data["weights"]
    return {"stats": insights.weight_stats(weights), "chart": insights.weight_chart(weights)}

def _derive_count(name):
    def derive(data, today):
        return {"total": len(data[name])}
    return derive

def _derive_dashboard(data, today):
    return insights.dashboard_summary(data["pets"], data["appointments"], data["medications"], today)

def _derive_overview(data, today):
    return insights.pet_overview(data["appointments"], data["medications"], data["weights"], today)


@dataclass
class Subscription:
    kind: str
    queries: Dict[str, LiveQuery]
    derive: Derive
    # mascota leída por la guardia (vistas por mascota)
    pet: Optional[Record] = None
    cache: insights.ViewCache = field(init=False)

    def __post_init__(self):
        self.cache = insights.ViewCache(self.derive)

    def version(self) -> Tuple[int, ...]:
        return tuple(q.version for q in self.queries.values())

    async def load(self, db: AsyncIOMotorDatabase) -> None:
        for q in self.queries.values():
            await q.load(db)

    def apply(self, event: ChangeEvent) -> bool:
        # se recalcula si cambia cualquiera de las consultas que la componen
        changed = False
        for q in self.queries.values():
            changed = q.apply(event) or changed
        return changed

    def data(self) -> Dict[str, List[Record]]:
        return {name: list(q.snapshot().records) for name, q in self.queries.items()}

    def view(self, today: Optional[date] = None):
        today = today or date.today()
        data = self.data()
        return data, self.cache.get((self.version(), today), data, today)


PER_PET_KINDS = set(CHILD_SORTS) | {"overview"}
KINDS = PER_PET_KINDS | {"pets", "dashboard"}


def build_subscription(kind: str, owner_id: str, pet_id: Optional[str] = None) -> Subscription:
    """Construye las consultas de una vista. Las vistas por mascota exigen pet_id."""
    if kind not in KINDS:
        raise ValueError(f"Colección desconocida: {kind}")
    owner = {"owner_id": owner_id}

    if kind == "pets":
        return Subscription(kind, {"pets": LiveQuery("pets", owner, PETS_SORT)}, _derive_count("pets"))

    if kind == "dashboard":
        return Subscription(kind, {
            "pets": LiveQuery("pets", owner, PETS_SORT),
            "appointments": LiveQuery("appointments", {**owner, "status": "scheduled"}, CHILD_SORTS["appointments"]),
            "medications": LiveQuery("medications", {**owner, "status": "active"}, [("next_due_date", 1)]),
        }, _derive_dashboard)

    if not pet_id:
        raise ValueError(f"'{kind}' requiere pet_id")
    scoped = {**owner, "pet_id": pet_id}

    if kind == "overview":
        return Subscription(kind, {
            "appointments": LiveQuery("appointments", {**scoped, "status": "scheduled"}, CHILD_SORTS["appointments"]),
            "medications": LiveQuery("medications", scoped, CHILD_SORTS["medications"]),
            "weights": LiveQuery("weights", scoped, CHILD_SORTS["weights"]),
        }, _derive_overview)

    derive = {
        "appointments": _derive_appointments,
        "medications": _derive_medications,
        "weights": _derive_weights,
    }.get(kind) or _derive_count(kind)
    return Subscription(kind, {kind: LiveQuery(kind, scoped, CHILD_SORTS[kind])}, derive)


async def open_subscription(
    db: AsyncIOMotorDatabase, user_id: str, kind: str, pet_id: Optional[str] = None
) -> Subscription:
    """Guardia de propiedad primero; si falla no se consulta nada más."""
    pet = None
    if kind in PER_PET_KINDS:
        if not pet_id:
            raise ValueError(f"'{kind}' requiere pet_id")
        pet = await verify_pet_ownership(db, user_id, pet_id)
    sub = build_subscription(kind, user_id, pet_id)
    sub.pet = to_id(pet) if pet else None
    await sub.load(db)
    return sub

# ==================== Sesión ====================

Send = Callable[[dict], Awaitable[None]]


class SessionContext:
    """
    Sesión explícita de un usuario conectado. Se pasa a quien la necesite en
    lugar de leer un usuario global.

        async with SessionContext(db, user_id, bus, send) as session:
            await session.subscribe("s1", "medications", pet_id)
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        user_id: str,
        bus: ChangeBus,
        send: Send,
        on_signout: Optional[Callable[[], Awaitable[None]]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.bus = bus
        self._send = send
        self._on_signout = on_signout
        self._today = today or date.today
        self._subscriptions: Dict[str, Subscription] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.signed_out = False

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    async def open(self) -> "SessionContext":
        if self._unsubscribe is None:
            self._unsubscribe = self.bus.subscribe(self.user_id, self._on_change)
        return self

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._subscriptions.clear()

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def subscription_ids(self) -> List[str]:
        return list(self._subscriptions)

    async def subscribe(self, sub_id: str, kind: str, pet_id: Optional[str] = None) -> None:
        sub = await open_subscription(self.db, self.user_id, kind, pet_id)
        self._subscriptions[sub_id] = sub
        await self._push(sub_id, sub)

    def unsubscribe(self, sub_id: str) -> bool:
        return self._subscriptions.pop(sub_id, None) is not None

    async def _on_change(self, event: ChangeEvent) -> None:
        if event.op == OP_SIGNOUT:
            self.signed_out = True
            await self._send({"type": "signed_out"})
            await self.close()
            if self._on_signout is not None:
                await self._on_signout()
            return
        for sub_id, sub in list(self._subscriptions.items()):
            if sub.apply(event):
                await self._push(sub_id, sub)

    async def _push(self, sub_id: str, sub: Subscription) -> None:
        data, view = sub.view(self._today())
        await self._send({
            "type": "snapshot",
            "id": sub_id,
            "kind": sub.kind,
            "version": list(sub.version()),
            "collections": data,
            "view": view,
        })
