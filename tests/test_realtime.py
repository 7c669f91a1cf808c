"""
Tests de consultas en vivo: LiveQuery, ChangeBus y SessionContext
"""
from datetime import date

import pytest
from bson import ObjectId

from pethealth.ownership import OwnershipError
from pethealth.realtime import (
    ChangeBus, ChangeEvent, LiveQuery, SessionContext, build_subscription,
    open_subscription, publish_delete, publish_purge, publish_signout,
    publish_upsert, sort_records, OP_DELETE, OP_UPSERT,
)

OWNER = "u1"
PET_ID = str(ObjectId())

class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length):
        return list(self.docs)

class FakeCollection:
    def __init__(self, docs=None):
        self.docs = list(docs or [])
        self.find_one_calls = 0

    def _match(self, doc, flt):
        return all(doc.get(k) == v for k, v in flt.items())

    def find(self, flt=None):
        return FakeCursor([d for d in self.docs if self._match(d, flt or {})])

    async def find_one(self, flt):
        self.find_one_calls += 1
        for d in self.docs:
            if self._match(d, flt):
                return d
        return None

class FakeDB:
    """Lo justo de AsyncIOMotorDatabase para cargar snapshots."""

    def __init__(self, **collections):
        self.collections = {k: FakeCollection(v) for k, v in collections.items()}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def __getattr__(self, name):
        if name.startswith("_") or name == "collections":
            raise AttributeError(name)
        return self[name]

def _weight(doc_id, value, day, pet_id=PET_ID, owner=OWNER):
    return {"id": doc_id, "owner_id": owner, "pet_id": pet_id, "weight": value, "unit": "kg", "date": day}

def _upsert(collection, doc):
    return ChangeEvent(collection, OP_UPSERT, doc["owner_id"], doc["id"], doc)

# ---------- LiveQuery ----------

def test_sort_records_pads_times():
    recs = [{"id": "a", "time": "10:00"}, {"id": "b", "time": "8:30"}, {"id": "c", "time": "09:15"}]
    assert [r["id"] for r in sort_records(recs, [("time", 1)])] == ["b", "c", "a"]

def test_sort_records_multiple_keys():
    recs = [
        {"id": "a", "date": "2024-01-02", "time": "08:00"},
        {"id": "b", "date": "2024-01-01", "time": "18:00"},
        {"id": "c", "date": "2024-01-01", "time": "7:00"},
    ]
    assert [r["id"] for r in sort_records(recs, [("date", 1), ("time", 1)])] == ["c", "b", "a"]

def test_live_query_applies_diffs():
    q = LiveQuery("weights", {"owner_id": OWNER, "pet_id": PET_ID}, [("date", -1)])
    q.reset([_weight("w1", 10, "2024-01-01")])
    v0 = q.version

    assert q.apply(_upsert("weights", _weight("w2", 9, "2024-02-01")))
    assert [r["id"] for r in q.snapshot().records] == ["w2", "w1"]

    # actualización en sitio
    assert q.apply(_upsert("weights", _weight("w1", 10.5, "2024-01-01")))
    assert q.snapshot().records[1]["weight"] == 10.5

    assert q.apply(ChangeEvent("weights", OP_DELETE, OWNER, "w2"))
    assert [r["id"] for r in q.snapshot().records] == ["w1"]
    assert q.version == v0 + 3

def test_live_query_ignores_unrelated_changes():
    q = LiveQuery("weights", {"owner_id": OWNER, "pet_id": PET_ID})
    q.reset([])
    assert not q.apply(_upsert("notes", {"id": "n1", "owner_id": OWNER, "pet_id": PET_ID}))
    assert not q.apply(_upsert("weights", _weight("w1", 5, "2024-01-01", pet_id="other")))
    assert not q.apply(ChangeEvent("weights", OP_DELETE, OWNER, "missing"))
    assert q.snapshot().records == ()

def test_live_query_drops_records_leaving_filter():
    q = LiveQuery("medications", {"owner_id": OWNER, "status": "active"})
    med = {"id": "m1", "owner_id": OWNER, "status": "active"}
    q.reset([med])
    assert q.apply(_upsert("medications", {**med, "status": "completed"}))
    assert q.snapshot().records == ()

def test_live_query_purge():
    q = LiveQuery("weights", {"owner_id": OWNER})
    q.reset([_weight("w1", 1, "2024-01-01"), _weight("w2", 1, "2024-01-02", pet_id="other")])
    assert q.apply(ChangeEvent("weights", "purge", OWNER, None, {"pet_id": PET_ID}))
    assert [r["id"] for r in q.snapshot().records] == ["w2"]
    assert not q.apply(ChangeEvent("weights", "purge", OWNER, None, {"pet_id": PET_ID}))

async def test_live_query_load_from_db():
    db = FakeDB(weights=[
        {"_id": ObjectId(), "owner_id": OWNER, "pet_id": PET_ID, "weight": 3, "date": "2024-01-01"},
        {"_id": ObjectId(), "owner_id": "u2", "pet_id": PET_ID, "weight": 4, "date": "2024-01-01"},
    ])
    snap = await LiveQuery("weights", {"owner_id": OWNER}).load(db)
    assert len(snap.records) == 1
    assert "id" in snap.records[0] and "_id" not in snap.records[0]

def test_build_subscription_requires_pet_for_pet_views():
    with pytest.raises(ValueError):
        build_subscription("weights", OWNER)
    with pytest.raises(ValueError):
        build_subscription("vaccines", OWNER)
    assert set(build_subscription("dashboard", OWNER).queries) == {"pets", "appointments", "medications"}

def test_subscription_view_is_memoized_per_version():
    sub = build_subscription("weights", OWNER, PET_ID)
    sub.queries["weights"].reset([_weight("w1", 10, "2024-01-01")])
    today = date(2024, 6, 1)
    _, first = sub.view(today)
    _, again = sub.view(today)
    assert first is again

    sub.apply(_upsert("weights", _weight("w2", 9, "2024-02-01")))
    _, updated = sub.view(today)
    assert updated is not first
    assert updated["stats"]["change"] == pytest.approx(-1.0)

async def test_open_subscription_runs_ownership_guard_first():
    db = FakeDB(pets=[{"_id": ObjectId(PET_ID), "owner_id": "someone-else", "name": "Luna"}])
    with pytest.raises(OwnershipError) as exc:
        await open_subscription(db, OWNER, "medications", PET_ID)
    assert exc.value.reason == "not_owner"
    assert exc.value.redirect == "/dashboard"

    with pytest.raises(OwnershipError) as exc:
        await open_subscription(db, OWNER, "medications", "not-an-id")
    assert exc.value.reason == "invalid_id"

# ---------- ChangeBus ----------

async def test_change_bus_routes_by_owner():
    bus = ChangeBus()
    seen = []

    async def listener(event):
        seen.append(event)

    unsubscribe = bus.subscribe(OWNER, listener)
    await publish_upsert(bus, "notes", {"_id": ObjectId(), "owner_id": OWNER, "pet_id": PET_ID})
    await publish_delete(bus, "notes", "u2", "n1")
    assert len(seen) == 1 and seen[0].op == OP_UPSERT

    unsubscribe()
    assert bus.listener_count(OWNER) == 0
    await publish_delete(bus, "notes", OWNER, "n1")
    assert len(seen) == 1

async def test_change_bus_survives_broken_listener():
    bus = ChangeBus()
    seen = []

    async def broken(event):
        raise RuntimeError("boom")

    async def ok(event):
        seen.append(event)

    bus.subscribe(OWNER, broken)
    bus.subscribe(OWNER, ok)
    await publish_purge(bus, "weights", OWNER, {"pet_id": PET_ID})
    assert len(seen) == 1

# ---------- SessionContext ----------

def _session_db():
    return FakeDB(
        pets=[{"_id": ObjectId(PET_ID), "owner_id": OWNER, "name": "Luna"}],
        weights=[{"_id": ObjectId(), "owner_id": OWNER, "pet_id": PET_ID, "weight": 10, "unit": "kg", "date": "2024-01-01"}],
    )

async def test_session_pushes_snapshots_on_change():
    bus = ChangeBus()
    sent = []

    async def send(msg):
        sent.append(msg)

    async with SessionContext(_session_db(), OWNER, bus, send, today=lambda: date(2024, 6, 1)) as session:
        await session.subscribe("s1", "weights", PET_ID)
        assert sent[-1]["type"] == "snapshot"
        assert sent[-1]["view"]["stats"]["change"] == 0

        await publish_upsert(bus, "weights", {"_id": ObjectId(), "owner_id": OWNER, "pet_id": PET_ID,
                                              "weight": 9, "unit": "kg", "date": "2024-02-01"})
        latest = sent[-1]
        assert latest["id"] == "s1"
        assert len(latest["collections"]["weights"]) == 2
        assert latest["view"]["stats"]["change"] == pytest.approx(-1.0)
        assert latest["view"]["stats"]["change_percent"] == pytest.approx(-10.0)

        # un cambio de otra colección no produce snapshot
        count = len(sent)
        await publish_upsert(bus, "notes", {"_id": ObjectId(), "owner_id": OWNER, "pet_id": PET_ID})
        assert len(sent) == count

        assert session.unsubscribe("s1")
        await publish_delete(bus, "weights", OWNER, latest["collections"]["weights"][0]["id"])
        assert len(sent) == count

    assert not session.is_open
    assert bus.listener_count(OWNER) == 0

async def test_session_closes_on_signout():
    bus = ChangeBus()
    sent = []
    closed = []

    async def send(msg):
        sent.append(msg)

    async def on_signout():
        closed.append(True)

    session = SessionContext(_session_db(), OWNER, bus, send, on_signout=on_signout)
    await session.open()
    await session.subscribe("s1", "weights", PET_ID)

    await publish_signout(bus, OWNER)
    assert sent[-1] == {"type": "signed_out"}
    assert session.signed_out
    assert not session.is_open
    assert session.subscription_ids() == []
    assert closed == [True]

# ---------- Mensajes del websocket ----------

async def test_handle_message_protocol():
    from pethealth.routers.websocket import handle_message

    bus = ChangeBus()
    sent = []

    async def send(msg):
        sent.append(msg)

    async with SessionContext(_session_db(), OWNER, bus, send) as session:
        assert await handle_message(session, {"type": "ping"}) == {"type": "pong"}

        assert await handle_message(session, {"type": "subscribe", "id": "s1", "collection": "weights", "pet_id": PET_ID}) is None
        assert sent[-1]["type"] == "snapshot" and sent[-1]["id"] == "s1"

        reply = await handle_message(session, {"type": "subscribe", "id": "s2", "collection": "weights", "pet_id": str(ObjectId())})
        assert reply["code"] == "access_denied"
        assert reply["redirect"] == "/dashboard"

        reply = await handle_message(session, {"type": "subscribe", "id": "s3", "collection": "vaccines", "pet_id": PET_ID})
        assert reply["code"] == "invalid_request"

        reply = await handle_message(session, {"type": "subscribe", "collection": "weights"})
        assert reply["code"] == "invalid_request"

        assert await handle_message(session, {"type": "unsubscribe", "id": "s1"}) == {"type": "unsubscribed", "id": "s1"}
        assert (await handle_message(session, {"type": "unsubscribe", "id": "s1"}))["code"] == "invalid_request"
        assert (await handle_message(session, {"type": "dance"}))["code"] == "invalid_request"

# ---------- Páginas ----------

async def test_open_subscription_returns_guarded_pet():
    db = _session_db()
    sub = await open_subscription(db, OWNER, "weights", PET_ID)
    assert sub.pet["id"] == PET_ID
    assert sub.pet["name"] == "Luna"
    assert db.pets.find_one_calls == 1

    assert (await open_subscription(db, OWNER, "dashboard")).pet is None

async def test_pet_pages_read_the_pet_once():
    """Test de que cada página consulta la mascota una sola vez"""
    from pethealth.routers import views

    current = {"id": OWNER}
    pages = [
        lambda db: views.pet_page(PET_ID, current, db),
        lambda db: views.medications_page(PET_ID, current, db),
        lambda db: views.weight_page(PET_ID, "all", current, db),
        lambda db: views.feeding_page(PET_ID, current, db),
        lambda db: views.notes_page(PET_ID, current, db),
    ]
    for page in pages:
        db = _session_db()
        body = await page(db)
        assert body["pet"]["id"] == PET_ID
        assert db.pets.find_one_calls == 1

    db = _session_db()
    body = await views.weight_page(PET_ID, "all", current, db)
    assert body["stats"]["latest"]["weight"] == 10
