from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from .config import get_settings

_settings = get_settings()
_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None

# Colecciones hijas: todas cuelgan de una mascota (pet_id) y de un dueño (owner_id)
CHILD_COLLECTIONS = ("appointments", "medications", "weights", "feeding_schedules", "notes")

async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await db.users.create_index("email", unique=True, sparse=True)
    await db.users.create_index("phone", sparse=True)
    await db.users.create_index("google_sub", sparse=True)
    await db.pets.create_index([("owner_id", 1), ("created_at", -1)])
    for name in CHILD_COLLECTIONS:
        await db[name].create_index([("owner_id", 1), ("pet_id", 1)])
    await db.medications.create_index([("owner_id", 1), ("status", 1), ("next_due_date", 1)])
    await db.appointments.create_index([("owner_id", 1), ("status", 1), ("date", 1)])
    # Los códigos SMS caducan solos
    await db.phone_verifications.create_index("expires_at", expireAfterSeconds=0)

async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(_settings.mongodb_uri)
        _db = _client[_settings.db_name]
        await ensure_indexes(_db)
    return _db
