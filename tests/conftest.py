"""
Configuración de pytest para tests
"""
import pytest
from httpx import AsyncClient, ASGITransport
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
import os
from dotenv import load_dotenv

load_dotenv()

# Configuración de test database
TEST_DB_NAME = os.getenv("TEST_DB_NAME", "pethealth_test")
TEST_MONGODB_URI = os.getenv("TEST_MONGODB_URI", os.getenv("MONGODB_URI", "mongodb://localhost:27017"))

# Deshabilitar rate limiting en la app antes de importarla
@pytest.fixture(scope="session", autouse=True)
def disable_rate_limiting():
    """Deshabilita rate limiting para todos los tests"""
    from pethealth.main import app
    app.state.limiter = None

@pytest.fixture
async def test_db():
    """Base de datos de test limpia; se salta el test si no hay MongoDB"""
    from pethealth.db import ensure_indexes
    client = AsyncIOMotorClient(TEST_MONGODB_URI, serverSelectionTimeoutMS=500)
    try:
        await client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip("MongoDB no disponible")
    await client.drop_database(TEST_DB_NAME)
    db = client[TEST_DB_NAME]
    await ensure_indexes(db)
    yield db
    try:
        await client.drop_database(TEST_DB_NAME)
    finally:
        client.close()

@pytest.fixture
def bus():
    from pethealth.realtime import ChangeBus
    return ChangeBus()

@pytest.fixture
async def client(test_db, bus):
    """Cliente HTTP contra la app con la base de datos y el bus de test"""
    from pethealth.main import app
    from pethealth.db import get_db
    from pethealth.realtime import get_bus

    async def _get_db():
        return test_db

    app.state.limiter = None
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_bus] = lambda: bus
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

@pytest.fixture
def signup(client):
    """Registra un usuario y devuelve (user_id, token). No deja cookies en el cliente."""
    async def _signup(email: str, password: str = "password123"):
        r = await client.post("/api/auth/signup", json={"email": email, "password": password})
        assert r.status_code == 201, r.text
        user_id = r.json()["id"]
        r = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        client.cookies.clear()
        return user_id, r.json()["access_token"]
    return _signup

@pytest.fixture
def test_pet_data():
    """Datos de mascota de prueba"""
    return {
        "name": "Luna",
        "species": "dog",
        "breed": "Border Collie",
        "birth_date": "2020-05-17",
    }
