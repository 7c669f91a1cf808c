from pydantic import BaseModel
import os
from pathlib import Path
from dotenv import load_dotenv
load_dotenv()  # carga el archivo .env de la raíz

class Settings(BaseModel):
    app_name: str = os.getenv("APP_NAME", "PetHealth")
    env: str = os.getenv("APP_ENV", "dev")
    mongodb_uri: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    db_name: str = os.getenv("DB_NAME", "pethealth")
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me")
    jwt_expires_hours: int = int(os.getenv("JWT_EXPIRES_HOURS", "8"))
    media_dir: str = os.getenv("MEDIA_DIR", str(Path(__file__).resolve().parents[1] / "media"))
    frontend_base_url: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "__session")
    google_client_id: str = os.getenv("GOOGLE_CLIENT_ID", "")
    max_image_mb: int = int(os.getenv("MAX_IMAGE_MB", "5"))
    phone_code_ttl_minutes: int = int(os.getenv("PHONE_CODE_TTL_MINUTES", "10"))
    reset_token_minutes: int = int(os.getenv("RESET_TOKEN_MINUTES", "30"))


_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
        Path(_settings.media_dir).mkdir(parents=True, exist_ok=True)
        Path(_settings.media_dir, "pets").mkdir(parents=True, exist_ok=True)
    return _settings
