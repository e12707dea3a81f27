# mailconnect/core/config.py

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

REQUIRED_ENV = [
    "MONGODB_URI",
    "JWT_SECRET",
    "ENCRYPTION_KEY",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
]


class Settings(BaseModel):
    mongodb_uri: str
    mongodb_db: str = "crm"

    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 24 * 60

    encryption_key: str

    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str

    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 60
    scheduler_max_instances: int = 3

    cors_origins: List[str] = ["http://localhost:3000"]
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(key: str) -> Optional[List[str]]:
    value = os.getenv(key)
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def load_settings() -> Settings:
    """
    Builds the process settings from the environment (.env is loaded on import).
    Raises RuntimeError naming every missing required variable.
    """
    missing = [var for var in REQUIRED_ENV if not os.getenv(var)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    values = {
        "mongodb_uri": os.getenv("MONGODB_URI"),
        "mongodb_db": os.getenv("MONGODB_DB", "crm"),
        "jwt_secret": os.getenv("JWT_SECRET"),
        "jwt_algorithm": os.getenv("JWT_ALGORITHM", "HS256"),
        "access_token_expire_minutes": int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 24 * 60)),
        "encryption_key": os.getenv("ENCRYPTION_KEY"),
        "google_client_id": os.getenv("GOOGLE_CLIENT_ID"),
        "google_client_secret": os.getenv("GOOGLE_CLIENT_SECRET"),
        "google_redirect_uri": os.getenv("GOOGLE_REDIRECT_URI"),
        "scheduler_enabled": _env_bool("SCHEDULER_ENABLED", True),
        "scheduler_interval_seconds": int(os.getenv("SCHEDULER_INTERVAL_SECONDS", 60)),
        "scheduler_max_instances": int(os.getenv("SCHEDULER_MAX_INSTANCES", 3)),
        "frontend_url": os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
    }
    origins = _env_list("CORS_ORIGINS")
    if origins:
        values["cors_origins"] = origins

    return Settings(**values)
