# notes_backend/config.py
import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List
from dotenv import load_dotenv
from fastapi import Request

from notes_backend.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev_jwt_secret_change_me"


@dataclass(frozen=True)
class Settings:
    app_env: str = "production"
    jwt_secret: str = ""
    google_client_id: str = ""
    host: str = "0.0.0.0"
    port: int = 4000
    data_dir: str = "./data"
    storage_backend: str = "json"
    database_url: str = "sqlite+aiosqlite:///./notes.db"
    cors_origins: tuple = ("*",)
    resend_api_key: str = ""
    mail_from: str = "onboarding@resend.dev"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def reveal_otp(self) -> bool:
        """Plaintext OTP in the response body, for local testing only."""
        return not self.is_production


def _split_origins(raw: str) -> List[str]:
    origins = [o.strip() for o in raw.split(",")]
    return [o for o in origins if o] or ["*"]


def load_settings() -> Settings:
    load_dotenv()
    app_env = (os.getenv("APP_ENV") or "production").strip().lower()

    jwt_secret = os.getenv("JWT_SECRET") or ""
    if not jwt_secret:
        if app_env == "production":
            raise ConfigurationError("JWT_SECRET must be set in production!")
        logger.warning("JWT_SECRET is not set; using the development secret.")
        jwt_secret = DEV_JWT_SECRET

    storage_backend = (os.getenv("STORAGE_BACKEND") or "json").strip().lower()
    if storage_backend not in ("json", "sql"):
        raise ConfigurationError(f"Unknown STORAGE_BACKEND '{storage_backend}' (expected json or sql)")

    try:
        port = int(os.getenv("PORT") or "4000")
    except ValueError:
        raise ConfigurationError("PORT must be an integer")

    return Settings(
        app_env=app_env,
        jwt_secret=jwt_secret,
        google_client_id=os.getenv("GOOGLE_CLIENT_ID") or "",
        host=os.getenv("HOST") or "0.0.0.0",
        port=port,
        data_dir=os.getenv("DATA_DIR") or "./data",
        storage_backend=storage_backend,
        database_url=os.getenv("DATABASE_URL") or "sqlite+aiosqlite:///./notes.db",
        cors_origins=tuple(_split_origins(os.getenv("CORS_ORIGINS") or "*")),
        resend_api_key=os.getenv("RESEND_API_KEY") or "",
        mail_from=os.getenv("MAIL_FROM") or "onboarding@resend.dev",
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
