import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_GATEWAY_URL = "https://api-test.ezeepayments.com"
DEFAULT_SECURE_URL = "https://secure-test.ezeepayments.com"


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: Optional[str] = None
    gateway_base_url: str = DEFAULT_GATEWAY_URL
    gateway_secure_url: str = DEFAULT_SECURE_URL
    licence_key: Optional[str] = None
    site: Optional[str] = None
    app_base_url: str = "http://localhost:3000"
    gateway_timeout: float = 30.0
    log_level: str = "INFO"
    environment: str = "development"
    cors_allow_origins: tuple = ("*",)

    @classmethod
    def from_env(cls) -> "Settings":
        # Force-load .env (reload-safe)
        load_dotenv(dotenv_path=BASE_DIR / ".env")

        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

        origins = os.getenv("CORS_ALLOW_ORIGINS", "*")

        return cls(
            database_url=database_url,
            jwt_secret=os.getenv("JWT_SECRET"),
            gateway_base_url=os.getenv("EZEE_PAYMENTS_BASE_URL", DEFAULT_GATEWAY_URL).rstrip("/"),
            gateway_secure_url=os.getenv("EZEE_PAYMENTS_SECURE_URL", DEFAULT_SECURE_URL),
            licence_key=os.getenv("EZEE_LICENCE_KEY"),
            site=os.getenv("EZEE_SITE"),
            app_base_url=os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
            gateway_timeout=float(os.getenv("GATEWAY_TIMEOUT", "30")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
            cors_allow_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )
