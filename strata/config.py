# strata/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import EmailStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///strata/strata_dev.db"

    # --- Security / JWT ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # --- Cron ---
    cron_secret: Optional[str] = None

    # --- CORS ---
    cors_allow_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # --- Uploads ---
    uploads_root: str = "uploads"
    uploads_public_prefix: str = "uploads"
    api_base_url: str = "http://localhost:8000"

    # --- Email ---
    email_backend: str = "local"
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_from_address: Optional[EmailStr] = None
    email_from_name: str = "JMB Idaman Kota Puteri"
    email_output_dir: str = "uploads/emails"
    email_host: Optional[str] = None
    email_port: int = 587
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True

    # --- Notifications ---
    whatsapp_enabled: bool = True
    notification_workers: int = 2

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def uploads_root_path(self) -> Path:
        return Path(self.uploads_root)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
