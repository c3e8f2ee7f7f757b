from __future__ import annotations

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_origins(raw: Any) -> List[str]:
    """CORS origins from env: a parsed list, "*", or "https://a.org, https://b.org"."""
    if isinstance(raw, (list, tuple)):
        candidates = [str(x) for x in raw]
    else:
        candidates = ("" if raw is None else str(raw)).split(",")
    origins = [c.strip() for c in candidates if c.strip()]
    return origins or ["*"]


class Settings(BaseSettings):
    """
    Central backend settings.

    Read once at process start (create_app / run). Nothing re-reads the
    environment at request time.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # App identity
    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="membership-api", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # CORS for the single-page frontend
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Preferred: a real SQLAlchemy URL (SQLite locally, Postgres hosted)
    database_url: str = Field(default="", alias="DATABASE_URL")

    # Fallback when DATABASE_URL is not set
    db_path: str = Field(default="./data/membership.sqlite", alias="DB_PATH")

    # Reported by /health, and used by the dashboard client
    public_api_base: str = Field(default="", alias="PUBLIC_API_BASE")
    dashboard_api_base: str = Field(default="http://127.0.0.1:8000", alias="DASHBOARD_API_BASE")
    http_timeout_s: float = Field(default=20.0, alias="DASHBOARD_HTTP_TIMEOUT")

    # Web push (subscription storage only; the key is handed to browsers)
    vapid_public_key: str = Field(default="", alias="VAPID_PUBLIC_KEY")

    # Reporting windows + bounds
    health_upcoming_days: int = Field(default=30, alias="HEALTH_UPCOMING_DAYS")
    health_recent_audit_days: int = Field(default=7, alias="HEALTH_RECENT_AUDIT_DAYS")
    health_max_upcoming_events: int = Field(default=500, alias="HEALTH_MAX_UPCOMING_EVENTS")
    health_max_recent_audit: int = Field(default=5000, alias="HEALTH_MAX_RECENT_AUDIT")
    health_slow_store_ms: float = Field(default=1000.0, alias="HEALTH_SLOW_STORE_MS")

    # Login lockout
    login_max_attempts: int = Field(default=5, alias="LOGIN_MAX_ATTEMPTS")
    login_lock_minutes: int = Field(default=15, alias="LOGIN_LOCK_MINUTES")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("public_api_base", "dashboard_api_base", mode="before")
    @classmethod
    def _norm_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("database_url", "vapid_public_key", mode="before")
    @classmethod
    def _norm_stripped(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/membership.sqlite"

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def push_enabled(self) -> bool:
        return bool(self.vapid_public_key)

    @property
    def resolved_database_url(self) -> str:
        """
        DATABASE_URL wins. Otherwise DB_PATH, which may already be a sqlite
        URL or a plain file path.
        """
        if self.database_url:
            return self.database_url
        if self.db_path.startswith("sqlite:"):
            return self.db_path
        # Relative paths give sqlite:///rel, absolute ones sqlite:////abs
        return f"sqlite:///{Path(self.db_path).as_posix()}"


def load_settings() -> Settings:
    return Settings()
