"""Application configuration management"""

import json
import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional
from urllib.parse import quote_plus

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from authgate.core.exceptions import ConfigurationError

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

_DURATION_RE = re.compile(r"^(\d+)\s*([smhd])$")
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a lifetime value into a timedelta.

    Accepts ``timedelta`` instances, integer seconds, digit strings, or
    strings like ``30s``, ``5m``, ``12h``, ``7d``.

    Raises:
        ValueError: If the value is malformed or not positive.
    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    elif isinstance(value, (int, float)):
        duration = timedelta(seconds=value)
    elif isinstance(value, str):
        raw = value.strip().lower()
        if raw.isdigit():
            duration = timedelta(seconds=int(raw))
        else:
            match = _DURATION_RE.match(raw)
            if not match:
                raise ValueError(f"Invalid duration: {value!r} (expected e.g. 30s, 5m, 12h, 7d)")
            amount, unit = match.groups()
            duration = timedelta(**{_DURATION_UNITS[unit]: int(amount)})
    else:
        raise ValueError(f"Invalid duration: {value!r}")

    if duration <= timedelta(0):
        raise ValueError(f"Duration must be positive: {value!r}")
    return duration


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        frozen=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "AuthGate"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    API_PREFIX: str = "/api"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "authgate_db"
    POSTGRES_USER: str = "authgate"
    POSTGRES_PASSWORD: str = "authgate"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Credential store
    STORE_BACKEND: str = "sql"  # sql | memory
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Tokens
    ACCESS_TOKEN_SECRET: str = ""
    REFRESH_TOKEN_SECRET: str = ""
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_LIFETIME: timedelta = timedelta(minutes=5)
    REFRESH_TOKEN_LIFETIME: timedelta = timedelta(days=1)

    # Refresh cookie
    REFRESH_COOKIE_NAME: str = "refresh_token"
    COOKIE_SECURE: Optional[bool] = None

    # Password hashing
    BCRYPT_ROUNDS: int = 10

    # Expiry sweeper
    RUN_EMBEDDED_SWEEPER: bool = True
    SWEEP_INTERVAL_SECONDS: float = 60.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "create_all"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    @field_validator("ACCESS_TOKEN_LIFETIME", "REFRESH_TOKEN_LIFETIME", mode="before")
    @classmethod
    def _parse_lifetime(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def _check_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    @field_validator("STORE_BACKEND")
    @classmethod
    def _check_store_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in {"sql", "memory"}:
            raise ValueError("STORE_BACKEND must be 'sql' or 'memory'")
        return backend

    @model_validator(mode="after")
    def _check_memory_store_workers(self):
        # Each worker process would hold its own in-memory store
        if self.STORE_BACKEND == "memory" and self.WORKERS > 1:
            raise ValueError("STORE_BACKEND=memory requires WORKERS=1")
        return self

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def refresh_cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is None:
            return self.is_production
        return self.COOKIE_SECURE

    @property
    def refresh_cookie_path(self) -> str:
        return f"{self.API_PREFIX.rstrip('/')}/auth"

    def get_log_file(self) -> str:
        """Resolve log file path; empty means stream logging only"""
        p = self.LOG_FILE.strip()
        if not p:
            return ""
        if not Path(p).is_absolute():
            return str(_BASE_DIR.parent / p)
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate signing secrets.

        Raises:
            ConfigurationError: If a secret is missing, both secrets are equal,
                or a production secret is too short.
        """
        if not self.ACCESS_TOKEN_SECRET:
            raise ConfigurationError("ACCESS_TOKEN_SECRET is not defined")
        if not self.REFRESH_TOKEN_SECRET:
            raise ConfigurationError("REFRESH_TOKEN_SECRET is not defined")
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ConfigurationError(
                "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ"
            )

        if not self.is_production:
            return

        for name in ("ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET"):
            if len(getattr(self, name)) < 32:
                raise ConfigurationError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from the environment, translating validation failures.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return load_settings()
