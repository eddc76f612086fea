"""
Application configuration management using Pydantic Settings.
All settings can be overridden via environment variables and are read
once at import time.
"""

from typing import Any, List

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Application
    PROJECT_NAME: str = "Nursing Credential Portal"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    DEBUG: bool = False

    # Security
    SECRET_KEY: str | None = None  # Token operations fail with InternalError when unset
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    TOKEN_COOKIE_NAME: str = "token"
    TOKEN_REVOCATION_BACKEND: str = "memory"  # "memory" or "redis"

    # Password hashing
    PASSWORD_HASH_ROUNDS: int = 29000  # pbkdf2_sha256 iterations
    BCRYPT_ROUNDS: int = 12

    @field_validator("BCRYPT_ROUNDS", mode="after")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        """Keep the bcrypt work factor suitable for interactive login."""
        if v < 10:
            raise ValueError("BCRYPT_ROUNDS must be at least 10")
        return v

    @field_validator("TOKEN_REVOCATION_BACKEND", mode="after")
    @classmethod
    def validate_revocation_backend(cls, v: str) -> str:
        """Only the in-process and Redis stores exist."""
        v = v.lower()
        if v not in ("memory", "redis"):
            raise ValueError("TOKEN_REVOCATION_BACKEND must be 'memory' or 'redis'")
        return v

    # Database
    DATABASE_URL: str | None = None  # Optional: Use this if set (e.g., sqlite:///./data/dev.db)
    POSTGRES_SERVER: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_DB: str | None = None

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Get database URI - supports both SQLite and PostgreSQL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.POSTGRES_SERVER and self.POSTGRES_USER and self.POSTGRES_PASSWORD and self.POSTGRES_DB:
            return (
                f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./data/dev.db"

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.SQLALCHEMY_DATABASE_URI.startswith("sqlite")

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        """Construct Redis URL."""
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> List[str] | str:
        """Parse CORS origins from string or list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # First administrator (created on startup)
    DISABLE_BOOTSTRAP_USERS: bool = False
    FIRST_ADMIN_USERNAME: str = "admin"
    FIRST_ADMIN_EMAIL: str = "admin@example.com"
    FIRST_ADMIN_PASSWORD: str = "changethis"

    # File Storage
    FILE_STORAGE_PATH: str = "./data"
    MAX_UPLOAD_SIZE_MB: int = 50
    MAX_IMAGE_SIZE_MB: int = 10


settings = Settings()  # type: ignore
