# backend/app/core/config.py
from typing import List, Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

from app.core.constants import STORAGE_BATCH_CEILING, MAX_DELETE_CONCURRENCY

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent  # Goes to schoolmanager root
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "SchoolManager"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Paystack
    PAYSTACK_SECRET_KEY: Optional[str] = None
    PAYSTACK_WEBHOOK_SECRET: Optional[str] = None  # falls back to the secret key
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CALLBACK_URL: Optional[str] = None
    PAYSTACK_TIMEOUT_SECONDS: float = 15.0
    DEFAULT_CURRENCY: str = "GHS"
    PAYMENT_RECONCILE_AFTER_MINUTES: int = 30

    # Identity provider (identity toolkit admin API)
    IDENTITY_PROVIDER_URL: str = "https://identitytoolkit.googleapis.com/v1"
    IDENTITY_PROJECT_ID: Optional[str] = None
    IDENTITY_ACCESS_TOKEN: Optional[str] = None
    IDENTITY_TIMEOUT_SECONDS: float = 10.0

    # Tenant deletion
    MAX_BATCH_SIZE: int = 450
    DELETE_CONCURRENCY: int = 4

    @field_validator("MAX_BATCH_SIZE")
    @classmethod
    def clamp_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_BATCH_SIZE must be positive")
        return min(v, STORAGE_BATCH_CEILING)

    @field_validator("DELETE_CONCURRENCY")
    @classmethod
    def clamp_concurrency(cls, v: int) -> int:
        return max(1, min(v, MAX_DELETE_CONCURRENCY))

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 900
    RATE_LIMIT_MAX_REQUESTS: int = 300
    RATE_LIMIT_SENSITIVE_MAX_REQUESTS: int = 120

    @property
    def webhook_secret(self) -> Optional[str]:
        return self.PAYSTACK_WEBHOOK_SECRET or self.PAYSTACK_SECRET_KEY


settings = Settings()
