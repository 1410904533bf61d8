from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

DEFAULT_INVOICE_WEBHOOK_URL = "https://pantheon-official.app.n8n.cloud/webhook/generate-invoice"


class Settings(BaseSettings):
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase project: Postgres, Auth and Storage
    SUPABASE_URL: str
    SUPABASE_JWKS_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_ANON_KEY: str | None = None
    SUPABASE_DB_URL: str
    SUPABASE_STORAGE_BUCKET: str = "portal"

    # Redis: either a plain URL (local development) or Upstash credentials
    REDIS_URL: str | None = None
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None
    REDIS_MAX_CONNECTIONS: int = 20

    # Portal workflow
    INVOICE_WEBHOOK_URL: str = DEFAULT_INVOICE_WEBHOOK_URL
    OPERATOR_USER_ID: str | None = None
    TOAST_TTL_SECONDS: int = 5
    PROFILE_LOOKUP_MAX_ATTEMPTS: int = 8
    PROFILE_LOOKUP_DELAY_SECONDS: float = 0.5
    EPHEMERAL_DOCUMENT_TTL_SECONDS: int = 3600

    CORS_ALLOWED_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Postgres pool
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("PROFILE_LOOKUP_MAX_ATTEMPTS")
    @classmethod
    def _non_negative_attempts(cls, value: int) -> int:
        if value < 0:
            raise ValueError("PROFILE_LOOKUP_MAX_ATTEMPTS must be >= 0")
        return value

    @model_validator(mode="after")
    def _redis_configured(self):
        if not self.REDIS_URL and not (self.UPSTASH_REDIS_REST_URL and self.UPSTASH_REDIS_REST_TOKEN):
            raise ValueError("Set REDIS_URL or both UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"

    def auth_url(self) -> str:
        """Base URL of the Supabase Auth (GoTrue) REST API."""
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"

    def storage_url(self) -> str:
        """Base URL of the Supabase Storage REST API."""
        return f"{self.SUPABASE_URL.rstrip('/')}/storage/v1"

    def redis_url(self) -> str:
        """
        Native-protocol Redis URL.

        Upstash publishes a REST endpoint (https://<host>); the same host
        accepts TLS Redis connections on 6379 with the REST token as password.
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        host = self.UPSTASH_REDIS_REST_URL.replace("https://", "").replace("http://", "").strip("/")
        return f"rediss://default:{self.UPSTASH_REDIS_REST_TOKEN}@{host}:6379"

    def get_db_pool_config(self) -> dict:
        """Pool sizing; development runs a smaller, quicker-to-fail pool."""
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }
        if self.environment == "development":
            config.update({"min_size": 2, "max_size": 6, "timeout": 15.0})
        return config


settings = Settings()
