from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "erp-sync"
    version: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/erpsync.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Auth
    AUTH_JWT_SECRET: str = "change-me"
    AUTH_JWT_ALGORITHM: str = "HS256"
    SYSTEM_API_KEY: str = ""  # shared secret used by the scheduler

    # Credential vault: 64 hex chars (32 bytes) for AES-256-GCM
    CREDENTIAL_ENCRYPTION_KEY: str = ""

    # Upstream ERP calls
    ERP_HTTP_TIMEOUT_SECONDS: float = 15.0
    TOKEN_REFRESH_BUFFER_SECONDS: int = 300

    # Admission control
    SYNC_COOLDOWN_SECONDS: int = 60
    SYNC_RATE_LIMIT_PER_HOUR: int = 30
    AI_RATE_LIMIT_PER_HOUR: int = 10
    IDEMPOTENCY_TTL_HOURS: int = 24

    # Sync retries
    SYNC_MAX_RETRIES: int = 3
    SYNC_RETRY_BACKOFF_SECONDS: int = 60

    # AI field mapping
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "google/gemini-2.5-flash"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"


settings = Settings()
