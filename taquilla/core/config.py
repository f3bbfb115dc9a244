from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Taquilla API"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Reservations
    RESERVATION_TTL_SECONDS: int = 300
    DEFAULT_MIN_PER_ORDER: int = 1
    DEFAULT_MAX_PER_ORDER: int = 10
    DEFAULT_CURRENCY: str = "COP"

    # Row-lock waits (postgres lock_timeout) and retry of contended units of work
    LOCK_TIMEOUT_MS: int = 3000
    CONTENTION_MAX_ATTEMPTS: int = 3
    CONTENTION_BACKOFF_MS: int = 50

    # Expiry sweep (Celery beat)
    EXPIRY_SWEEP_INTERVAL_SECONDS: float = 60.0
    EXPIRY_SWEEP_BATCH_SIZE: int = 500
    CELERY_TIMEZONE: str = "America/Bogota"

    # Checkout rate limit: N attempts per sliding window, per client identity
    RATE_LIMIT_ENABLED: bool = True
    CHECKOUT_RATE_LIMIT: int = 2
    CHECKOUT_RATE_WINDOW_SECONDS: int = 300

    APP_URL: str = "http://localhost:3000"  # back_urls and notification_url for Mercado Pago
    MARKETPLACE_FEE_PERCENTAGE: float = 5.0

    # Mercado Pago
    MP_ACCESS_TOKEN: str = ""
    MP_API_BASE: str = "https://api.mercadopago.com"
    MP_STATEMENT_DESCRIPTOR: str = "TAQUILLA"  # max 13 chars
    MP_SANDBOX: bool = False  # If True, skip real Mercado Pago calls and fake an approved payment flow
    MP_WEBHOOK_VERIFY: bool = False
    MP_WEBHOOK_SECRET: str = ""
    MP_WEBHOOK_TOLERANCE_SECONDS: int = 300  # 0 disables the x-signature timestamp check

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""  # e.g. ./data/logs; empty = console only


settings = Settings()
