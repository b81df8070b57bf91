# src/backend/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",            # auto-load .env (optional; process env wins)
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "courier-desk"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./courier_desk.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_TIMEOUT: int = 30
    AUTO_CREATE_TABLES: bool = True

    # Auth
    JWT_SECRET: str = "change-this-in-prod"
    JWT_ALG: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60
    JWT_LEEWAY_SECONDS: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    TIMEZONE: str = "Asia/Kolkata"

    # comma-separated; empty disables CORS
    CORS_ORIGINS: str = ""

    # Uploads (sizes in MB)
    UPLOAD_DIR: str = "uploads"
    MAX_POD_UPLOAD_MB: int = 10
    MAX_PROFILE_IMAGE_MB: int = 2
    MAX_WORD_TEMPLATE_MB: int = 10
    MAX_CSV_UPLOAD_MB: int = 10

    # Bulk work limits
    BULK_MAX_ROWS: int = 500
    BULK_TIMEOUT_SECONDS: int = 120

    # keep | blank | error
    PLACEHOLDER_POLICY: str = "keep"

    # Email
    APP_BASE_URL: str = "http://localhost:8000"
    EMAIL_PROVIDER: str = "smtp"       # "smtp" | "resend"
    RESEND_API_KEY: str | None = None
    EMAIL_TIMEOUT_SECONDS: int = 10
    REMINDER_AFTER_HOURS: int = 24

settings = Settings()
