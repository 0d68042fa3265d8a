from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "VoucherVault API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Shared voucher balances, redemptions and family sharing"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB (transactions need a replica set)
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    DATABASE_NAME: str = "vouchervault"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:8081", "http://localhost:8000"]

    # JWT
    SECRET_KEY: str = "change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Image upload
    MAX_FILE_SIZE: int = 10485760
    UPLOAD_DIR: str = "uploads"
    PUBLIC_UPLOAD_URL: str = "http://localhost:8000/uploads"

    # Notifications
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com/emails"
    INVITE_EMAIL_FROM: str = "VoucherVault <noreply@vouchervault.app>"
    HTTP_TIMEOUT_SECONDS: int = 10

    # Vouchers
    DEFAULT_CURRENCY: str = "EUR"
    REMINDER_DAYS: List[int] = [30, 14, 7, 1]
    REMINDER_POLL_SECONDS: int = 300

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
