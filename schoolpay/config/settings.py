"""
Application settings.

Everything comes from the environment or `.env`; defaults suit local
development against the real bank endpoint with encrypted responses.
"""
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):

    # Application
    APP_NAME: str = "School Payments API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE_ENABLED: bool = False
    LOG_FILE_PATH: str = "logs/schoolpay.log"
    LOG_FILE_MAX_BYTES: int = 5 * 1024 * 1024
    LOG_FILE_BACKUP_COUNT: int = 5

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Database
    DATABASE_URL: str = "sqlite:///./schoolpay.db"

    # Bank gateway
    BANK_BASE_URL: str = "https://servicios.bncenlinea.com:16500/api"
    BANK_CLIENT_GUID: str = ""
    BANK_MASTER_KEY: str = ""
    BANK_TIMEOUT_SECONDS: float = 15.0
    BANK_TRANSPORT: Literal["http", "offline"] = "http"
    BANK_RESPONSE_ENCODING: Literal["plain", "encrypted"] = "encrypted"

    # Billing
    MONTHLY_FEE_PER_STUDENT: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def effective_log_level(self) -> str:
        """Configured level, raised to at least WARNING in production."""
        level = self.LOG_LEVEL.upper()
        if level not in LOG_LEVELS:
            level = "INFO"
        if self.is_production and LOG_LEVELS.index(level) < LOG_LEVELS.index("WARNING"):
            return "WARNING"
        return level


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
