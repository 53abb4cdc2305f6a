from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Birthday Greeter"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:3000"
    LOG_LEVEL: str = "info"

    # Database
    DATABASE_URL: str = "sqlite:///./birthday_greeter.db"

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Email service
    EMAIL_SERVICE_URL: str = "https://email-service.digitalenvision.com.au/send-email"
    EMAIL_SEND_TIMEOUT_SECONDS: float = 10.0

    # Birthday delivery
    BIRTHDAY_NOTIFY_HOUR: int = 9
    BIRTHDAY_NOTIFY_MINUTE: int = 0
    BIRTHDAY_DELIVERY_WINDOW_MINUTES: int = 900
    MAX_RETRY_ATTEMPTS: int = 3
    BIRTHDAY_KEY_PREFIX: str = "birthday"
    SENT_MESSAGES_TTL_DAYS: int = 400

    # Periodic cycles
    SCHEDULE_INTERVAL_SECONDS: int = 60
    DISPATCH_INTERVAL_SECONDS: int = 60
    RECOVERY_CHECK_INTERVAL_SECONDS: int = 300

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    @property
    def REDIS_URL(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
