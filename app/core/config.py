import json

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str

    REDIS_URL: str = "redis://redis:6379/0"

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    FRONTEND_URL: str = "http://localhost:5173"

    BACKEND_CORS_ORIGINS: str = '["http://localhost:5173","http://localhost:3000"]'

    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Marketplace Messaging API"
    DEBUG: bool = False

    # Messaging
    MESSAGE_PREVIEW_LENGTH: int = 100
    MESSAGE_MAX_LENGTH: int = 5000
    MAX_ATTACHMENTS: int = 10
    MESSAGE_RATE_LIMIT: str = "60/minute"
    UNREAD_CACHE_TTL_SECONDS: int = 30

    # Notifications
    NOTIFICATIONS_ASYNC: bool = False  # hand writes to the Celery worker
    NOTIFY_ON_NEW_MESSAGE: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            try:
                parsed: list[str] = json.loads(self.BACKEND_CORS_ORIGINS)
                return parsed
            except json.JSONDecodeError:
                return ["http://localhost:5173", "http://localhost:3000"]
        return self.BACKEND_CORS_ORIGINS


settings = Settings()
