from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = "production"
    LOG_LEVEL: str = "INFO"

    REDIS_URL: str = "redis://localhost:6379/0"
    FANOUT_MODE: Literal["local", "redis"] = "local"
    REDIS_PUBSUB_CHANNEL: str = "chat.fanout"

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    CHAT_ENCRYPTION_KEY: str = ""
    CHAT_ENCRYPTION_SALT: str = "marketplace-chat"
    CHAT_USE_COMPRESSION: bool = True

    DB_TIMEOUT_SECONDS: float = 10.0
    CODEC_TIMEOUT_SECONDS: float = 5.0

    RATE_LIMIT_MAX_MESSAGES: int = 30
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    MESSAGES_PAGE_LIMIT: int = 1000

    ARCHIVE_AFTER_DAYS: int = 90
    ARCHIVE_BATCH_SIZE: int = 500

    WS_HEARTBEAT_SECONDS: int = 30

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
