import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./esg_hub.db"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # "development" turns on debug logging, anything else keeps only warnings
    ENVIRONMENT: str = "development"
    RUN_MIGRATIONS: bool = True

    CACHE_TTL_SECONDS: int = 300
    CACHE_SWEEP_INTERVAL_SECONDS: int = 600

    # OpenAI-compatible chat completions gateway
    AI_GATEWAY_URL: str = "https://ai.gateway.lovable.dev/v1"
    AI_GATEWAY_API_KEY: Optional[str] = None
    AI_MODEL: str = "google/gemini-2.5-flash"
    AI_REQUEST_TIMEOUT_SECONDS: float = 60.0

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def log_level(self) -> int:
        return logging.DEBUG if self.is_development else logging.WARNING


# Create a single instance of the settings to use everywhere
settings = Settings()
