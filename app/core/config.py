from functools import lru_cache
from os import getenv

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get DB config from environment
DB_USER = getenv("DB_USER", "postgres")
DB_PASSWORD = getenv("DB_PASSWORD", "postgres")
DB_HOST = getenv("DB_HOST", "localhost")
DB_PORT = getenv("DB_PORT", "5432")
DB_NAME = getenv("DB_NAME", "postgres")

# Build PostgreSQL URL
POSTGRES_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(arbitrary_types_allowed=True)

    # Database settings
    DATABASE_URL: str = getenv("DATABASE_URL", POSTGRES_URL)
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO_LOG: bool = False

    # API settings
    API_V1_STR: str = "/api"

    # Security settings
    JWT_SECRET_KEY: str = getenv("JWT_SECRET_KEY", "test_secret_key")
    JWT_ALGORITHM: str = "HS256"

    # CORS settings
    CORS_ORIGINS: list[str] = (
        getenv("CORS_ORIGINS", "").split(",") if getenv("CORS_ORIGINS") else []
    )

    # Conversation resolution settings
    RESOLVE_STEP_TIMEOUT_SECONDS: float = 10.0
    # A resolve is at most four guarded store calls; the ceiling must outlast
    # them so a hung step surfaces with its own label
    COALESCE_CEILING_SECONDS: float = 45.0

    # Server settings
    SERVER_HOST: str = getenv("SERVER_HOST", "0.0.0.0")
    SERVER_PORT: int = int(getenv("SERVER_PORT", "8000"))

    # Logging
    LOG_LEVEL: str = getenv("LOG_LEVEL", "INFO")


@lru_cache
def get_settings() -> Settings:
    """
    Cache and return settings instance
    """
    return Settings()
