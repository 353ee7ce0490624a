"""Runtime configuration for the proctored examination service."""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EXAM_", env_file=".env", extra="ignore"
    )

    # ==================== DATABASE ====================
    DATABASE_URL: str = "sqlite:///./proctored_exam.db"
    DATABASE_ECHO: bool = False

    # ==================== ATTEMPT RULES ====================
    # Proctoring warnings allowed before the attempt is force-submitted
    WARNING_LIMIT: int = Field(default=5, ge=1)

    # ==================== TRANSIENT STORE RETRIES ====================
    STORE_RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    STORE_RETRY_BASE_DELAY: float = 0.5  # seconds
    STORE_RETRY_MAX_DELAY: float = 4.0  # seconds
    RETRY_AFTER_SECONDS: int = 30

    # ==================== HTTP ====================
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level.upper())
