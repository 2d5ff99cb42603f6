"""Service settings.

Values come from environment variables, read once and cached by get_settings().
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


def _get_env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


class Settings(BaseModel):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Title shown in the OpenAPI docs.
        log_level: loguru level name.
        default_preset: Exercise preset used when a session is created without one.
        max_sessions: Upper bound on concurrently open sessions.
        max_frames_per_request: Upper bound on frames in one /analyze request.
        cors_origins: Allowed CORS origins.
    """

    app_name: str = "RepCoach API"
    log_level: str = Field(default_factory=lambda: os.getenv("REPCOACH_LOG_LEVEL", "INFO"))
    default_preset: str = Field(default_factory=lambda: os.getenv("REPCOACH_DEFAULT_PRESET", "yoga"))
    max_sessions: int = Field(default_factory=lambda: _get_env_int("REPCOACH_MAX_SESSIONS", 64), ge=1)
    max_frames_per_request: int = Field(
        default_factory=lambda: _get_env_int("REPCOACH_MAX_FRAMES", 18000), ge=1
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: [o.strip() for o in os.getenv("REPCOACH_CORS_ORIGINS", "*").split(",") if o.strip()]
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
