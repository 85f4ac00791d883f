"""Application settings loaded from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET_KEY = "dev-secret-key-change-me"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Settings:
    """Runtime configuration for the API."""

    APP_NAME = "Habit Nudge API"
    ALGORITHM = "HS256"

    def __init__(self) -> None:
        self.MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
        self.DB_NAME = os.getenv("DB_NAME", "habit_nudge")
        self.SECRET_KEY = os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY)
        self.ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)
        self.CORS_ORIGINS = self._split(os.getenv("CORS_ORIGINS", "*"))
        self.DEV_MODE = _env_bool("DEV_MODE", default=False)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR: Optional[str] = os.getenv("LOG_DIR") or None
        self.COMPLETION_MAX_ATTEMPTS = _env_int("COMPLETION_MAX_ATTEMPTS", 3)
        self.REFERRAL_XP = _env_int("REFERRAL_XP", 20)
        self.PORT = _env_int("PORT", 8000)
        if not self.DEV_MODE and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be set when DEV_MODE is off.")
        if self.COMPLETION_MAX_ATTEMPTS < 1:
            raise ValueError("COMPLETION_MAX_ATTEMPTS must be at least 1.")

    @staticmethod
    def _split(raw: str) -> List[str]:
        return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
