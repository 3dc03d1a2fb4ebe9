"""
HomeBase Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

SUPPORTED_LANGUAGES = ("he", "en")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM: provider-agnostic (openai, gemini, anthropic, cohere)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # SQLite
    DATABASE_PATH: str = "data/homebase.db"

    # Security: empty list means every chat may use the bot
    ALLOWED_USER_IDS: list[int] = []

    # Presentation
    DEFAULT_TIMEZONE: str = "UTC"
    LANGUAGE: str = "he"

    # Notifications
    DAILY_DIGEST_HOUR: int = 8
    REMINDER_LOOKAHEAD_MINUTES: int = 15
    REMINDER_TOLERANCE_MINUTES: int = 1
    REMINDER_TICK_SECONDS: int = 60

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator(
        "DAILY_DIGEST_HOUR",
        "REMINDER_LOOKAHEAD_MINUTES",
        "REMINDER_TOLERANCE_MINUTES",
        "REMINDER_TICK_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LANGUAGE", mode="before")
    @classmethod
    def parse_language(cls, v: str) -> str:
        lang = (v or "he").strip().lower()
        if lang not in SUPPORTED_LANGUAGES:
            raise ValueError(
                f"Unsupported LANGUAGE={lang!r}. Supported: {', '.join(SUPPORTED_LANGUAGES)}"
            )
        return lang


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/homebase.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        LANGUAGE=os.getenv("LANGUAGE", "he"),
        DAILY_DIGEST_HOUR=os.getenv("DAILY_DIGEST_HOUR", "8"),
        REMINDER_LOOKAHEAD_MINUTES=os.getenv("REMINDER_LOOKAHEAD_MINUTES", "15"),
        REMINDER_TOLERANCE_MINUTES=os.getenv("REMINDER_TOLERANCE_MINUTES", "1"),
        REMINDER_TICK_SECONDS=os.getenv("REMINDER_TICK_SECONDS", "60"),
    )


# Singleton, imported by the composition root and the bot layer as:
#   from src.config import settings
settings = _load_settings()
