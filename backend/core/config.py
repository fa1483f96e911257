"""
Centralised settings using `pydantic-settings`.

All env-vars are loaded once at import time. The sync engine itself never
reads `settings`; the API layer turns them into the policy objects below.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class _Settings(BaseSettings):
    # environment
    ENV: str = "development"  # development | staging | production

    # CORS
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # Security / JWT
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # Gemini
    GEMINI_API_KEY: str | None = None          # set this in .env / secrets manager
    GEMINI_MODEL: str = "gemini-1.5-flash"
    SUMMARY_MAX_CHARS: int = 12000
    DETAILED_NOTES_MAX_CHARS: int = 16000

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./app.db"

    # Log level (DEBUG/INFO/WARNING/ERROR)
    LOG_LEVEL: str = "INFO"
    # empty disables the rotating file sink
    LOG_DIR: str = "logs"
    LOG_RETENTION_DAYS: int = 7

    # Meeting platform (Microsoft Graph). Order matters: first answer wins.
    GRAPH_BASE_URLS: List[str] = [
        "https://graph.microsoft.com/beta",
        "https://graph.microsoft.com/v1.0",
    ]
    GRAPH_TIMEOUT_SECONDS: float = 20.0
    CALENDAR_PAGE_SIZE: int = 75
    CALENDAR_MAX_EVENTS: int = 300

    # Feature flags (process-wide, same for every org)
    CHECK_TRANSCRIPTS: bool = True
    DEBUG_TRANSCRIPTS: bool = False

    # Transcript discovery
    TRANSCRIPT_MAX_CHECKS: int = 30
    TRANSCRIPT_CONCURRENCY: int = 4
    MEETING_TIME_SLACK_MINUTES: int = 90
    PICK_WINDOW_BEFORE_HOURS: float = 2
    PICK_WINDOW_AFTER_HOURS: float = 8

    # Incremental sync
    SYNC_RECENT_DAYS: int = 10
    SYNC_BACKFILL_DAYS: int = 90
    SYNC_BACKFILL_INTERVAL_HOURS: int = 24
    SYNC_EDGE_OVERLAP_DAYS: int = 1
    RANGE_MERGE_TOLERANCE_SECONDS: int = 60

    # Default browse window
    CALENDAR_PAST_DAYS: int = 30
    CALENDAR_FUTURE_DAYS: int = 3

    # Summary lock
    SUMMARY_STALE_MINUTES: int = 5
    SUMMARY_WAIT_SECONDS: float = 20.0
    SUMMARY_POLL_INTERVAL_SECONDS: float = 0.5

    # --- internal ---
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = _Settings()  # Singleton
