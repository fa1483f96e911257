"""
Turns settings into the explicit policy objects the sync engine takes, and
wires the services for a request. Tests override these with
`app.dependency_overrides`.
"""

from __future__ import annotations

from datetime import timedelta
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import async_session_factory
from core.security import CallerContext, get_caller
from services.annotator import AnnotatorConfig
from services.graph_client import GraphClient
from services.summarizer import GeminiSummarizer
from services.sync_state import SyncPolicy
from services.transcript_picker import PickerPolicy
from services.transcripts import LockPolicy


def get_session_factory() -> Callable[[], AsyncSession]:
    return async_session_factory


def get_annotator_config() -> AnnotatorConfig:
    return AnnotatorConfig(
        enabled=settings.CHECK_TRANSCRIPTS,
        debug=settings.DEBUG_TRANSCRIPTS,
        max_checks=settings.TRANSCRIPT_MAX_CHECKS,
        concurrency=settings.TRANSCRIPT_CONCURRENCY,
        time_slack=timedelta(minutes=settings.MEETING_TIME_SLACK_MINUTES),
        picker=PickerPolicy(
            before_start=timedelta(hours=settings.PICK_WINDOW_BEFORE_HOURS),
            after_end=timedelta(hours=settings.PICK_WINDOW_AFTER_HOURS),
        ),
    )


def get_sync_policy() -> SyncPolicy:
    return SyncPolicy(
        recent_days=settings.SYNC_RECENT_DAYS,
        backfill_days=settings.SYNC_BACKFILL_DAYS,
        backfill_interval=timedelta(hours=settings.SYNC_BACKFILL_INTERVAL_HOURS),
        edge_overlap=timedelta(days=settings.SYNC_EDGE_OVERLAP_DAYS),
        merge_tolerance=timedelta(seconds=settings.RANGE_MERGE_TOLERANCE_SECONDS),
    )


def get_lock_policy() -> LockPolicy:
    return LockPolicy(
        stale_after=timedelta(minutes=settings.SUMMARY_STALE_MINUTES),
        wait_timeout=timedelta(seconds=settings.SUMMARY_WAIT_SECONDS),
        poll_interval=timedelta(seconds=settings.SUMMARY_POLL_INTERVAL_SECONDS),
    )


def get_summarizer() -> GeminiSummarizer:
    return GeminiSummarizer(
        api_key=settings.GEMINI_API_KEY,
        model_name=settings.GEMINI_MODEL,
        max_chars=settings.SUMMARY_MAX_CHARS,
        detailed_max_chars=settings.DETAILED_NOTES_MAX_CHARS,
    )


class GraphClientFactory:
    """Opens a GraphClient for a bearer token (None when there is no token)."""

    def __call__(self, access_token: Optional[str]) -> Optional[GraphClient]:
        if not access_token or not access_token.strip():
            return None
        return GraphClient(
            access_token.strip(),
            base_urls=settings.GRAPH_BASE_URLS,
            timeout=settings.GRAPH_TIMEOUT_SECONDS,
            page_size=settings.CALENDAR_PAGE_SIZE,
            max_events=settings.CALENDAR_MAX_EVENTS,
        )


def get_graph_factory() -> Callable[[Optional[str]], Optional[GraphClient]]:
    return GraphClientFactory()


async def get_graph_client(
    caller: CallerContext = Depends(get_caller),
    factory: Callable[[Optional[str]], Optional[GraphClient]] = Depends(get_graph_factory),
) -> AsyncIterator[Optional[GraphClient]]:
    client = factory(caller.access_token)
    if client is None:
        yield None
        return
    async with client:
        yield client
