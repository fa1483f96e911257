"""
Calendar endpoints: cache reads and explicit sync passes.

Plain reads only ever touch the cache. `refresh=true` runs a blocking sync
pass first and then redirects back to the cache-only URL.
"""

from datetime import datetime
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import (
    get_annotator_config,
    get_graph_client,
    get_session_factory,
    get_sync_policy,
)
from core.config import settings
from core.database import get_session
from core.security import CallerContext, get_caller
from core.timeutil import to_naive_utc, utcnow
from models.calendar import SyncOutcome, TimeRange
from models.event_cache import CachedEvent
from services.annotator import AnnotatorConfig, TranscriptAnnotator
from services.calendar_sync import SyncService, default_window
from services.event_cache import read_cache
from services.graph_client import GraphClient
from services.sync_state import SyncPolicy

router = APIRouter(prefix="/calendar", tags=["calendar"])


def _window(start: Optional[datetime], end: Optional[datetime]) -> TimeRange:
    if (start is None) != (end is None):
        raise HTTPException(status_code=400, detail="start and end must be given together")
    if start is None:
        return default_window(utcnow(), settings.CALENDAR_PAST_DAYS, settings.CALENDAR_FUTURE_DAYS)
    start, end = to_naive_utc(start), to_naive_utc(end)
    if end < start:
        raise HTTPException(status_code=400, detail="end must not precede start")
    return TimeRange(start=start, end=end)


def get_sync_service(
    client: Optional[GraphClient] = Depends(get_graph_client),
    session_factory: Callable[[], AsyncSession] = Depends(get_session_factory),
    annotator_config: AnnotatorConfig = Depends(get_annotator_config),
    policy: SyncPolicy = Depends(get_sync_policy),
) -> SyncService:
    return SyncService(session_factory, client, TranscriptAnnotator(client, annotator_config), policy)


def _cached_event(row: CachedEvent) -> dict:
    return {
        "id": row.event_id,
        "subject": row.subject,
        "start": row.start_date_time,
        "end": row.end_date_time,
        "location": row.location,
        "organizer": row.organizer_email,
        "attendees": row.attendee_emails,
        "hasTranscript": row.has_transcript,
        "transcripts": row.transcripts,
        "syncedAt": row.synced_at.isoformat(),
    }


def _outcome(outcome: SyncOutcome) -> dict:
    return {
        "coverage": (
            {"from": outcome.coverage.start.isoformat(), "to": outcome.coverage.end.isoformat()}
            if outcome.coverage
            else None
        ),
        "ranges": [{"from": r.start.isoformat(), "to": r.end.isoformat()} for r in outcome.ranges],
        "backfilled": outcome.backfilled,
        "failedRanges": outcome.failed_ranges,
        "truncatedRanges": outcome.truncated_ranges,
        "upserted": outcome.upserted,
        "withTranscript": outcome.transcript_count,
        "events": [
            {
                "id": item.event.id,
                "subject": item.event.subject,
                "start": item.event.start,
                "end": item.event.end,
                "hasTranscript": item.has_transcript,
                "reason": item.reason,
                "transcript": item.transcript.as_cache_entry() if item.transcript else None,
            }
            for item in outcome.events
        ],
    }


@router.get("/events", response_model=None)
async def get_calendar_events(
    request: Request,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    refresh: bool = False,
    force: bool = False,
    caller: CallerContext = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync_service),
) -> List[dict] | RedirectResponse:
    """
    Cached transcript meetings for the caller, newest first.
    """
    window = _window(start, end)

    if refresh:
        outcome = await sync.request_sync(caller.org_id, caller.user_email, window, force_refresh=force)
        logger.info(
            "Refresh for {} cached {} events ({} ranges failed)",
            caller.user_email, outcome.upserted, outcome.failed_ranges,
        )
        target = request.url.remove_query_params(["refresh", "force"])
        return RedirectResponse(url=str(target), status_code=303)

    rows = await read_cache(session, caller.org_id, caller.user_email, window)
    return [_cached_event(row) for row in rows]


@router.post("/sync")
async def sync_calendar(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    force: bool = False,
    caller: CallerContext = Depends(get_caller),
    sync: SyncService = Depends(get_sync_service),
) -> dict:
    """
    Run one sync pass and report what it did.
    """
    if not caller.access_token:
        raise HTTPException(
            status_code=401,
            detail="No meeting platform token available. Please sign in again.",
        )
    outcome = await sync.request_sync(caller.org_id, caller.user_email, _window(start, end), force_refresh=force)
    return _outcome(outcome)
