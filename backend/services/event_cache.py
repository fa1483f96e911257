"""
Per-user cache of transcript-bearing calendar events.

Writes are idempotent upserts on (org, user, event): re-running a sync pass
overwrites the same rows. One pass goes out as a single multi-row statement;
if the database rejects it, rows are retried one by one inside savepoints so
a single bad entry cannot sink the rest.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from core.timeutil import utcnow
from models.calendar import AnnotatedEvent, TimeRange
from models.event_cache import CachedEvent
from services.db import upsert_statement

KEY_COLUMNS = ["org_id", "user_email", "event_id"]


class UpsertResult(BaseModel):
    upserted: int = 0
    skipped: int = 0
    failed: int = 0


def cache_row(org_id: str, user_email: str, item: AnnotatedEvent, now: datetime) -> Optional[Dict[str, Any]]:
    """Column values for one annotated event, or None if it must not be cached."""
    if not item.has_transcript or item.transcript is None:
        return None
    event = item.event
    if not event.id:
        return None
    return {
        "org_id": org_id,
        "user_email": user_email,
        "event_id": event.id,
        "subject": event.subject,
        "start_date_time": event.start,
        "end_date_time": event.end,
        "start_at": event.start_at,
        "end_at": event.end_at,
        "location": event.location,
        "organizer_email": event.organizer_email,
        "attendee_emails": event.participant_emails(),
        "has_transcript": True,
        "transcripts": [item.transcript.as_cache_entry()],
        "synced_at": now,
        "created_at": now,
        "updated_at": now,
    }


def _upsert(session: AsyncSession, rows: List[Dict[str, Any]]):
    stmt = upsert_statement(session, CachedEvent.__table__, rows)
    overwrite = {
        col: stmt.excluded[col]
        for col in rows[0]
        if col not in KEY_COLUMNS and col != "created_at"
    }
    return stmt.on_conflict_do_update(index_elements=KEY_COLUMNS, set_=overwrite)


async def upsert_cached_events(
    session: AsyncSession,
    org_id: str,
    user_email: str,
    events: Sequence[AnnotatedEvent],
    now: Optional[datetime] = None,
) -> UpsertResult:
    now = now or utcnow()
    result = UpsertResult()

    rows: Dict[str, Dict[str, Any]] = {}
    for item in events:
        if not item.has_transcript:
            continue
        row = cache_row(org_id, user_email, item, now)
        if row is None:
            logger.warning("Skipping malformed cache entry for event {!r}", item.event.id)
            result.skipped += 1
            continue
        # one row per key, the last annotation wins
        rows[row["event_id"]] = row

    if not rows:
        return result

    batch = list(rows.values())
    try:
        await session.execute(_upsert(session, batch))
        await session.commit()
        result.upserted = len(batch)
    except DBAPIError as exc:
        await session.rollback()
        logger.warning("Bulk cache upsert of {} rows failed ({}); retrying row by row", len(batch), exc)
        for row in batch:
            try:
                async with session.begin_nested():
                    await session.execute(_upsert(session, [row]))
                result.upserted += 1
            except DBAPIError:
                logger.exception("Cache upsert failed for event {}", row["event_id"])
                result.failed += 1
        await session.commit()

    logger.info(
        "Cached {} transcript events for {} (skipped={}, failed={})",
        result.upserted, user_email, result.skipped, result.failed,
    )
    return result


async def read_cache(
    session: AsyncSession,
    org_id: str,
    user_email: str,
    window: Optional[TimeRange] = None,
) -> List[CachedEvent]:
    """Cached transcript events for one user, newest start first. Never calls the platform."""
    stmt = select(CachedEvent).where(
        CachedEvent.org_id == org_id,
        CachedEvent.user_email == user_email,
        CachedEvent.has_transcript.is_(True),
    )
    if window is not None:
        stmt = stmt.where(CachedEvent.start_at >= window.start, CachedEvent.start_at <= window.end)
    stmt = stmt.order_by(CachedEvent.start_at.desc(), CachedEvent.event_id)
    # rows may have been rewritten by a bulk upsert behind the identity map
    stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return list(result.scalars().all())
