"""
One sync pass for one user: plan ranges, fetch the calendar, look for
transcripts, cache what was found and widen the coverage window.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Callable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.timeutil import utcnow
from models.calendar import CalendarEvent, SyncOutcome, TimeRange
from services.annotator import TranscriptAnnotator
from services.event_cache import upsert_cached_events
from services.graph_client import GraphClient, GraphError
from services.sync_state import SyncPolicy, get_sync_state, plan_sync, record_sync_pass


def default_window(now: datetime, past_days: int = 30, future_days: int = 3) -> TimeRange:
    """The browse window: `past_days` ending today, plus `future_days` from tomorrow."""
    start = datetime.combine((now - timedelta(days=max(past_days, 1) - 1)).date(), time.min)
    end = datetime.combine((now + timedelta(days=future_days)).date(), time.max)
    return TimeRange(start=start, end=end)


def _overlaps(a: TimeRange, b: TimeRange) -> bool:
    return a.start <= b.end and b.start <= a.end


class SyncService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        client: Optional[GraphClient],
        annotator: TranscriptAnnotator,
        policy: SyncPolicy = SyncPolicy(),
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.annotator = annotator
        self.policy = policy

    async def _fetch(
        self, ranges: List[TimeRange]
    ) -> tuple[Dict[str, CalendarEvent], List[TimeRange], List[TimeRange]]:
        """
        Events from every range, de-duplicated by id, plus the ranges that
        failed and the ranges that hit the event cap before their end.
        """
        events: Dict[str, CalendarEvent] = {}
        failed: List[TimeRange] = []
        truncated: List[TimeRange] = []
        for window in ranges:
            if self.client is None:
                failed.append(window)
                continue
            try:
                payloads, complete = await self.client.get_calendar_range(window.start, window.end)
            except GraphError as exc:
                logger.warning("Calendar fetch {} -> {} failed: {}", window.start, window.end, exc)
                failed.append(window)
                continue
            if not complete:
                truncated.append(window)
            for payload in payloads:
                try:
                    event = CalendarEvent.from_graph(payload)
                except (KeyError, ValidationError) as exc:
                    logger.warning("Skipping unreadable calendar event {!r}: {}", payload.get("id"), exc)
                    continue
                events[event.id] = event
        return events, failed, truncated

    async def request_sync(
        self,
        org_id: str,
        user_email: str,
        requested: TimeRange,
        force_refresh: bool = False,
        now: Optional[datetime] = None,
    ) -> SyncOutcome:
        now = now or utcnow()
        user_email = user_email.strip().lower()

        async with self.session_factory() as session:
            state = await get_sync_state(session, org_id, user_email)
        plan = plan_sync(requested, state, now, force_refresh, self.policy)
        logger.info(
            "Sync {} requested {} -> {}: {} ranges (backfill={})",
            user_email, requested.start, requested.end, len(plan.ranges), plan.includes_backfill,
        )

        events, failed, truncated = await self._fetch(plan.fetches)
        ordered = sorted(events.values(), key=lambda ev: (ev.start_at is None, ev.start_at or now))
        annotated = await self.annotator.annotate(ordered)

        async with self.session_factory() as session:
            upserted = await upsert_cached_events(session, org_id, user_email, annotated, now)

        # only claim what was actually read to the end
        incomplete = failed + truncated
        covered = requested if not incomplete else None
        backfilled = plan.backfill is not None and not any(_overlaps(plan.backfill, r) for r in incomplete)

        async with self.session_factory() as session:
            state = await record_sync_pass(session, org_id, user_email, covered, backfilled, now)

        coverage = None
        if state is not None and state.synced_from is not None and state.synced_to is not None:
            coverage = TimeRange(start=state.synced_from, end=state.synced_to)

        return SyncOutcome(
            coverage=coverage,
            events=tuple(annotated),
            ranges=tuple(plan.ranges),
            backfilled=backfilled,
            upserted=upserted.upserted,
            failed_ranges=len(failed),
            truncated_ranges=len(truncated),
        )
