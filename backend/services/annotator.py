"""
Tag calendar events with whether a transcript exists for them.

Only online meetings with a join URL are looked up. They are checked
newest-first, so a budget smaller than the candidate count still covers the
most recent meetings, and never more than `concurrency` at a time. Each
lookup is independent: a failure turns into an `error:` reason on that event
only.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict

from core.timeutil import parse_datetime
from models.calendar import AnnotatedEvent, CalendarEvent, TranscriptRef
from services.graph_client import GraphClient, GraphError
from services.meeting_resolver import MeetingResolver
from services.transcript_picker import PickerPolicy, pick_transcript


class AnnotatorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    debug: bool = False
    max_checks: int = 30
    concurrency: int = 4
    time_slack: timedelta = timedelta(minutes=90)
    picker: PickerPolicy = PickerPolicy()


def _newest_first(event: CalendarEvent) -> tuple:
    # undated events sort last
    return (event.start_at is not None, event.start_at or datetime.min)


class TranscriptAnnotator:
    def __init__(self, client: Optional[GraphClient], config: AnnotatorConfig = AnnotatorConfig()) -> None:
        self.client = client
        self.config = config
        self.resolver = (
            MeetingResolver(client, time_slack=config.time_slack, debug=config.debug)
            if client is not None
            else None
        )

    async def annotate(self, events: Sequence[CalendarEvent]) -> List[AnnotatedEvent]:
        if not self.config.enabled:
            return [AnnotatedEvent(event=ev, reason="disabled") for ev in events]
        if self.client is None:
            return [AnnotatedEvent(event=ev, reason="no-token") for ev in events]

        results: List[Optional[AnnotatedEvent]] = [None] * len(events)
        candidates = []
        for idx, ev in enumerate(events):
            if ev.is_online_meeting and ev.join_url:
                candidates.append(idx)
            else:
                results[idx] = AnnotatedEvent(event=ev, reason="no-join-url")

        candidates.sort(key=lambda idx: _newest_first(events[idx]), reverse=True)
        checked = candidates[: max(0, self.config.max_checks)]

        semaphore = asyncio.Semaphore(max(1, self.config.concurrency))

        async def run(idx: int) -> None:
            async with semaphore:
                results[idx] = await self.check(events[idx])

        await asyncio.gather(*(run(idx) for idx in checked))

        out = [
            item if item is not None else AnnotatedEvent(event=events[idx], reason="not-checked")
            for idx, item in enumerate(results)
        ]
        found = sum(1 for item in out if item.has_transcript)
        logger.info(
            "Transcript check: {} events, {} candidates, {} checked, {} with transcript",
            len(events), len(candidates), len(checked), found,
        )
        return out

    async def check(self, event: CalendarEvent) -> AnnotatedEvent:
        """Resolve + pick for one event. Never raises."""
        try:
            match = await self.resolver.resolve(event)
            if match is None:
                return AnnotatedEvent(event=event, reason="no-meeting-match")

            items, used = await self.client.list_transcripts(match.meeting_id)
            if not items:
                return AnnotatedEvent(event=event, reason=f"no-transcripts (endpoint={used or 'none'})")

            refs = [
                TranscriptRef(
                    meeting_id=match.meeting_id,
                    transcript_id=str(item["id"]),
                    created_at=parse_datetime(item.get("createdDateTime")),
                )
                for item in items
                if item.get("id")
            ]
            chosen = pick_transcript(refs, event, self.config.picker)
            if chosen is None:
                return AnnotatedEvent(event=event, reason="no-transcripts (no ids)")

            if self.config.debug:
                logger.debug(
                    "[annotator] event {} -> meeting {} ({}) transcript {} of {}",
                    event.id, match.meeting_id, match.matched_by, chosen.transcript_id, len(refs),
                )
            return AnnotatedEvent(
                event=event,
                has_transcript=True,
                transcript=chosen,
                reason=f"found({len(items)})",
            )
        except GraphError as exc:
            logger.warning("Transcript check failed for event {}: {}", event.id, exc)
            return AnnotatedEvent(event=event, reason=f"error:{exc}")
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error checking event {}", event.id)
            return AnnotatedEvent(event=event, reason=f"error:{exc}")
