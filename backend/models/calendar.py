"""
Transient (never persisted as-is) calendar types passed through the sync
pipeline. All of them are frozen: workers produce new records instead of
mutating shared ones.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from core.timeutil import parse_datetime


def normalize_join_url(url: Any) -> Optional[str]:
    """Trim and force the secure scheme; None for blanks."""
    if not url:
        return None
    value = str(url).strip()
    if not value:
        return None
    if value[:7].lower() == "http://":
        value = "https://" + value[7:]
    return value


def _email(value: Any) -> str:
    return str(value or "").strip().lower()


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class CalendarEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    subject: str = ""
    # original strings from the platform
    start: str = ""
    end: str = ""
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    location: str = ""
    organizer_email: str = ""
    attendee_emails: Tuple[str, ...] = ()
    join_url: Optional[str] = None
    is_online_meeting: bool = False
    is_cancelled: bool = False

    @classmethod
    def from_graph(cls, payload: dict) -> "CalendarEvent":
        start = payload.get("start") or {}
        end = payload.get("end") or {}
        online = payload.get("onlineMeeting") or {}
        join_url = normalize_join_url(online.get("joinUrl") or payload.get("onlineMeetingUrl"))

        organizer = ((payload.get("organizer") or {}).get("emailAddress") or {}).get("address")
        attendees = []
        for attendee in payload.get("attendees") or []:
            address = _email((attendee.get("emailAddress") or {}).get("address"))
            if address and address not in attendees:
                attendees.append(address)

        location = payload.get("location") or {}
        if isinstance(location, dict):
            location = location.get("displayName") or ""

        return cls(
            id=str(payload["id"]),
            subject=payload.get("subject") or "",
            start=start.get("dateTime") or "",
            end=end.get("dateTime") or "",
            start_at=parse_datetime(start),
            end_at=parse_datetime(end),
            location=str(location or ""),
            organizer_email=_email(organizer),
            attendee_emails=tuple(attendees),
            join_url=join_url,
            is_online_meeting=bool(payload.get("isOnlineMeeting")) or join_url is not None,
            is_cancelled=bool(payload.get("isCancelled")),
        )

    def participant_emails(self) -> list[str]:
        """Organizer plus attendees, lowercased and de-duplicated, order kept."""
        out: list[str] = []
        for address in (self.organizer_email, *self.attendee_emails):
            address = _email(address)
            if address and address not in out:
                out.append(address)
        return out


class TranscriptRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    meeting_id: str
    transcript_id: str
    created_at: Optional[datetime] = None

    def as_cache_entry(self) -> dict[str, str]:
        return {"meetingId": self.meeting_id, "transcriptId": self.transcript_id}


class AnnotatedEvent(BaseModel):
    """A calendar event plus the outcome of the transcript check."""

    model_config = ConfigDict(frozen=True)

    event: CalendarEvent
    has_transcript: bool = False
    transcript: Optional[TranscriptRef] = None
    # why the outcome is what it is: found(n), no-join-url, no-meeting-match,
    # no-transcripts (...), error:<detail>, not-checked, disabled, no-token
    reason: str = "not-checked"


class SyncOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    coverage: Optional[TimeRange] = None
    events: Tuple[AnnotatedEvent, ...] = ()
    ranges: Tuple[TimeRange, ...] = ()
    backfilled: bool = False
    upserted: int = 0
    failed_ranges: int = 0
    truncated_ranges: int = 0

    @property
    def transcript_count(self) -> int:
        return sum(1 for item in self.events if item.has_transcript)
