from datetime import datetime
from typing import Optional, List, Dict

from sqlalchemy import DateTime, UniqueConstraint, Index
from sqlmodel import Field, SQLModel, Column, JSON

from core.timeutil import utcnow


class CachedEvent(SQLModel, table=True):
    """
    A calendar occurrence we know has a transcript. Rows are only ever written
    with has_transcript=True; "no transcript" is never cached.
    """

    __tablename__ = "event_cache"
    __table_args__ = (
        UniqueConstraint("org_id", "user_email", "event_id", name="uq_event_cache_key"),
        Index("ix_event_cache_user_start", "org_id", "user_email", "start_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    # cache is per user, so "my meetings only" is a plain filter
    user_email: str = Field(index=True)
    # platform event id (one occurrence of a series)
    event_id: str

    subject: str = ""
    # as received from the platform, never re-serialised
    start_date_time: str = ""
    end_date_time: str = ""
    # parsed copies for window queries and ordering
    start_at: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)
    end_at: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)
    location: str = ""

    organizer_email: str = ""
    attendee_emails: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    has_transcript: bool = Field(default=False, index=True)
    # [{"meetingId": ..., "transcriptId": ...}] - what we need to open the transcript
    transcripts: List[Dict[str, str]] = Field(default_factory=list, sa_column=Column(JSON))

    synced_at: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True), default_factory=utcnow)
    created_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
    updated_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
