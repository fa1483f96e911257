from datetime import datetime
from typing import Optional, List

from sqlalchemy import DateTime, UniqueConstraint, Index, Text
from sqlmodel import Field, SQLModel, Column, JSON

from core.timeutil import utcnow


class AIStatus:
    NONE = "none"
    QUEUED = "queued"
    DONE = "done"
    ERROR = "error"

    # states a new summarisation attempt may start from
    ACQUIRABLE = (NONE, ERROR)


class Transcript(SQLModel, table=True):
    """
    One stored transcript per (org, calendar occurrence, transcript).

    Recurring series share a meeting id across occurrences, so the occurrence
    id is part of the key. Rows written before occurrences were tracked carry
    an empty occurrence_id.
    """

    __table_args__ = (
        UniqueConstraint("org_id", "occurrence_id", "transcript_id", name="uq_transcript_occurrence"),
        Index("ix_transcript_legacy_key", "org_id", "meeting_id", "transcript_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    occurrence_id: str = ""

    # platform identifiers
    meeting_id: str
    transcript_id: str

    subject: str = ""
    start_date_time: str = ""
    end_date_time: str = ""
    participant_emails: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    vtt: str = Field(default="", sa_column=Column(Text))
    text: str = Field(default="", sa_column=Column(Text))

    # AI summary, produced once
    ai_status: Optional[str] = Field(default=AIStatus.NONE, index=True)
    ai_model: str = ""
    ai_summary: str = Field(default="", sa_column=Column(Text))
    ai_error: str = ""
    ai_created_at: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)
    ai_updated_at: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)

    created_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
    updated_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
