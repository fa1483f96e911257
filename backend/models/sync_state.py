from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from core.timeutil import utcnow


class UserSyncState(SQLModel, table=True):
    __tablename__ = "user_sync_state"
    __table_args__ = (UniqueConstraint("org_id", "user_email", name="uq_user_sync_state"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    user_email: str = Field(index=True)

    # coverage window (synced at least once); only ever widens
    synced_from: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)
    synced_to: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)

    # last time any sync ran
    last_synced_at: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)
    # last older-range sweep (forwarded invites, late additions)
    last_backfill_at: Optional[datetime] = Field(sa_column=Column(DateTime), default=None)

    created_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
    updated_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
