from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field

from core.timeutil import utcnow


class User(SQLModel, table=True):
    """
    Identity record owned by the login layer. The sync engine only reads the
    org, the mailbox address and the platform token.
    """

    __table_args__ = (UniqueConstraint("org_id", "email", name="uq_user_org_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    email: str = Field(index=True)
    full_name: Optional[str] = None

    # Encrypted meeting-platform bearer token (Fernet)
    access_token_enc: Optional[str] = None

    created_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
    updated_at: datetime = Field(sa_column=Column(DateTime, nullable=False), default_factory=utcnow)
