"""
Datetime helpers. Everything inside the sync engine is naive UTC; offsets are
only kept in the string copies of event times we hand back to clients.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as dateparse


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> datetime | None:
    """
    Best-effort parse of whatever the platform (or a caller) handed us.

    Accepts datetimes, ISO strings (including Graph's 7-digit fractions) and
    Graph's ``{"dateTime": ..., "timeZone": ...}`` objects. Strings without an
    offset are taken as UTC. Returns None instead of raising.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, dict):
        return parse_datetime(value.get("dateTime"))
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return to_naive_utc(dateparse.isoparse(value.strip()))
    except (ValueError, OverflowError):
        pass
    try:
        return to_naive_utc(dateparse.parse(value.strip()))
    except (ValueError, OverflowError):
        return None


def isoformat_z(value: datetime) -> str:
    """Render a naive-UTC datetime the way Graph filters expect it."""
    return to_naive_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
