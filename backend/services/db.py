"""
Dialect helpers shared by the write paths.
"""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_statement(session: AsyncSession, table: Table, rows: List[Dict[str, Any]]):
    """
    `INSERT ... VALUES (...), (...)` for the session's dialect, ready for
    `.on_conflict_do_update()`. SQLite and PostgreSQL share that API.
    """
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table).values(rows)
    if dialect == "sqlite":
        return sqlite.insert(table).values(rows)
    raise NotImplementedError(f"upsert not supported on {dialect}")
