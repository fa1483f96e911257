"""
Per-user sync coverage: what to fetch next, and recording what was fetched.

Coverage is a single contiguous window that only ever grows. The planner asks
for the edges missing from it, always re-checks the recent past (transcripts
land some time after a meeting ends) and periodically sweeps older dates for
meetings that were added after the fact.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.timeutil import utcnow
from models.calendar import TimeRange
from models.sync_state import UserSyncState
from services.db import upsert_statement
from services.ranges import merge_ranges, subtract_range


class SyncPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    recent_days: int = 10
    backfill_days: int = 90
    backfill_interval: timedelta = timedelta(hours=24)
    edge_overlap: timedelta = timedelta(days=1)
    merge_tolerance: timedelta = timedelta(seconds=60)


class SyncPlan(BaseModel):
    """
    `ranges` is the merged view of everything the pass needs. `fetches` is
    the same ground split for fetching: the recent window first, then the
    rest newest first, so a capped fetch of old dates never crowds out the
    days where transcripts are still landing.
    """

    model_config = ConfigDict(frozen=True)

    ranges: List[TimeRange]
    recent: Optional[TimeRange] = None
    fetches: List[TimeRange] = []
    backfill: Optional[TimeRange] = None

    @property
    def includes_backfill(self) -> bool:
        return self.backfill is not None


def backfill_due(
    state: Optional[UserSyncState],
    now: datetime,
    force_refresh: bool,
    policy: SyncPolicy,
) -> bool:
    if force_refresh or state is None or state.last_backfill_at is None:
        return True
    return now - state.last_backfill_at > policy.backfill_interval


def plan_sync(
    requested: TimeRange,
    state: Optional[UserSyncState],
    now: datetime,
    force_refresh: bool = False,
    policy: SyncPolicy = SyncPolicy(),
) -> SyncPlan:
    candidates: List[TimeRange] = []

    if state is None or state.synced_from is None or state.synced_to is None:
        candidates.append(requested)
    else:
        if requested.start < state.synced_from:
            candidates.append(
                TimeRange(start=requested.start, end=state.synced_from + policy.edge_overlap)
            )
        if requested.end > state.synced_to:
            candidates.append(
                TimeRange(start=state.synced_to - policy.edge_overlap, end=requested.end)
            )

    recent_start = now - timedelta(days=policy.recent_days)
    recent = TimeRange(start=recent_start, end=now)
    candidates.append(recent)

    backfill = None
    if backfill_due(state, now, force_refresh, policy):
        backfill_start = now - timedelta(days=policy.backfill_days)
        if backfill_start < recent_start:
            backfill = TimeRange(start=backfill_start, end=recent_start)
            candidates.append(backfill)

    ranges = merge_ranges(candidates, policy.merge_tolerance)
    rest = [piece for r in ranges for piece in subtract_range(r, recent)]
    rest.sort(key=lambda r: r.start, reverse=True)
    return SyncPlan(ranges=ranges, recent=recent, fetches=[recent] + rest, backfill=backfill)


async def get_sync_state(session: AsyncSession, org_id: str, user_email: str) -> Optional[UserSyncState]:
    stmt = select(UserSyncState).where(
        UserSyncState.org_id == org_id,
        UserSyncState.user_email == user_email,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def record_sync_pass(
    session: AsyncSession,
    org_id: str,
    user_email: str,
    covered: Optional[TimeRange],
    backfilled: bool,
    now: Optional[datetime] = None,
) -> Optional[UserSyncState]:
    """
    Merge `covered` into the stored window in a single statement.

    The new bounds are min/max against whatever is stored at write time, so two
    passes racing for the same user can only widen the window.
    """
    now = now or utcnow()
    table = UserSyncState.__table__
    values = {
        "org_id": org_id,
        "user_email": user_email,
        "synced_from": covered.start if covered else None,
        "synced_to": covered.end if covered else None,
        "last_synced_at": now,
        "last_backfill_at": now if backfilled else None,
        "created_at": now,
        "updated_at": now,
    }

    stmt = upsert_statement(session, table, [values])
    excluded = stmt.excluded
    update = {
        "last_synced_at": excluded.last_synced_at,
        "updated_at": excluded.updated_at,
    }
    if covered is not None:
        update["synced_from"] = case(
            (table.c.synced_from.is_(None), excluded.synced_from),
            (excluded.synced_from < table.c.synced_from, excluded.synced_from),
            else_=table.c.synced_from,
        )
        update["synced_to"] = case(
            (table.c.synced_to.is_(None), excluded.synced_to),
            (excluded.synced_to > table.c.synced_to, excluded.synced_to),
            else_=table.c.synced_to,
        )
    if backfilled:
        update["last_backfill_at"] = excluded.last_backfill_at

    stmt = stmt.on_conflict_do_update(index_elements=["org_id", "user_email"], set_=update)
    await session.execute(stmt)
    await session.commit()

    state = await get_sync_state(session, org_id, user_email)
    if state is not None:
        # the statement bypassed the identity map
        await session.refresh(state)
        logger.debug(
            "Sync coverage for {} now {} -> {} (backfill={})",
            user_email, state.synced_from, state.synced_to, backfilled,
        )
    return state
