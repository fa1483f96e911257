"""Tests for sync planning and the monotonic coverage window."""

from __future__ import annotations

from datetime import datetime, timedelta

from models.calendar import TimeRange
from models.sync_state import UserSyncState
from services.sync_state import SyncPolicy, get_sync_state, plan_sync, record_sync_pass

from conftest import ORG, USER

NOW = datetime(2026, 6, 30, 12, 0, 0)
POLICY = SyncPolicy()


def r(start: datetime, end: datetime) -> TimeRange:
    return TimeRange(start=start, end=end)


def state(**kwargs) -> UserSyncState:
    return UserSyncState(org_id=ORG, user_email=USER, **kwargs)


def contains(outer: TimeRange, inner: TimeRange) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def covers(ranges, window: TimeRange) -> bool:
    return any(contains(x, window) for x in ranges)


class TestPlanSync:
    def test_no_coverage_fetches_whole_window_recent_and_backfill(self):
        requested = r(NOW - timedelta(days=5), NOW + timedelta(days=3))
        plan = plan_sync(requested, None, NOW, policy=POLICY)

        assert plan.includes_backfill
        assert covers(plan.ranges, requested)
        assert covers(plan.ranges, r(NOW - timedelta(days=90), NOW))
        # everything touches, so one window
        assert len(plan.ranges) == 1

    def test_fetches_start_with_recent_then_go_back_in_time(self):
        requested = r(NOW - timedelta(days=5), NOW + timedelta(days=3))
        plan = plan_sync(requested, None, NOW, policy=POLICY)

        recent = r(NOW - timedelta(days=10), NOW)
        assert plan.recent == recent
        assert plan.fetches == [
            recent,
            r(NOW, NOW + timedelta(days=3)),
            r(NOW - timedelta(days=90), NOW - timedelta(days=10)),
        ]

    def test_recent_only_plan_fetches_once(self):
        st = state(
            synced_from=NOW - timedelta(days=60),
            synced_to=NOW + timedelta(days=5),
            last_backfill_at=NOW - timedelta(hours=1),
        )
        plan = plan_sync(r(NOW - timedelta(days=3), NOW), st, NOW, policy=POLICY)
        assert plan.fetches == [r(NOW - timedelta(days=10), NOW)]

    def test_recent_window_always_included(self):
        requested = r(NOW - timedelta(days=3), NOW)
        st = state(
            synced_from=NOW - timedelta(days=60),
            synced_to=NOW + timedelta(days=5),
            last_backfill_at=NOW - timedelta(hours=1),
        )
        plan = plan_sync(requested, st, NOW, policy=POLICY)

        assert not plan.includes_backfill
        assert plan.ranges == [r(NOW - timedelta(days=10), NOW)]

    def test_missing_left_and_right_with_one_day_overlap(self):
        synced_from = NOW - timedelta(days=40)
        synced_to = NOW - timedelta(days=20)
        requested = r(NOW - timedelta(days=50), NOW + timedelta(days=3))
        st = state(synced_from=synced_from, synced_to=synced_to, last_backfill_at=NOW)

        plan = plan_sync(requested, st, NOW, policy=POLICY)

        assert covers(plan.ranges, r(requested.start, synced_from + timedelta(days=1)))
        assert covers(plan.ranges, r(synced_to - timedelta(days=1), requested.end))
        # left edge and right edge do not touch
        assert len(plan.ranges) == 2

    def test_backfill_due_after_interval(self):
        requested = r(NOW - timedelta(days=2), NOW)
        st = state(
            synced_from=NOW - timedelta(days=30),
            synced_to=NOW,
            last_backfill_at=NOW - timedelta(hours=25),
        )
        plan = plan_sync(requested, st, NOW, policy=POLICY)

        assert plan.backfill == r(NOW - timedelta(days=90), NOW - timedelta(days=10))
        assert plan.ranges == [r(NOW - timedelta(days=90), NOW)]

    def test_force_refresh_triggers_backfill(self):
        requested = r(NOW - timedelta(days=2), NOW)
        st = state(synced_from=requested.start, synced_to=NOW, last_backfill_at=NOW - timedelta(minutes=5))

        assert not plan_sync(requested, st, NOW, policy=POLICY).includes_backfill
        assert plan_sync(requested, st, NOW, force_refresh=True, policy=POLICY).includes_backfill

    def test_backfill_interval_is_policy(self):
        requested = r(NOW - timedelta(days=2), NOW)
        st = state(synced_from=requested.start, synced_to=NOW, last_backfill_at=NOW - timedelta(hours=2))
        policy = SyncPolicy(backfill_interval=timedelta(hours=1))

        assert plan_sync(requested, st, NOW, policy=policy).includes_backfill


class TestRecordSyncPass:
    async def test_first_pass_creates_state(self, session):
        window = r(NOW - timedelta(days=5), NOW)
        st = await record_sync_pass(session, ORG, USER, window, backfilled=True, now=NOW)

        assert st.synced_from == window.start
        assert st.synced_to == window.end
        assert st.last_synced_at == NOW
        assert st.last_backfill_at == NOW

    async def test_coverage_only_grows(self, session):
        windows = [
            r(NOW - timedelta(days=5), NOW),
            r(NOW - timedelta(days=2), NOW - timedelta(days=1)),  # inside
            r(NOW - timedelta(days=30), NOW - timedelta(days=20)),  # left, disjoint
            r(NOW, NOW + timedelta(days=4)),  # right
        ]
        previous = None
        for i, window in enumerate(windows):
            st = await record_sync_pass(session, ORG, USER, window, backfilled=False, now=NOW + timedelta(minutes=i))
            current = r(st.synced_from, st.synced_to)
            if previous is not None:
                assert contains(current, previous)
            assert contains(current, window)
            previous = current

        assert previous == r(NOW - timedelta(days=30), NOW + timedelta(days=4))

    async def test_backfill_stamp_only_when_backfilled(self, session):
        window = r(NOW - timedelta(days=5), NOW)
        await record_sync_pass(session, ORG, USER, window, backfilled=True, now=NOW)
        later = NOW + timedelta(hours=3)
        st = await record_sync_pass(session, ORG, USER, window, backfilled=False, now=later)

        assert st.last_backfill_at == NOW
        assert st.last_synced_at == later

    async def test_failed_pass_keeps_coverage(self, session):
        window = r(NOW - timedelta(days=5), NOW)
        await record_sync_pass(session, ORG, USER, window, backfilled=False, now=NOW)
        st = await record_sync_pass(session, ORG, USER, None, backfilled=False, now=NOW + timedelta(hours=1))

        assert (st.synced_from, st.synced_to) == (window.start, window.end)

    async def test_state_is_per_user(self, session):
        await record_sync_pass(session, ORG, USER, r(NOW - timedelta(days=1), NOW), backfilled=False, now=NOW)

        assert await get_sync_state(session, ORG, "someone@else.com") is None
        assert await get_sync_state(session, "org-2", USER) is None
