"""Tests for choosing a recurring meeting's transcript."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from models.calendar import CalendarEvent, TranscriptRef
from services.transcript_picker import PickerPolicy, pick_transcript

T = datetime(2026, 3, 2, 10, 0, 0)


def occurrence(start=T, end=T + timedelta(hours=1)) -> CalendarEvent:
    return CalendarEvent(id="occ-1", start_at=start, end_at=end, join_url="https://teams.example/j/1")


def ref(tid: str, created=None) -> TranscriptRef:
    return TranscriptRef(meeting_id="m-1", transcript_id=tid, created_at=created)


def test_picks_the_one_created_near_the_occurrence():
    refs = [ref("late", T + timedelta(hours=9)), ref("near", T + timedelta(hours=2))]
    assert pick_transcript(refs, occurrence()).transcript_id == "near"


def test_other_sessions_of_the_series_are_ignored():
    refs = [
        ref("last-week", T - timedelta(days=7) + timedelta(hours=1, minutes=10)),
        ref("today", T + timedelta(hours=1, minutes=20)),
        ref("next-week", T + timedelta(days=7) + timedelta(hours=1, minutes=5)),
    ]
    assert pick_transcript(refs, occurrence()).transcript_id == "today"


def test_outside_window_falls_back_to_closest():
    refs = [ref("far", T + timedelta(days=3)), ref("farther", T - timedelta(days=5))]
    assert pick_transcript(refs, occurrence()).transcript_id == "far"


def test_no_anchor_takes_newest():
    event = CalendarEvent(id="occ-1")
    refs = [ref("a", T), ref("b", T + timedelta(days=1)), ref("c", T - timedelta(days=1))]
    assert pick_transcript(refs, event).transcript_id == "b"


def test_undated_takes_last_listed():
    refs = [ref("first"), ref("second"), ref("third")]
    assert pick_transcript(refs, occurrence()).transcript_id == "third"


def test_undated_mixed_with_dated_uses_dated():
    refs = [ref("dated", T + timedelta(hours=2)), ref("undated")]
    assert pick_transcript(refs, occurrence()).transcript_id == "dated"


def test_empty():
    assert pick_transcript([], occurrence()) is None


def test_start_only_event_anchors_on_start():
    event = CalendarEvent(id="occ-1", start_at=T)
    refs = [ref("near", T + timedelta(minutes=30)), ref("later", T + timedelta(hours=6))]
    assert pick_transcript(refs, event).transcript_id == "near"


def test_order_independent():
    anchor = T + timedelta(hours=1)
    refs = [
        ref("before", anchor - timedelta(minutes=30)),
        ref("after", anchor + timedelta(minutes=30)),
        ref("x", T + timedelta(hours=5)),
    ]
    expected = pick_transcript(refs, occurrence()).transcript_id
    # equal distance: the earlier one wins
    assert expected == "before"

    rng = random.Random(7)
    for _ in range(10):
        shuffled = refs[:]
        rng.shuffle(shuffled)
        assert pick_transcript(shuffled, occurrence()).transcript_id == expected


def test_window_is_policy():
    refs = [ref("late", T + timedelta(hours=9)), ref("far", T + timedelta(days=2))]
    narrow = PickerPolicy(before_start=timedelta(0), after_end=timedelta(hours=1))
    # neither inside the narrow window; closest overall still wins
    assert pick_transcript(refs, occurrence(), narrow).transcript_id == "late"


def test_in_window_beats_closer_out_of_window():
    # anchor is the end (T+1h): "outside" is 4h away, "inside" 7h away
    refs = [ref("outside", T - timedelta(hours=3)), ref("inside", T + timedelta(hours=8))]
    assert pick_transcript(refs, occurrence()).transcript_id == "inside"
