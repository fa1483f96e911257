"""
Choose which transcript of an online meeting belongs to a calendar occurrence.

This is a heuristic, there is no field linking a transcript to an occurrence.
A recurring series reuses one meeting identity, so its transcripts pile up
under the same meeting id, and each transcript shows up some unpredictable
time after its session ends. We anchor on the occurrence's end (or start),
accept transcripts created in [start - before, end + after], and take the one
created closest to the anchor. The window widths are policy and live in
PickerPolicy / settings, not here.

Fallbacks, in order: closest to the anchor ignoring the window; most recent
creation time when there is no anchor; last listed when no transcript has a
usable creation time (the platform lists them in creation order).
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from models.calendar import CalendarEvent, TranscriptRef


class PickerPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    before_start: timedelta = timedelta(hours=2)
    after_end: timedelta = timedelta(hours=8)


def pick_transcript(
    transcripts: Sequence[TranscriptRef],
    event: CalendarEvent,
    policy: PickerPolicy = PickerPolicy(),
) -> Optional[TranscriptRef]:
    if not transcripts:
        return None

    dated = [t for t in transcripts if t.created_at is not None]
    if not dated:
        return transcripts[-1]

    anchor = event.end_at or event.start_at
    if anchor is None:
        return max(dated, key=lambda t: (t.created_at, t.transcript_id))

    window_start = (event.start_at or anchor) - policy.before_start
    window_end = (event.end_at or anchor) + policy.after_end
    in_window = [t for t in dated if window_start <= t.created_at <= window_end]

    # ties: earlier transcript, then id, so the answer never depends on input order
    return min(
        in_window or dated,
        key=lambda t: (abs(t.created_at - anchor), t.created_at, t.transcript_id),
    )
