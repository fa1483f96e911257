"""
Coalesce requested time intervals into the fewest fetch windows.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable, List, Optional

from core.timeutil import parse_datetime
from models.calendar import TimeRange

MERGE_TOLERANCE = timedelta(seconds=60)


def _coerce(item: Any) -> Optional[TimeRange]:
    if isinstance(item, TimeRange):
        start, end = item.start, item.end
    elif isinstance(item, dict):
        start, end = parse_datetime(item.get("start")), parse_datetime(item.get("end"))
    elif isinstance(item, (tuple, list)) and len(item) == 2:
        start, end = parse_datetime(item[0]), parse_datetime(item[1])
    else:
        return None

    if start is None or end is None or end < start:
        return None
    return TimeRange(start=start, end=end)


def merge_ranges(
    intervals: Iterable[Any],
    tolerance: timedelta = MERGE_TOLERANCE,
) -> List[TimeRange]:
    """
    Drop unusable intervals, sort by start and merge every pair whose gap is
    within `tolerance`. Accepts TimeRange objects, {"start", "end"} mappings
    or 2-tuples; unparseable or inverted bounds are skipped silently.
    """
    ranges = sorted(
        (r for r in (_coerce(item) for item in intervals) if r is not None),
        key=lambda r: (r.start, r.end),
    )

    merged: List[TimeRange] = []
    for current in ranges:
        if merged and current.start <= merged[-1].end + tolerance:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
            continue
        merged.append(current)
    return merged


def subtract_range(window: TimeRange, cut: TimeRange) -> List[TimeRange]:
    """The parts of `window` outside `cut`, oldest first; empty pieces dropped."""
    if cut.end <= window.start or cut.start >= window.end:
        return [window]
    pieces: List[TimeRange] = []
    if window.start < cut.start:
        pieces.append(TimeRange(start=window.start, end=cut.start))
    if cut.end < window.end:
        pieces.append(TimeRange(start=cut.end, end=window.end))
    return pieces
