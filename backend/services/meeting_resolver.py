"""
Find the platform's online-meeting record behind a calendar event.

First by join URL, with progressively looser predicates (exact full URL,
exact URL without query string, prefix of the latter), then by a time window
around the event. "Not found" is a normal answer; only transport failures,
or every directory variant rejecting every query, raise GraphError.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict

from core.timeutil import isoformat_z
from models.calendar import CalendarEvent, normalize_join_url
from services.graph_client import GraphClient, GraphError

# Graph documents both spellings and tenants disagree on which one filters
JOIN_URL_PROPERTIES = ("JoinWebUrl", "joinWebUrl")


def strip_query(url: Optional[str]) -> str:
    value = str(url or "")
    return value.split("?", 1)[0]


def escape_odata(value: str) -> str:
    return value.replace("'", "''")


def join_url_filters(join_url: Optional[str]) -> List[str]:
    full = normalize_join_url(join_url)
    if not full:
        return []
    base = strip_query(full)

    exact_values = [full] if base == full else [full, base]
    filters = [f"{prop} eq '{escape_odata(v)}'" for v in exact_values for prop in JOIN_URL_PROPERTIES]
    filters += [f"startswith({prop},'{escape_odata(base)}')" for prop in JOIN_URL_PROPERTIES]
    return filters


def meeting_join_url(meeting: Dict[str, Any]) -> str:
    return strip_query(normalize_join_url(meeting.get("joinWebUrl") or meeting.get("JoinWebUrl")))


class MeetingMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    meeting_id: str
    join_web_url: Optional[str] = None
    matched_by: str  # "join-url" | "time-window"


class MeetingResolver:
    def __init__(
        self,
        client: GraphClient,
        time_slack: timedelta = timedelta(minutes=90),
        debug: bool = False,
    ) -> None:
        self.client = client
        self.time_slack = time_slack
        self.debug = debug

    def _trace(self, message: str, *args: Any) -> None:
        if self.debug:
            logger.debug("[resolver] " + message, *args)

    async def _first_hits(self, filters: List[str], errors: List[GraphError]) -> Optional[List[Dict[str, Any]]]:
        """
        Run each filter against each directory variant; the first non-empty
        answer wins. Returns None when nothing matched. Rejected variants are
        collected into `errors`.
        """
        for filter_expr in filters:
            for url in self.client.directory_urls():
                self._trace("{} $filter={}", url, filter_expr)
                try:
                    hits = await self.client.query_meetings(url, filter_expr)
                except GraphError as exc:
                    if exc.is_transport:
                        raise
                    errors.append(exc)
                    continue
                hits = [h for h in hits if h.get("id")]
                if hits:
                    return hits
        return None

    async def find_by_join_url(self, join_url: Optional[str], errors: Optional[List[GraphError]] = None) -> Optional[Dict[str, Any]]:
        hits = await self._first_hits(join_url_filters(join_url), errors if errors is not None else [])
        return hits[0] if hits else None

    async def find_by_time(self, event: CalendarEvent, errors: Optional[List[GraphError]] = None) -> List[Dict[str, Any]]:
        if event.start_at is None:
            return []
        start = event.start_at - self.time_slack
        end = (event.end_at or event.start_at) + self.time_slack
        filter_expr = f"startDateTime ge '{isoformat_z(start)}' and endDateTime le '{isoformat_z(end)}'"
        hits = await self._first_hits([filter_expr], errors if errors is not None else [])
        return hits or []

    async def resolve(self, event: CalendarEvent) -> Optional[MeetingMatch]:
        join_url = normalize_join_url(event.join_url)
        if not join_url:
            return None

        errors: List[GraphError] = []
        attempts = 0

        meeting = await self.find_by_join_url(join_url, errors)
        attempts += len(join_url_filters(join_url)) * len(self.client.directory_urls())
        if meeting:
            self._trace("event {} matched meeting {} by join url", event.id, meeting["id"])
            return MeetingMatch(
                meeting_id=str(meeting["id"]),
                join_web_url=meeting.get("joinWebUrl") or meeting.get("JoinWebUrl"),
                matched_by="join-url",
            )

        self._trace("event {} join url match failed; trying time window", event.id)
        nearby = await self.find_by_time(event, errors)
        if event.start_at is not None:
            attempts += len(self.client.directory_urls())
        if nearby:
            base = strip_query(join_url)
            meeting = next((m for m in nearby if meeting_join_url(m) == base), nearby[0])
            return MeetingMatch(
                meeting_id=str(meeting["id"]),
                join_web_url=meeting.get("joinWebUrl") or meeting.get("JoinWebUrl"),
                matched_by="time-window",
            )

        if errors and len(errors) >= attempts:
            # no variant accepted a single query: that is a failure, not a miss
            raise errors[-1]
        return None
