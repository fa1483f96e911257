"""
Async client for the parts of Microsoft Graph the sync engine needs:
calendarView, the online-meeting directory and meeting transcripts.

The meeting directory is spread over several API surfaces (beta / v1.0,
/communications vs /me) and tenants differ in which ones answer, so the
read helpers walk every variant in order. A variant that answers with an
HTTP error is skipped; a transport failure (DNS, connect, timeout) aborts
the call, there is no point asking the next variant over the same network.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx
from loguru import logger

from core.timeutil import isoformat_z

DEFAULT_BASE_URLS = (
    "https://graph.microsoft.com/beta",
    "https://graph.microsoft.com/v1.0",
)
CALENDAR_BASE_URL = "https://graph.microsoft.com/v1.0"
DIRECTORY_ROOTS = ("/communications/onlineMeetings", "/me/onlineMeetings")

CALENDAR_FIELDS = (
    "id",
    "subject",
    "start",
    "end",
    "location",
    "organizer",
    "attendees",
    "isCancelled",
    "isOnlineMeeting",
    "onlineMeetingUrl",
    "onlineMeeting",
)


class GraphError(Exception):
    """Transport (status 0) or protocol failure talking to Graph."""

    def __init__(self, status: int, detail: str, url: str = "") -> None:
        self.status = status
        self.detail = detail
        self.url = url
        super().__init__(f"Graph {status or 'transport'}: {detail}")

    @property
    def is_transport(self) -> bool:
        return self.status == 0


class TranscriptUnavailable(GraphError):
    pass


class GraphClient:
    """
    Thin Graph reader bound to one user's bearer token.

    Use as an async context manager, or pass an existing httpx.AsyncClient
    (tests hand in one backed by httpx.MockTransport).
    """

    def __init__(
        self,
        access_token: str,
        base_urls: Sequence[str] = DEFAULT_BASE_URLS,
        calendar_base_url: str = CALENDAR_BASE_URL,
        timeout: float = 20.0,
        page_size: int = 75,
        max_events: int = 300,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._token = access_token
        self.base_urls = tuple(u.rstrip("/") for u in base_urls)
        self.calendar_base_url = calendar_base_url.rstrip("/")
        self.page_size = page_size
        self.max_events = max_events
        self._timeout = timeout
        self._http = http
        self._owns_http = http is None

    async def __aenter__(self) -> "GraphClient":
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    # ── low level ───────────────────────────────────────────────────────

    async def _get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> httpx.Response:
        if self._http is None:
            raise RuntimeError("GraphClient used outside its context manager")
        merged = {"Authorization": f"Bearer {self._token}"}
        merged.update(headers or {})
        try:
            response = await self._http.get(url, params=params, headers=merged)
        except httpx.TransportError as exc:
            raise GraphError(0, str(exc) or exc.__class__.__name__, url) from exc
        if response.status_code >= 400:
            raise GraphError(response.status_code, response.text[:220], url)
        return response

    async def get_json(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> Dict[str, Any]:
        response = await self._get(url, params=params, headers=headers)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise GraphError(response.status_code, f"invalid JSON: {exc}", url) from exc

    async def get_text(self, url: str, accept: str) -> str:
        response = await self._get(url, headers={"Accept": accept})
        return response.text

    # ── calendar ────────────────────────────────────────────────────────

    async def get_calendar_range(
        self,
        start: datetime,
        end: datetime,
        newest_first: bool = True,
    ) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Non-cancelled events in [start, end], following nextLink pages, and
        whether the range was read to the end. At most `max_events` are
        returned; when more exist the second value is False and the events
        are the newest (or oldest) ones only.
        """
        url: Optional[str] = f"{self.calendar_base_url}/me/calendarView"
        params: Optional[dict] = {
            "startDateTime": isoformat_z(start),
            "endDateTime": isoformat_z(end),
            "$orderby": "start/dateTime desc" if newest_first else "start/dateTime",
            "$top": str(self.page_size),
            "$select": ",".join(CALENDAR_FIELDS),
        }
        headers = {"Prefer": 'outlook.timezone="UTC"'}

        events: List[Dict[str, Any]] = []
        truncated = False
        while url and not truncated:
            page = await self.get_json(url, params=params, headers=headers)
            for item in page.get("value") or []:
                if item.get("isCancelled"):
                    continue
                if len(events) >= self.max_events:
                    truncated = True
                    break
                events.append(item)
            # nextLink already carries the query string
            url, params = page.get("@odata.nextLink"), None

        if truncated:
            logger.warning(
                "calendarView {} -> {} has more than {} events; range only partly read",
                isoformat_z(start), isoformat_z(end), self.max_events,
            )
        else:
            logger.debug("calendarView {} -> {}: {} events", isoformat_z(start), isoformat_z(end), len(events))
        return events, not truncated

    # ── meeting directory ───────────────────────────────────────────────

    def directory_urls(self) -> List[str]:
        return [f"{base}{root}" for base in self.base_urls for root in DIRECTORY_ROOTS]

    async def query_meetings(self, directory_url: str, filter_expr: str) -> List[Dict[str, Any]]:
        data = await self.get_json(directory_url, params={"$filter": filter_expr})
        value = data.get("value")
        return value if isinstance(value, list) else []

    def _meeting_urls(self, meeting_id: str, suffix: str) -> List[str]:
        encoded = quote(meeting_id, safe="")
        return [f"{root}/{encoded}{suffix}" for root in self.directory_urls()]

    async def list_transcripts(self, meeting_id: str) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Transcripts of an online meeting and the endpoint that answered.
        ([], None) when no variant would answer.
        """
        for url in self._meeting_urls(meeting_id, "/transcripts"):
            try:
                data = await self.get_json(url)
            except GraphError as exc:
                if exc.is_transport:
                    raise
                logger.debug("listTranscripts {} failed: {}", url, exc)
                continue
            items = data.get("value")
            return (items if isinstance(items, list) else []), url
        return [], None

    async def get_transcript_content(self, meeting_id: str, transcript_id: str, accept: str = "text/vtt") -> str:
        suffix = f"/transcripts/{quote(transcript_id, safe='')}/content"
        last: Optional[GraphError] = None
        for url in self._meeting_urls(meeting_id, suffix):
            try:
                return await self.get_text(url, accept)
            except GraphError as exc:
                if exc.is_transport:
                    raise
                logger.debug("getTranscript {} failed: {}", url, exc)
                last = exc
        raise TranscriptUnavailable(
            last.status if last else 404,
            "Transcript content not available." + (f" Last error: {last.detail}" if last else ""),
        )
