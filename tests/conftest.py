"""Shared fixtures.

Provides:
- a fresh SQLite database file per test with all tables created
- FakeGraph: an in-memory Microsoft Graph served through httpx.MockTransport,
  so GraphClient runs unmodified against it
- FakeSummarizer: counts calls, optionally slow or failing
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

# before anything reads settings
os.environ.setdefault("LOG_DIR", "")
os.environ.setdefault("SECRET_KEY", "test-secret")

import httpx
import pytest
import pytest_asyncio

from core.database import build_engine, build_session_factory, init_db
from core.timeutil import isoformat_z, parse_datetime
from services.graph_client import GraphClient
from services.summarizer import SummaryError, SummaryResult

ORG = "org-1"
USER = "alice@contoso.com"
T0 = datetime(2026, 3, 2, 10, 0, 0)


# ── database ────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ── fake meeting platform ──────────────────────────────────────────────────


def graph_event(
    event_id: str,
    start: datetime,
    end: datetime,
    join_url: Optional[str] = None,
    subject: str = "Weekly sync",
    attendees: Tuple[str, ...] = ("Bob@Contoso.com", "alice@contoso.com"),
    organizer: str = "Alice@Contoso.com",
    cancelled: bool = False,
) -> Dict[str, Any]:
    return {
        "id": event_id,
        "subject": subject,
        "start": {"dateTime": start.strftime("%Y-%m-%dT%H:%M:%S.0000000"), "timeZone": "UTC"},
        "end": {"dateTime": end.strftime("%Y-%m-%dT%H:%M:%S.0000000"), "timeZone": "UTC"},
        "location": {"displayName": "Teams"},
        "organizer": {"emailAddress": {"address": organizer}},
        "attendees": [{"emailAddress": {"address": a}} for a in attendees],
        "isCancelled": cancelled,
        "isOnlineMeeting": join_url is not None,
        "onlineMeeting": {"joinUrl": join_url} if join_url else None,
    }


class FakeGraph:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []
        self.meetings: List[Dict[str, Any]] = []
        self.transcripts: Dict[str, List[Dict[str, Any]]] = {}
        self.content: Dict[Tuple[str, str], str] = {}
        self.requests: List[httpx.Request] = []
        self.calendar_down = False
        self.directory_status: Optional[int] = None
        self.network_down = False

    # setup helpers

    def add_meeting(self, meeting_id: str, join_url: str, start: datetime, end: datetime) -> None:
        self.meetings.append({
            "id": meeting_id,
            "joinWebUrl": join_url,
            "startDateTime": isoformat_z(start),
            "endDateTime": isoformat_z(end),
        })

    def add_transcript(self, meeting_id: str, transcript_id: str, created: Optional[datetime], vtt: str = "") -> None:
        self.transcripts.setdefault(meeting_id, []).append({
            "id": transcript_id,
            "createdDateTime": isoformat_z(created) if created else None,
        })
        self.content[(meeting_id, transcript_id)] = vtt or f"WEBVTT\n\n1\n00:00:00.000 --> 00:00:02.000\n<v Alice>Hello from {transcript_id}</v>\n"

    def count(self, fragment: str) -> int:
        return sum(1 for r in self.requests if fragment in r.url.path)

    # transport

    def _filter_meetings(self, expr: str) -> List[Dict[str, Any]]:
        if " eq '" in expr:
            value = expr.split(" eq '", 1)[1][:-1].replace("''", "'")
            return [m for m in self.meetings if m["joinWebUrl"] == value]
        if expr.startswith("startswith("):
            value = expr.split(",'", 1)[1][:-2].replace("''", "'")
            return [m for m in self.meetings if m["joinWebUrl"].startswith(value)]
        if expr.startswith("startDateTime ge"):
            lo = parse_datetime(expr.split("'")[1])
            hi = parse_datetime(expr.split("'")[3])
            return [
                m for m in self.meetings
                if parse_datetime(m["startDateTime"]) >= lo and parse_datetime(m["endDateTime"]) <= hi
            ]
        return []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.network_down:
            raise httpx.ConnectError("network unreachable", request=request)
        path = request.url.path

        if path.endswith("/me/calendarView"):
            if self.calendar_down:
                return httpx.Response(503, text="calendar unavailable")
            lo = parse_datetime(request.url.params["startDateTime"])
            hi = parse_datetime(request.url.params["endDateTime"])
            value = sorted(
                (ev for ev in self.events if lo <= parse_datetime(ev["start"]) <= hi),
                key=lambda ev: parse_datetime(ev["start"]),
                reverse="desc" in request.url.params.get("$orderby", ""),
            )
            top = int(request.url.params.get("$top", len(value) or 1))
            skip = int(request.url.params.get("$skip", 0))
            body: Dict[str, Any] = {"value": value[skip:skip + top]}
            if skip + top < len(value):
                body["@odata.nextLink"] = str(request.url.copy_set_param("$skip", str(skip + top)))
            return httpx.Response(200, json=body)

        if path.endswith("/onlineMeetings"):
            if self.directory_status:
                return httpx.Response(self.directory_status, text="filter not supported")
            return httpx.Response(200, json={"value": self._filter_meetings(request.url.params["$filter"])})

        if path.endswith("/content"):
            parts = path.split("/")
            key = (parts[-4], parts[-2])
            if key not in self.content:
                return httpx.Response(404, text="no content")
            return httpx.Response(200, text=self.content[key])

        if path.endswith("/transcripts"):
            meeting_id = path.split("/")[-2]
            if not any(m["id"] == meeting_id for m in self.meetings):
                return httpx.Response(404, text="meeting not found")
            return httpx.Response(200, json={"value": self.transcripts.get(meeting_id, [])})

        return httpx.Response(404, text="unknown path")

    def client(self, token: str = "token") -> GraphClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return GraphClient(token, http=http)


@pytest.fixture
def graph():
    return FakeGraph()


@pytest_asyncio.fixture
async def graph_client(graph):
    client = graph.client()
    async with client:
        yield client
    await client._http.aclose()


# ── fake summariser ────────────────────────────────────────────────────────


class FakeSummarizer:
    def __init__(self, delay: float = 0.0, fail_times: int = 0) -> None:
        self.calls = 0
        self.delay = delay
        self.fail_times = fail_times

    async def summarize(self, text: str, subject: str) -> SummaryResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise SummaryError("Gemini returned empty summary text")
        return SummaryResult(model="fake-model", summary=f"### Quick Summary\n- {subject}: {len(text)} chars")

    async def detailed_notes(self, text: str, subject: str) -> SummaryResult:
        if not text.strip():
            raise SummaryError("Empty transcript text")
        return SummaryResult(model="fake-model", summary=f"## Detailed Notes\n\n{subject}")


@pytest.fixture
def summarizer():
    return FakeSummarizer()


def days(n: float) -> timedelta:
    return timedelta(days=n)
