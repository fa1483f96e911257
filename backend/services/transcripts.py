"""
Stored transcripts and their once-only AI summary.

The AI sub-record moves none -> queued -> done | error (error -> queued on a
later request). Every transition is a single conditional UPDATE whose
rowcount tells the caller whether it won, so concurrent requests for the
same transcript cannot both generate. A `queued` record older than the
staleness threshold is pushed back to `none` first, so a worker that died
mid-generation cannot wedge the transcript.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.timeutil import utcnow
from models.transcript import AIStatus, Transcript
from services.graph_client import GraphClient, TranscriptUnavailable
from services.summarizer import Summarizer
from services.vtt import vtt_to_text

STALE_RESET_NOTE = "stale queued reset"


class LockPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    stale_after: timedelta = timedelta(minutes=5)
    # how long a request that lost the lock waits for the winner
    wait_timeout: timedelta = timedelta(seconds=20)
    poll_interval: timedelta = timedelta(milliseconds=500)


class TranscriptHints(BaseModel):
    """Metadata the caller already knows about the occurrence."""

    subject: str = ""
    start: str = ""
    end: str = ""
    participant_emails: Sequence[str] = ()


async def find_transcript(
    session: AsyncSession,
    org_id: str,
    occurrence_id: str,
    meeting_id: str,
    transcript_id: str,
) -> Optional[Transcript]:
    stmt = select(Transcript).where(
        Transcript.org_id == org_id,
        Transcript.occurrence_id == occurrence_id,
        Transcript.transcript_id == transcript_id,
    ).execution_options(populate_existing=True)
    doc = (await session.execute(stmt)).scalar_one_or_none()
    if doc is not None or not occurrence_id:
        return doc

    # TODO: drop once rows stored before occurrence ids are backfilled
    legacy = select(Transcript).where(
        Transcript.org_id == org_id,
        Transcript.occurrence_id == "",
        Transcript.meeting_id == meeting_id,
        Transcript.transcript_id == transcript_id,
    ).execution_options(populate_existing=True)
    return (await session.execute(legacy)).scalars().first()


class TranscriptService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        summarizer: Summarizer,
        policy: LockPolicy = LockPolicy(),
    ) -> None:
        self.session_factory = session_factory
        self.summarizer = summarizer
        self.policy = policy

    async def get(self, doc_id: int) -> Optional[Transcript]:
        async with self.session_factory() as session:
            return await session.get(Transcript, doc_id, populate_existing=True)

    # ── storage ─────────────────────────────────────────────────────────

    async def get_or_create(
        self,
        org_id: str,
        occurrence_id: str,
        meeting_id: str,
        transcript_id: str,
        client: Optional[GraphClient],
        hints: TranscriptHints = TranscriptHints(),
    ) -> Transcript:
        async with self.session_factory() as session:
            doc = await find_transcript(session, org_id, occurrence_id, meeting_id, transcript_id)
            if doc is not None:
                return doc

        if client is None:
            raise TranscriptUnavailable(401, "No platform token to fetch transcript content")

        vtt = await client.get_transcript_content(meeting_id, transcript_id, "text/vtt")
        now = utcnow()
        doc = Transcript(
            org_id=org_id,
            occurrence_id=occurrence_id,
            meeting_id=meeting_id,
            transcript_id=transcript_id,
            subject=hints.subject,
            start_date_time=hints.start,
            end_date_time=hints.end,
            participant_emails=list(hints.participant_emails),
            vtt=vtt,
            text=vtt_to_text(vtt),
            ai_status=AIStatus.NONE,
            created_at=now,
            updated_at=now,
        )
        async with self.session_factory() as session:
            session.add(doc)
            try:
                await session.commit()
                await session.refresh(doc)
                logger.info("Stored transcript {} for occurrence {} ({} chars)", transcript_id, occurrence_id, len(doc.text))
                return doc
            except IntegrityError:
                # someone stored it first
                await session.rollback()
                existing = await find_transcript(session, org_id, occurrence_id, meeting_id, transcript_id)
                if existing is None:
                    raise
                return existing

    # ── lock transitions ────────────────────────────────────────────────

    async def reset_if_stale(self, doc_id: int, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        cutoff = now - self.policy.stale_after
        stmt = (
            update(Transcript)
            .where(
                Transcript.id == doc_id,
                Transcript.ai_status == AIStatus.QUEUED,
                or_(Transcript.ai_updated_at.is_(None), Transcript.ai_updated_at < cutoff),
            )
            .values(ai_status=AIStatus.NONE, ai_error=STALE_RESET_NOTE, ai_updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        if result.rowcount:
            logger.warning("Transcript {} was stuck in queued; reset", doc_id)
        return bool(result.rowcount)

    async def acquire(self, doc_id: int, now: Optional[datetime] = None) -> bool:
        """none / error / absent (or done without text) -> queued. True for the single winner."""
        now = now or utcnow()
        stmt = (
            update(Transcript)
            .where(
                Transcript.id == doc_id,
                or_(
                    Transcript.ai_status.in_(AIStatus.ACQUIRABLE),
                    Transcript.ai_status.is_(None),
                    and_(Transcript.ai_status == AIStatus.DONE, Transcript.ai_summary == ""),
                ),
            )
            .values(ai_status=AIStatus.QUEUED, ai_updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def complete(self, doc_id: int, model: str, summary: str) -> None:
        now = utcnow()
        async with self.session_factory() as session:
            doc = await session.get(Transcript, doc_id, populate_existing=True)
            stmt = (
                update(Transcript)
                .where(Transcript.id == doc_id)
                .values(
                    ai_status=AIStatus.DONE,
                    ai_model=model,
                    ai_summary=summary,
                    ai_error="",
                    ai_created_at=(doc.ai_created_at if doc and doc.ai_created_at else now),
                    ai_updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()

    async def fail(self, doc_id: int, error: str) -> None:
        stmt = (
            update(Transcript)
            .where(Transcript.id == doc_id)
            .values(ai_status=AIStatus.ERROR, ai_error=error[:2000], ai_updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    # ── summary ─────────────────────────────────────────────────────────

    async def _generate(self, doc: Transcript, subject_hint: str) -> None:
        logger.info("AI summary generating for transcript {} (len={})", doc.id, len(doc.text or ""))
        try:
            result = await self.summarizer.summarize(doc.text or "", doc.subject or subject_hint)
        except Exception as exc:  # noqa: BLE001
            logger.warning("AI summary failed for transcript {}: {}", doc.id, exc)
            await self.fail(doc.id, str(exc) or exc.__class__.__name__)
            return
        await self.complete(doc.id, result.model, result.summary)

    async def wait_for_result(self, doc_id: int) -> Transcript:
        """Poll until whoever holds the lock finishes, or the wait runs out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.policy.wait_timeout.total_seconds()
        while True:
            doc = await self.get(doc_id)
            if doc is None or doc.ai_status != AIStatus.QUEUED or loop.time() >= deadline:
                return doc
            await asyncio.sleep(self.policy.poll_interval.total_seconds())

    async def ensure_transcript_summary(
        self,
        org_id: str,
        occurrence_id: str,
        meeting_id: str,
        transcript_id: str,
        subject_hint: str = "",
        client: Optional[GraphClient] = None,
        hints: Optional[TranscriptHints] = None,
    ) -> Transcript:
        """
        Stored transcript with its summary, generating the summary at most once.

        A request that loses the lock waits for the winner and returns what it
        sees; `ai_status` is `queued` only if the winner is still working when
        the wait runs out.
        """
        hints = hints or TranscriptHints(subject=subject_hint)
        doc = await self.get_or_create(org_id, occurrence_id, meeting_id, transcript_id, client, hints)

        if doc.ai_status == AIStatus.DONE and doc.ai_summary:
            return doc

        await self.reset_if_stale(doc.id)
        if await self.acquire(doc.id):
            await self._generate(doc, subject_hint)
            return await self.get(doc.id)

        return await self.wait_for_result(doc.id)
