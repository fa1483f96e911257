from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_graph_client, get_lock_policy, get_session_factory, get_summarizer
from core.database import get_session
from core.security import CallerContext, get_caller
from models.event_cache import CachedEvent
from models.transcript import Transcript
from services.graph_client import GraphClient, GraphError, TranscriptUnavailable
from services.summarizer import GeminiSummarizer, SummaryError
from services.transcripts import LockPolicy, TranscriptHints, TranscriptService

router = APIRouter(prefix="/transcripts", tags=["Transcripts"])


def get_transcript_service(
    session_factory: Callable[[], AsyncSession] = Depends(get_session_factory),
    summarizer: GeminiSummarizer = Depends(get_summarizer),
    policy: LockPolicy = Depends(get_lock_policy),
) -> TranscriptService:
    return TranscriptService(session_factory, summarizer, policy)


def _transcript(doc: Transcript, include_text: bool = True) -> dict:
    out = {
        "id": doc.id,
        "occurrenceId": doc.occurrence_id,
        "meetingId": doc.meeting_id,
        "transcriptId": doc.transcript_id,
        "subject": doc.subject,
        "start": doc.start_date_time,
        "end": doc.end_date_time,
        "participants": doc.participant_emails,
        "ai": {
            "status": doc.ai_status,
            "model": doc.ai_model,
            "summary": doc.ai_summary,
            "error": doc.ai_error,
            "createdAt": doc.ai_created_at.isoformat() if doc.ai_created_at else None,
            "updatedAt": doc.ai_updated_at.isoformat() if doc.ai_updated_at else None,
        },
    }
    if include_text:
        out["text"] = doc.text
    return out


async def _owned_transcript(doc_id: int, caller: CallerContext, session: AsyncSession) -> Transcript:
    doc = await session.get(Transcript, doc_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Transcript not found")
    # org isolation
    if doc.org_id != caller.org_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    # Calendar visibility is the access boundary; attendance is only reported.
    if doc.participant_emails and caller.user_email not in doc.participant_emails:
        logger.warning("User {} opened transcript {} without being a listed participant", caller.user_email, doc.id)
    return doc


@router.post("/ensure/{occurrence_id}/{meeting_id}/{transcript_id}")
async def ensure_transcript(
    occurrence_id: str,
    meeting_id: str,
    transcript_id: str,
    subject: str = "",
    start: str = "",
    end: str = "",
    caller: CallerContext = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
    client: Optional[GraphClient] = Depends(get_graph_client),
    service: TranscriptService = Depends(get_transcript_service),
) -> dict:
    """
    Store the transcript (once) and make sure its AI summary exists (once).
    """
    cached = (
        await session.execute(
            select(CachedEvent).where(
                CachedEvent.org_id == caller.org_id,
                CachedEvent.user_email == caller.user_email,
                CachedEvent.event_id == occurrence_id,
            )
        )
    ).scalar_one_or_none()

    hints = TranscriptHints(
        subject=subject or (cached.subject if cached else ""),
        start=start or (cached.start_date_time if cached else ""),
        end=end or (cached.end_date_time if cached else ""),
        participant_emails=cached.attendee_emails if cached else (),
    )

    try:
        doc = await service.ensure_transcript_summary(
            caller.org_id,
            occurrence_id,
            meeting_id,
            transcript_id,
            subject_hint=hints.subject,
            client=client,
            hints=hints,
        )
    except TranscriptUnavailable as exc:
        logger.warning("Transcript {} unavailable for {}: {}", transcript_id, caller.user_email, exc)
        raise HTTPException(status_code=502, detail="Transcript content is not available yet")
    except GraphError as exc:
        logger.error("Meeting platform error fetching transcript {}: {}", transcript_id, exc)
        raise HTTPException(status_code=502, detail="Failed to fetch transcript from the meeting platform")

    return _transcript(doc)


@router.get("/{doc_id}")
async def get_saved_transcript(
    doc_id: int,
    caller: CallerContext = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Get a stored transcript with its summary."""
    return _transcript(await _owned_transcript(doc_id, caller, session))


@router.post("/{doc_id}/notes")
async def detailed_notes(
    doc_id: int,
    caller: CallerContext = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
    summarizer: GeminiSummarizer = Depends(get_summarizer),
) -> dict:
    """Longer narrative notes, generated on demand and not stored."""
    doc = await _owned_transcript(doc_id, caller, session)
    try:
        result = await summarizer.detailed_notes(doc.text, doc.subject)
    except SummaryError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"id": doc.id, "model": result.model, "notes": result.summary}
