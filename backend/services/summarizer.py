"""
Meeting summariser backed by Gemini.

Failures (no key, nothing to summarise, empty answer) raise SummaryError;
the summary lock records them on the transcript instead of failing the
request.
"""

from __future__ import annotations

from typing import Protocol

import google.generativeai as genai
from loguru import logger
from pydantic import BaseModel

SUMMARY_PROMPT = """
You are an enterprise meeting-notes assistant.
Write a crisp, leadership-ready recap for internal sharing.
NO QUOTES section. Do not include verbatim quotes.

Rules:
- Be factual and specific.
- Use short bullets. Avoid long paragraphs.
- If something is unclear, write "Unclear".
- If an owner is not explicit, write "Owner: Unassigned".
- If no actions exist, write "None".

Output format (markdown), follow EXACTLY these headings:

### Quick Summary
- 5 to 6 bullets capturing the essence (outcome + why + impact)

### Quick Actions
- [Owner: Name/Unassigned] Action | Due: Date/Unclear

### Decisions
- bullets (or "None")

### Risks / Blockers
- bullets (or "None")

### Notes
- optional bullets for context (keep concise)
"""

DETAILED_NOTES_PROMPT = """
You are an enterprise meeting-notes assistant.

Write DETAILED, HUMAN-READABLE MEETING NOTES.
This is NOT a transcript and must NOT read like one.

Purpose:
- Help someone who missed the meeting fully understand the discussion.
- Provide context, reasoning, and flow.
- The transcript remains the source of truth for exact wording.

Rules:
- Do NOT use quotes.
- Do NOT attribute sentences to speakers.
- Do NOT list timestamps.
- Write in clear, professional paragraphs (not bullet explosion).
- Be factual. If unclear, write "Unclear".
- Do not invent decisions or intent.

Structure your output EXACTLY as follows:

## Detailed Notes

### Context & Objective

### Current State Overview

### Key Discussion Themes

### Options Considered & Trade-offs

### Decisions & Alignment

### Open Questions & Dependencies

### Next Steps (Narrative)
"""


class SummaryError(Exception):
    pass


class SummaryResult(BaseModel):
    model: str
    summary: str


class Summarizer(Protocol):
    async def summarize(self, text: str, subject: str) -> SummaryResult: ...


def build_input(text: str, subject: str, max_chars: int) -> str:
    trimmed = str(text or "").strip()
    if not trimmed:
        raise SummaryError("Empty transcript text")
    if len(trimmed) > max_chars:
        trimmed = trimmed[:max_chars]
    return f"Meeting subject: {subject or '(unknown)'}\n\nTranscript:\n{trimmed}"


class GeminiSummarizer:
    def __init__(
        self,
        api_key: str | None,
        model_name: str,
        max_chars: int = 12000,
        detailed_max_chars: int = 16000,
    ) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.max_chars = max_chars
        self.detailed_max_chars = detailed_max_chars

    async def _generate(self, instructions: str, prompt: str, max_output_tokens: int) -> SummaryResult:
        if not self.api_key:
            raise SummaryError("GEMINI_API_KEY missing")

        genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(self.model_name, system_instruction=instructions)
        result = await model.generate_content_async(
            prompt,
            generation_config={
                "temperature": 0.2,
                "max_output_tokens": max_output_tokens,
            },
        )
        try:
            content = (result.text or "").strip()
        except ValueError as exc:
            # .text raises when the candidate was blocked or has no parts
            raise SummaryError(f"Gemini returned no text: {exc}") from exc
        if not content:
            raise SummaryError("Gemini returned empty summary text")

        logger.debug("Gemini {} produced {} chars", self.model_name, len(content))
        return SummaryResult(model=self.model_name, summary=content)

    async def summarize(self, text: str, subject: str) -> SummaryResult:
        """Leadership recap for one transcript."""
        prompt = build_input(text, subject, self.max_chars)
        return await self._generate(SUMMARY_PROMPT, prompt, max_output_tokens=1024)

    async def detailed_notes(self, text: str, subject: str) -> SummaryResult:
        prompt = build_input(text, subject, self.detailed_max_chars)
        return await self._generate(DETAILED_NOTES_PROMPT, prompt, max_output_tokens=4096)
