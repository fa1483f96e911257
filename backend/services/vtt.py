"""
WebVTT -> plain text, just enough for summarisation.
"""

from __future__ import annotations

import re

_CUE_NUMBER = re.compile(r"^\d+$")
_NOTE = re.compile(r"^NOTE\b", re.IGNORECASE)
_SPEAKER = re.compile(r"^<v\s+([^>]+)>(.*)$", re.IGNORECASE)
_CLOSE_VOICE = re.compile(r"</v>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")


def vtt_to_text(vtt: str | None) -> str:
    """
    Drop the header, cue numbers, timing lines and NOTE blocks, turn
    `<v Speaker>text</v>` into `Speaker: text`, strip any other markup and
    collapse exact consecutive repeats.
    """
    lines: list[str] = []
    # a leading BOM would survive strip() and keep the header line
    for raw in str(vtt or "").lstrip("\ufeff").splitlines():
        line = raw.strip()
        if not line or line == "WEBVTT":
            continue
        if _CUE_NUMBER.match(line) or "-->" in line or _NOTE.match(line):
            continue

        speaker = _SPEAKER.match(line)
        if speaker:
            name = speaker.group(1).strip()
            text = _TAG.sub("", _CLOSE_VOICE.sub("", speaker.group(2))).strip()
            if text:
                lines.append(f"{name}: {text}")
            continue

        cleaned = _TAG.sub("", line).strip()
        if cleaned:
            lines.append(cleaned)

    deduped: list[str] = []
    for line in lines:
        if not deduped or deduped[-1] != line:
            deduped.append(line)
    return "\n".join(deduped)
