"""Utilities for transcript processing and display."""

from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from meetmate.services.transcription.base import TranscriptSegment

# Preambles the model sometimes puts before the actual transcription.
_BOILERPLATE_PREFIXES = (
    re.compile(r"^Here's.*?:", re.IGNORECASE),
    re.compile(r"^The transcription is:", re.IGNORECASE),
    re.compile(r"^The audio says:", re.IGNORECASE),
)

# Whole-line apologies that mean the model heard nothing usable.
_APOLOGY_LINES = (
    re.compile(r"^I'm unable to transcribe.*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^I don't have access.*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^I need the audio.*$", re.IGNORECASE | re.MULTILINE),
)

_INABILITY_PHRASE = "unable to transcribe"


def clean_transcription(text: str) -> str:
    """Strip model boilerplate from a chunk transcription.

    Returns "" when nothing but boilerplate remains or when the model says it
    could not transcribe the audio; callers treat that as "no speech".
    """
    if not text:
        return ""
    cleaned = text.strip()
    for pattern in _BOILERPLATE_PREFIXES:
        cleaned = pattern.sub("", cleaned, count=1).strip()
    for pattern in _APOLOGY_LINES:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip()
    if not cleaned or _INABILITY_PHRASE in cleaned.lower():
        return ""
    return cleaned


def _format_clock(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).astimezone().strftime("%H:%M:%S")
    except ValueError:
        return timestamp


def format_transcript(segments: Iterable[TranscriptSegment], with_timestamps: bool = False) -> str:
    """Render segments one per line, optionally prefixed with local [HH:MM:SS]."""
    lines = []
    for segment in segments:
        if with_timestamps:
            lines.append(f"[{_format_clock(segment.timestamp)}] {segment.text}")
        else:
            lines.append(segment.text)
    return "\n".join(lines)
