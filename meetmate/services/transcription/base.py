from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    timestamp: str

    @classmethod
    def now(cls, text: str) -> "TranscriptSegment":
        return cls(text=text, timestamp=datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptSegment":
        return cls(text=str(data.get("text", "")), timestamp=str(data.get("timestamp", "")))

    def to_dict(self) -> dict:
        return {"text": self.text, "timestamp": self.timestamp}


class TranscriptionError(RuntimeError):
    """The model rejected the payload; shown to the user, the loop continues."""


class TransientServiceError(RuntimeError):
    """Rate limit or quota; expected to clear on its own."""


class TranscriptionClient(ABC):
    @abstractmethod
    def transcribe(self, audio_b64: str, mime_type: str) -> str:
        """Return cleaned text for one chunk, or "" when there is no speech.

        Raises:
            TranscriptionError: payload rejected by the model, or AI disabled
        """
        raise NotImplementedError


def parse_segments(raw: Optional[list]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for item in raw or []:
        if isinstance(item, dict) and str(item.get("text", "")).strip():
            segments.append(TranscriptSegment.from_dict(item))
    return segments
