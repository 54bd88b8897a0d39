from __future__ import annotations

import logging
import time
from typing import Optional

from meetmate.services.llm.base import LLMProvider, LLMProviderError
from meetmate.services.transcript_utils import clean_transcription
from meetmate.services.transcription.base import (
    TranscriptionClient,
    TranscriptionError,
    TransientServiceError,
)

# Payload too large / unsupported media type.
_REJECTED_STATUS = {400, 413, 415}
_RATE_LIMIT_STATUS = 429


def classify_provider_error(exc: LLMProviderError) -> Optional[Exception]:
    """Map a provider failure onto the transcription error taxonomy.

    Returns None for failures that are neither rejections nor rate limits.
    """
    message = str(exc).lower()
    if exc.status_code in _REJECTED_STATUS:
        return TranscriptionError("Audio too long or in unsupported format.")
    if exc.status_code == _RATE_LIMIT_STATUS or "quota" in message:
        return TransientServiceError(str(exc))
    return None


class ModelTranscriptionClient(TranscriptionClient):
    """Transcribes chunks with the hosted multimodal model.

    Only a rejected payload (or missing AI configuration) raises; every other
    failure is logged and reported as "no speech" so the capture loop keeps
    going.
    """

    def __init__(self, provider: Optional[LLMProvider]) -> None:
        self._provider = provider
        self._logger = logging.getLogger("meetmate.transcription")

    def transcribe(self, audio_b64: str, mime_type: str) -> str:
        if self._provider is None:
            raise TranscriptionError("AI features are disabled.")

        start_time = time.perf_counter()
        try:
            raw = self._provider.transcribe_audio(audio_b64, mime_type)
        except LLMProviderError as exc:
            mapped = classify_provider_error(exc)
            if isinstance(mapped, TranscriptionError):
                self._logger.warning("Transcription rejected: %s", exc)
                raise mapped from exc
            if isinstance(mapped, TransientServiceError):
                self._logger.warning("Quota hit, skipping chunk: %s", exc)
                return ""
            self._logger.error("Transcription failed: %s", exc)
            return ""
        except Exception as exc:
            self._logger.exception("Unexpected transcription error: %s", exc)
            return ""

        text = clean_transcription(raw)
        duration_ms = (time.perf_counter() - start_time) * 1000
        self._logger.info(
            "Transcription complete in %.0f ms: base64_len=%d chars=%d",
            duration_ms,
            len(audio_b64),
            len(text),
        )
        return text
