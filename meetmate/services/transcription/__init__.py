from meetmate.services.transcription.base import (
    TranscriptSegment,
    TranscriptionClient,
    TranscriptionError,
    TransientServiceError,
    parse_segments,
)
from meetmate.services.transcription.model_client import ModelTranscriptionClient

__all__ = [
    "TranscriptSegment",
    "TranscriptionClient",
    "TranscriptionError",
    "TransientServiceError",
    "parse_segments",
    "ModelTranscriptionClient",
]
