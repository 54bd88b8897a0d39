"""Chunked recording of the mixed stream.

Each cycle records one fixed-length window, encodes it, and hands it to the
transcription client unless it is small enough to be silence. Cycles are
strictly sequential: cycle N+1's recorder is created only after cycle N's
chunk has been dispatched (or discarded) and its text accumulated, so at most
one transcription call is in flight.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from meetmate.services.capture.base import (
    CaptureBackend,
    EncodingError,
    MediaRecorder,
    MediaStream,
)
from meetmate.services.transcript_accumulator import TranscriptAccumulator
from meetmate.services.transcription.base import (
    TranscriptSegment,
    TranscriptionClient,
    TranscriptionError,
)

# Most specific, compressed containers first.
PREFERRED_MIME_TYPES: tuple[str, ...] = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/ogg;codecs=vorbis",
    "audio/mp4",
    "audio/aac",
    "audio/flac",
    "audio/wav",
)


def select_mime_type(
    backend: CaptureBackend, preferences: Sequence[str] = PREFERRED_MIME_TYPES
) -> str:
    for mime_type in preferences:
        if backend.is_type_supported(mime_type):
            return mime_type
    raise EncodingError("No supported audio format found.")


@dataclass(frozen=True)
class AudioChunk:
    index: int
    data: bytes
    mime_type: str
    duration: float

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class ChunkRecorder:
    def __init__(
        self,
        backend: CaptureBackend,
        stream: MediaStream,
        mime_type: str,
        transcriber: TranscriptionClient,
        accumulator: TranscriptAccumulator,
        *,
        chunk_seconds: float = 6.0,
        min_chunk_bytes: int = 8000,
        bits_per_second: int = 128000,
        is_active: Callable[[], bool] = lambda: True,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._backend = backend
        self._stream = stream
        self._mime_type = mime_type
        self._transcriber = transcriber
        self._accumulator = accumulator
        self._chunk_seconds = chunk_seconds
        self._min_chunk_bytes = min_chunk_bytes
        self._bits_per_second = bits_per_second
        self._is_active = is_active
        self._on_error = on_error
        self._logger = logging.getLogger("meetmate.chunk_recorder")

        self._stop_requested = False
        self._window_done: Optional[asyncio.Event] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._active_recorder: Optional[MediaRecorder] = None
        self._reported_errors: set[str] = set()

        self.chunks_recorded = 0
        self.chunks_discarded = 0
        self.chunks_transcribed = 0

    @property
    def mime_type(self) -> str:
        return self._mime_type

    def request_stop(self) -> None:
        """End the current window now; no further cycle is started."""
        self._stop_requested = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._window_done is not None:
            self._window_done.set()

    async def run(self) -> None:
        self._logger.info(
            "Chunk chain started: mime=%s chunk_seconds=%.1f min_bytes=%d",
            self._mime_type,
            self._chunk_seconds,
            self._min_chunk_bytes,
        )
        try:
            while self._is_active() and not self._stop_requested:
                await self._run_cycle()
            # Stop may land between cycles; the window it interrupted is empty.
        finally:
            self._discard_active_recorder()
            self._logger.info(
                "Chunk chain ended: recorded=%d transcribed=%d discarded=%d",
                self.chunks_recorded,
                self.chunks_transcribed,
                self.chunks_discarded,
            )

    async def _run_cycle(self) -> None:
        recorder = self._backend.create_recorder(
            self._stream, self._mime_type, self._bits_per_second
        )
        self._active_recorder = recorder
        recorder.start()

        loop = asyncio.get_running_loop()
        window_done = asyncio.Event()
        self._window_done = window_done
        if self._stop_requested:
            window_done.set()
        else:
            self._timer = loop.call_later(self._chunk_seconds, window_done.set)
        try:
            await window_done.wait()
        finally:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._window_done = None

        try:
            fragments = await asyncio.to_thread(recorder.stop)
        except Exception as exc:
            self._logger.exception("Failed to finalize chunk: %s", exc)
            fragments = []
        finally:
            self._active_recorder = None

        index = self.chunks_recorded
        self.chunks_recorded += 1
        chunk = AudioChunk(
            index=index,
            data=b"".join(fragments),
            mime_type=self._mime_type,
            duration=float(getattr(recorder, "duration", self._chunk_seconds)),
        )
        segments = await self._handle_chunk(chunk)
        await self._accumulator.append(segments)

    async def _handle_chunk(self, chunk: AudioChunk) -> list[TranscriptSegment]:
        if chunk.size < self._min_chunk_bytes:
            self.chunks_discarded += 1
            self._logger.info(
                "Skipping chunk %d: too small (%d bytes, likely silence)", chunk.index, chunk.size
            )
            return []

        payload = await asyncio.to_thread(chunk.to_base64)
        self._logger.debug(
            "Dispatching chunk %d: bytes=%d base64_len=%d duration=%.2fs",
            chunk.index,
            chunk.size,
            len(payload),
            chunk.duration,
        )
        try:
            text = await asyncio.to_thread(self._transcriber.transcribe, payload, chunk.mime_type)
        except TranscriptionError as exc:
            self._report_error(exc)
            return []
        except Exception as exc:
            self._logger.exception("Transcription client raised for chunk %d: %s", chunk.index, exc)
            return []

        self.chunks_transcribed += 1
        if not text:
            self._logger.debug("Chunk %d had no speech", chunk.index)
            return []
        return [TranscriptSegment.now(text)]

    def _report_error(self, exc: Exception) -> None:
        message = str(exc)
        self._logger.warning("Chunk transcription error: %s", message)
        if message in self._reported_errors:
            return
        self._reported_errors.add(message)
        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception as callback_exc:
                self._logger.warning("Error callback failed: %s", callback_exc)

    def _discard_active_recorder(self) -> None:
        recorder = self._active_recorder
        self._active_recorder = None
        if recorder is not None and recorder.state == "recording":
            try:
                recorder.stop()
            except Exception as exc:
                self._logger.warning("Failed to stop recorder during teardown: %s", exc)
