"""Capture session: acquisition, the chunk chain, and teardown.

State machine::

    IDLE -> ACQUIRING -> ACTIVE -> STOPPING -> IDLE
    ACQUIRING -> IDLE   (acquisition or format negotiation failed)

``stop_recording`` ends the current window early, waits for that final chunk
to be transcribed and flushed, then releases the display, microphone and
mixed-stream tracks exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Sequence

from meetmate.services.capture.base import (
    AcquisitionError,
    CaptureBackend,
    EncodingError,
    MediaStream,
    MicrophoneConstraints,
    SessionBusyError,
)
from meetmate.services.chunk_recorder import PREFERRED_MIME_TYPES, ChunkRecorder, select_mime_type
from meetmate.services.config import CaptureConfig
from meetmate.services.transcript_accumulator import TranscriptAccumulator
from meetmate.services.transcription.base import TranscriptionClient


class SessionState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    ACTIVE = "active"
    STOPPING = "stopping"


class CaptureSession:
    def __init__(
        self,
        backend: CaptureBackend,
        transcriber: TranscriptionClient,
        config: CaptureConfig,
        mime_preferences: Sequence[str] = PREFERRED_MIME_TYPES,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._backend = backend
        self._transcriber = transcriber
        self._config = config
        self._mime_preferences = tuple(mime_preferences)
        self._on_error = on_error
        self._logger = logging.getLogger("meetmate.capture_session")

        self._state = SessionState.IDLE
        self._display: Optional[MediaStream] = None
        self._microphone: Optional[MediaStream] = None
        self._mixed: Optional[MediaStream] = None
        self._recorder: Optional[ChunkRecorder] = None
        self._accumulator: Optional[TranscriptAccumulator] = None
        self._chain_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Future] = None
        self._cancel_acquire = False

        self._meeting_id: Optional[str] = None
        self._started_at: Optional[datetime] = None
        self._mime_type: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def meeting_id(self) -> Optional[str]:
        return self._meeting_id

    @property
    def backend(self) -> CaptureBackend:
        return self._backend

    def is_recording(self) -> bool:
        return self._state is SessionState.ACTIVE

    def status(self) -> dict:
        recorder = self._recorder
        return {
            "recording": self.is_recording(),
            "state": self._state.value,
            "meeting_id": self._meeting_id,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "mime_type": self._mime_type,
            "backend": self._backend.name,
            "chunks_recorded": recorder.chunks_recorded if recorder else 0,
            "chunks_discarded": recorder.chunks_discarded if recorder else 0,
            "last_error": self.last_error,
        }

    async def start_recording(
        self, accumulator: TranscriptAccumulator, meeting_id: Optional[str] = None
    ) -> dict:
        if self._state is not SessionState.IDLE:
            self._logger.warning("Start requested while state=%s", self._state.value)
            raise SessionBusyError("Recording already in progress")

        self._state = SessionState.ACQUIRING
        self._cancel_acquire = False
        self.last_error = None
        self._meeting_id = meeting_id
        self._logger.info("Recording start: meeting=%s backend=%s", meeting_id, self._backend.name)

        try:
            await asyncio.to_thread(self._backend.check_support)
            self._mime_type = select_mime_type(self._backend, self._mime_preferences)
            self._display = await self._acquire(self._backend.acquire_display)
            self._raise_if_cancelled()
            self._microphone = await self._acquire(
                self._backend.acquire_microphone, MicrophoneConstraints()
            )
            self._raise_if_cancelled()
            self._mixed = self._backend.mix([self._display, self._microphone])
        except asyncio.CancelledError:
            self._logger.warning("Recording start cancelled during acquisition")
            self._release_media()
            self._reset()
            raise
        except Exception as exc:
            self._logger.warning("Recording start failed: %s", exc)
            self._release_media()
            self.last_error = str(exc)
            self._reset()
            if isinstance(exc, (AcquisitionError, EncodingError)):
                raise
            raise AcquisitionError(f"Failed to start recording: {exc}") from exc

        self._accumulator = accumulator
        self._recorder = ChunkRecorder(
            self._backend,
            self._mixed,
            self._mime_type,
            self._transcriber,
            accumulator,
            chunk_seconds=self._config.chunk_seconds,
            min_chunk_bytes=self._config.min_chunk_bytes,
            bits_per_second=self._config.audio_bits_per_second,
            is_active=self.is_recording,
            on_error=self._handle_chunk_error,
        )
        self._started_at = datetime.now(timezone.utc)
        self._state = SessionState.ACTIVE
        self._chain_task = asyncio.create_task(self._recorder.run(), name="chunk-chain")
        self._chain_task.add_done_callback(self._on_chain_done)
        self._logger.info("Recording active: mime=%s", self._mime_type)
        return self.status()

    async def stop_recording(self) -> dict:
        """Stop capture; safe to call in any state and more than once."""
        if self._state is SessionState.IDLE:
            return self.status()
        if self._state is SessionState.ACQUIRING:
            # start_recording notices this after its current await and unwinds.
            self._cancel_acquire = True
            return self.status()
        if self._stop_task is None:
            self._stop_task = asyncio.ensure_future(self._stop())
        return await asyncio.shield(self._stop_task)

    async def _stop(self) -> dict:
        self._state = SessionState.STOPPING
        self._logger.info("Recording stop requested: meeting=%s", self._meeting_id)
        if self._recorder is not None:
            self._recorder.request_stop()

        task = self._chain_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self._config.final_flush_timeout)
            except asyncio.TimeoutError:
                self._logger.warning(
                    "Final chunk did not finish within %.1fs; cancelling chain",
                    self._config.final_flush_timeout,
                )
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            except Exception as exc:
                self._logger.warning("Chunk chain ended with error during stop: %s", exc)

        if self._accumulator is not None:
            self._accumulator.close()
        self._release_media()
        final = self.status()
        final["recording"] = False
        final["state"] = SessionState.IDLE.value
        self._logger.info(
            "Recording stopped: meeting=%s chunks=%s", self._meeting_id, final["chunks_recorded"]
        )
        self._reset()
        return final

    async def _acquire(self, acquire, *args) -> MediaStream:
        """Run a blocking acquisition; a stream that lands after cancellation is released."""
        pending = asyncio.ensure_future(asyncio.to_thread(acquire, *args))
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            pending.add_done_callback(self._release_orphan)
            raise

    def _release_orphan(self, pending: asyncio.Future) -> None:
        if pending.cancelled() or pending.exception() is not None:
            return
        self._logger.info("Releasing stream acquired after start was cancelled")
        pending.result().stop_tracks()

    def _raise_if_cancelled(self) -> None:
        if self._cancel_acquire:
            raise AcquisitionError("Recording was cancelled during acquisition")

    def _handle_chunk_error(self, exc: Exception) -> None:
        self.last_error = str(exc)
        if self._on_error is not None:
            self._on_error(exc)

    def _on_chain_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self._logger.error("Chunk chain failed: %s", exc, exc_info=exc)
        self.last_error = str(exc)
        if self._state is SessionState.ACTIVE:
            # Release devices; the chain cannot continue. stop_recording() joins this task.
            if self._stop_task is None:
                self._stop_task = asyncio.ensure_future(self._stop())

    def _release_media(self) -> None:
        for attr in ("_display", "_microphone", "_mixed"):
            stream: Optional[MediaStream] = getattr(self, attr)
            setattr(self, attr, None)
            if stream is None:
                continue
            try:
                stream.stop_tracks()
            except Exception as exc:
                self._logger.warning("Failed to release %s tracks: %s", attr.lstrip("_"), exc)

    def _reset(self) -> None:
        self._state = SessionState.IDLE
        self._recorder = None
        self._accumulator = None
        self._chain_task = None
        self._stop_task = None
        self._cancel_acquire = False
        self._meeting_id = None
        self._started_at = None
        self._mime_type = None
