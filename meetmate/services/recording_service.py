import asyncio
import logging
from typing import Optional

from meetmate.services.capture_session import CaptureSession, SessionState
from meetmate.services.meeting_store import MeetingStore, PersistenceError
from meetmate.services.transcript_accumulator import TranscriptAccumulator
from meetmate.services.transcription.base import TranscriptSegment


class RecordingService:
    """Binds the capture session to a meeting record in the store."""

    def __init__(self, session: CaptureSession, meeting_store: MeetingStore) -> None:
        self._session = session
        self._meeting_store = meeting_store
        self._logger = logging.getLogger("meetmate.recording")

    @property
    def session(self) -> CaptureSession:
        return self._session

    def status(self) -> dict:
        return self._session.status()

    def _accumulator_for(
        self, meeting_id: str, existing: list[TranscriptSegment]
    ) -> TranscriptAccumulator:
        store = self._meeting_store

        async def persist(segments: list[TranscriptSegment]) -> None:
            await asyncio.to_thread(store.save_transcript, meeting_id, segments)

        def publish(batch: list[TranscriptSegment]) -> None:
            store.publish_event(
                "transcript_segments",
                meeting_id,
                {"segments": [segment.to_dict() for segment in batch]},
            )

        return TranscriptAccumulator(persist=persist, on_update=publish, initial=existing)

    async def start(self, meeting_id: str) -> dict:
        if not MeetingStore.is_valid_id(meeting_id):
            raise ValueError("meeting_id has no characters usable in a file name")
        # Resuming a meeting appends to the transcript it already has.
        existing = await asyncio.to_thread(self._meeting_store.get_transcript, meeting_id)
        accumulator = self._accumulator_for(meeting_id, existing)
        status = await self._session.start_recording(accumulator, meeting_id)
        try:
            await asyncio.to_thread(
                self._meeting_store.upsert_meeting_fields, meeting_id, {"status": "in_progress"}
            )
        except (PersistenceError, ValueError):
            self._logger.error("Could not mark meeting=%s in progress; stopping capture", meeting_id)
            await self._session.stop_recording()
            raise
        self._meeting_store.publish_event("recording_started", meeting_id)
        self._logger.info("Recording bound to meeting=%s existing_segments=%d", meeting_id, len(existing))
        return status

    async def stop(self) -> dict:
        meeting_id = self._session.meeting_id
        was_recording = self._session.state is not SessionState.IDLE
        final = await self._session.stop_recording()
        if meeting_id and was_recording and final.get("state") == SessionState.IDLE.value:
            await asyncio.to_thread(
                self._meeting_store.upsert_meeting_fields, meeting_id, {"status": "completed"}
            )
            self._meeting_store.publish_event("recording_stopped", meeting_id)
        return final

    async def clear_transcript(self, meeting_id: str) -> Optional[dict]:
        """Empty the stored transcript, stopping capture for this meeting first."""
        if self._session.meeting_id == meeting_id and self._session.state is not SessionState.IDLE:
            self._logger.info("Clearing transcript of active meeting=%s; stopping capture", meeting_id)
            await self.stop()
        if await asyncio.to_thread(self._meeting_store.get_meeting, meeting_id) is None:
            return None
        return await asyncio.to_thread(
            self._meeting_store.upsert_meeting_fields, meeting_id, {"transcript": []}
        )

    def report_error(self, exc: Exception) -> None:
        self._meeting_store.publish_event(
            "recording_error", self._session.meeting_id, {"message": str(exc)}
        )
