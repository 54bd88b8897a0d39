from typing import Optional

import asyncio
import json
import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from meetmate.services.meeting_store import MeetingStore, PersistenceError
from meetmate.services.recording_service import RecordingService


class UpdateMeetingRequest(BaseModel):
    title: Optional[str] = None
    date: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[str] = None


class OpenMeetingRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class InvitationRequest(BaseModel):
    invitee_id: str = Field(..., min_length=1)


def create_meetings_router(
    meeting_store: MeetingStore, recording_service: RecordingService
) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("meetmate.api.meetings")

    def _require_meeting(meeting_id: str) -> dict:
        meeting = meeting_store.get_meeting(meeting_id)
        if not meeting:
            raise HTTPException(status_code=404, detail="Meeting not found")
        return meeting

    @router.get("/api/meetings")
    def list_meetings(
        user_id: Optional[str] = Query(None, description="Only meetings owned by this user"),
        q: str = Query("", description="Case-insensitive match on title or summary"),
    ) -> list[dict]:
        return meeting_store.list_meetings(user_id=user_id, query=q)

    @router.get("/api/meetings/events")
    def meeting_events() -> StreamingResponse:
        logger.info("Meetings SSE connected")

        def event_stream():
            cursor = 0
            while True:
                # Blocks until events arrive; the 5s timeout doubles as a heartbeat.
                events, cursor = meeting_store.wait_for_events(cursor, timeout=5.0)
                for event in events:
                    yield f"data: {json.dumps(event)}\n\n"
                if not events:
                    yield "data: {\"type\":\"heartbeat\"}\n\n"

        return StreamingResponse(event_stream(), media_type="text/event-stream")

    @router.get("/api/meetings/{meeting_id}")
    def get_meeting(meeting_id: str) -> dict:
        return _require_meeting(meeting_id)

    @router.post("/api/meetings/{meeting_id}/open")
    def open_meeting(meeting_id: str, payload: OpenMeetingRequest) -> dict:
        try:
            meeting = meeting_store.fetch_meeting_details(meeting_id, payload.user_id)
        except PersistenceError as exc:
            logger.error("open_meeting failed: meeting=%s error=%s", meeting_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if meeting is None:
            raise HTTPException(status_code=404, detail="Meeting not found or user not invited")
        return meeting

    @router.patch("/api/meetings/{meeting_id}")
    def update_meeting(meeting_id: str, payload: UpdateMeetingRequest) -> dict:
        fields = payload.model_dump(exclude_none=True)
        if not fields:
            raise HTTPException(status_code=400, detail="No fields to update")
        logger.debug("update_meeting: meeting=%s fields=%s", meeting_id, sorted(fields))
        try:
            return meeting_store.upsert_meeting_fields(meeting_id, fields)
        except PersistenceError as exc:
            logger.error("update_meeting failed: meeting=%s error=%s", meeting_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @router.delete("/api/meetings/{meeting_id}/transcript")
    async def clear_transcript(meeting_id: str) -> dict:
        try:
            meeting = await recording_service.clear_transcript(meeting_id)
        except PersistenceError as exc:
            logger.error("clear_transcript failed: meeting=%s error=%s", meeting_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if meeting is None:
            raise HTTPException(status_code=404, detail="Meeting not found")
        logger.info("Transcript cleared: meeting=%s", meeting_id)
        return meeting

    @router.delete("/api/meetings/{meeting_id}")
    async def delete_meeting(meeting_id: str) -> dict:
        if recording_service.session.meeting_id == meeting_id:
            await recording_service.stop()
        deleted = await asyncio.to_thread(meeting_store.delete_meeting, meeting_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Meeting not found")
        return {"status": "ok", "deleted": meeting_id}

    @router.post("/api/meetings/{meeting_id}/invitations")
    def add_invitation(meeting_id: str, payload: InvitationRequest) -> dict:
        try:
            return meeting_store.add_invitation(meeting_id, payload.invitee_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except PersistenceError as exc:
            logger.error("add_invitation failed: meeting=%s error=%s", meeting_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    return router
