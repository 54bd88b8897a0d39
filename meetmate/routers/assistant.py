import asyncio
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from meetmate.services.assistant import AssistantService
from meetmate.services.chat_service import ChatService
from meetmate.services.llm.base import LLMProviderError
from meetmate.services.meeting_store import MeetingStore, PersistenceError


class ChatRequest(BaseModel):
    question: str = Field(..., min_length=1, description="Question about the meeting")


class CleanSegmentRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Transcript segment to clean up")


def create_assistant_router(
    meeting_store: MeetingStore, assistant: AssistantService, chat_service: ChatService
) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("meetmate.api.assistant")

    def _transcript_or_404(meeting_id: str):
        if meeting_store.get_meeting(meeting_id) is None:
            raise HTTPException(status_code=404, detail="Meeting not found")
        return meeting_store.get_transcript(meeting_id)

    def _save(meeting_id: str, fields: dict) -> None:
        try:
            meeting_store.upsert_meeting_fields(meeting_id, fields)
        except PersistenceError as exc:
            logger.error("Failed to store %s for meeting=%s: %s", sorted(fields), meeting_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @router.post("/api/meetings/{meeting_id}/summary")
    async def summarize_meeting(meeting_id: str) -> dict:
        transcript = _transcript_or_404(meeting_id)
        summary = await asyncio.to_thread(assistant.summarize, transcript)
        _save(meeting_id, {"summary": summary})
        logger.info("Summary generated: meeting=%s chars=%d", meeting_id, len(summary))
        return {"meeting_id": meeting_id, "summary": summary}

    @router.post("/api/meetings/{meeting_id}/action-items")
    async def extract_action_items(meeting_id: str) -> dict:
        transcript = _transcript_or_404(meeting_id)
        items = await asyncio.to_thread(assistant.extract_action_items, transcript)
        _save(meeting_id, {"action_items": items})
        return {"meeting_id": meeting_id, "action_items": items}

    @router.post("/api/meetings/{meeting_id}/insights")
    async def generate_insights(meeting_id: str) -> dict:
        transcript = _transcript_or_404(meeting_id)
        insights = await asyncio.to_thread(assistant.generate_insights, transcript)
        _save(meeting_id, {"insights": insights.to_dict()})
        return {"meeting_id": meeting_id, "insights": insights.to_dict()}

    @router.get("/api/meetings/{meeting_id}/chat")
    def get_chat_history(meeting_id: str) -> dict:
        if meeting_store.get_meeting(meeting_id) is None:
            raise HTTPException(status_code=404, detail="Meeting not found")
        return {"meeting_id": meeting_id, "chat_history": chat_service.get_history(meeting_id)}

    @router.post("/api/meetings/{meeting_id}/chat")
    async def chat_meeting(meeting_id: str, payload: ChatRequest) -> dict:
        try:
            return await asyncio.to_thread(chat_service.chat_meeting, meeting_id, payload.question)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Meeting not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except LLMProviderError as exc:
            logger.warning("Meeting chat unavailable: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except PersistenceError as exc:
            logger.error("Chat history save failed: meeting=%s error=%s", meeting_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @router.post("/api/transcript/clean")
    async def clean_segment(payload: CleanSegmentRequest) -> dict:
        cleaned = await asyncio.to_thread(assistant.clean_segment, payload.text)
        return {"text": cleaned}

    return router
