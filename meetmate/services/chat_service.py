"""Chat service for AI-powered meeting queries."""

import logging
from datetime import datetime, timezone

from meetmate.services.assistant import AssistantService
from meetmate.services.meeting_store import MeetingStore


class ChatService:
    """Answers questions about one meeting and keeps its chat history.

    The question and answer are appended to the meeting's ``chat_history``
    only after an answer was produced.
    """

    def __init__(self, meeting_store: MeetingStore, assistant: AssistantService) -> None:
        self._meeting_store = meeting_store
        self._assistant = assistant
        self._logger = logging.getLogger("meetmate.chat")

    def get_history(self, meeting_id: str) -> list:
        return self._meeting_store.get_chat_history(meeting_id)

    def chat_meeting(self, meeting_id: str, question: str) -> dict:
        question = (question or "").strip()
        if not question:
            raise ValueError("question is required")
        meeting = self._meeting_store.get_meeting(meeting_id)
        if meeting is None:
            raise KeyError(meeting_id)

        transcript = self._meeting_store.get_transcript(meeting_id)
        self._logger.info(
            "Meeting chat: meeting=%s segments=%d question_len=%d",
            meeting_id,
            len(transcript),
            len(question),
        )
        answer = self._assistant.answer_question(transcript, question)

        now = datetime.now(timezone.utc).isoformat()
        history = list(meeting.get("chat_history") or [])
        history.append({"role": "user", "content": question, "timestamp": now})
        history.append({"role": "assistant", "content": answer, "timestamp": now})
        self._meeting_store.save_chat_history(meeting_id, history)
        return {"answer": answer, "chat_history": history}
