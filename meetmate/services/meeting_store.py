from __future__ import annotations

import json
import logging
import os
import re
import threading
from datetime import datetime, timezone
from typing import Optional

from meetmate.services.transcription.base import TranscriptSegment, parse_segments

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_.@-]")
_EVENT_BUFFER_MAX = 200
_EVENT_BUFFER_KEEP = 100


class PersistenceError(RuntimeError):
    pass


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _default_insights() -> dict:
    return {"sentiment": "neutral", "key_topics": [], "decisions": []}


class MeetingStore:
    """JSON document store for meeting records, one file per meeting id."""

    def __init__(self, meetings_dir: str, invitations_path: Optional[str] = None) -> None:
        self._meetings_dir = meetings_dir
        self._invitations_path = invitations_path or os.path.join(
            os.path.dirname(meetings_dir.rstrip(os.sep)) or ".", "meeting_invitations.json"
        )
        self._lock = threading.RLock()
        self._events_lock = threading.RLock()
        self._events: list[dict] = []
        self._events_base = 0
        self._events_condition = threading.Condition(self._events_lock)  # For push-based SSE
        self._logger = logging.getLogger("meetmate.meetings")
        os.makedirs(self._meetings_dir, exist_ok=True)

    @staticmethod
    def _safe_stem(meeting_id: str) -> str:
        return _UNSAFE_ID_CHARS.sub("_", meeting_id or "").strip(".")

    @classmethod
    def is_valid_id(cls, meeting_id: str) -> bool:
        """True when the id maps to a file name inside the meetings dir."""
        return bool(cls._safe_stem(meeting_id))

    @classmethod
    def _file_name(cls, meeting_id: str) -> str:
        safe = cls._safe_stem(meeting_id)
        if not safe:
            raise ValueError("meeting_id must contain at least one safe character")
        return f"{safe}.json"

    def _meeting_path(self, meeting_id: str) -> str:
        return os.path.join(self._meetings_dir, self._file_name(meeting_id))

    def _list_meeting_paths(self) -> list[str]:
        try:
            names = os.listdir(self._meetings_dir)
        except OSError as exc:
            self._logger.warning("Failed to list meetings dir: %s", exc)
            return []
        return sorted(
            os.path.join(self._meetings_dir, name) for name in names if name.endswith(".json")
        )

    def _read_json(self, path: str) -> Optional[object]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            self._logger.warning("Failed to read store file: %s error=%s", path, exc)
            return None

    def _write_json(self, path: str, payload: object) -> None:
        temp_path = f"{path}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(temp_path, path)
        except OSError as exc:
            self._logger.error("Failed to write store file: %s error=%s", path, exc)
            raise PersistenceError(f"Failed to save meeting data: {exc}") from exc

    def _read_meeting(self, meeting_id: str) -> Optional[dict]:
        if not self.is_valid_id(meeting_id):
            return None
        data = self._read_json(self._meeting_path(meeting_id))
        if not isinstance(data, dict):
            return None
        return self._with_defaults(data, meeting_id)

    @staticmethod
    def _with_defaults(meeting: dict, meeting_id: Optional[str] = None) -> dict:
        meeting.setdefault("id", meeting_id)
        meeting.setdefault("user_id", None)
        meeting.setdefault("title", "")
        meeting.setdefault("date", meeting.get("created_at"))
        meeting.setdefault("status", "scheduled")
        meeting.setdefault("created_at", None)
        meeting.setdefault("updated_at", meeting.get("created_at"))
        meeting.setdefault("transcript", [])
        meeting.setdefault("notes", "")
        meeting.setdefault("summary", "")
        meeting.setdefault("action_items", [])
        meeting.setdefault("insights", _default_insights())
        meeting.setdefault("chat_history", [])
        return meeting

    # ---- Events (SSE) ----
    #
    # Events carry a monotonically increasing ``seq``. Cursors are sequence
    # numbers, so trimming the buffer never shifts what a cursor points at.

    def publish_event(
        self, event_type: str, meeting_id: Optional[str], data: Optional[dict] = None
    ) -> None:
        with self._events_condition:
            payload = {
                "seq": self._events_base + len(self._events),
                "type": event_type,
                "meeting_id": meeting_id,
                "timestamp": _utcnow(),
            }
            if data:
                payload["data"] = data
            self._events.append(payload)
            if len(self._events) > _EVENT_BUFFER_MAX:
                dropped = len(self._events) - _EVENT_BUFFER_KEEP
                self._events = self._events[dropped:]
                self._events_base += dropped
            self._events_condition.notify_all()

    def _events_from(self, cursor: int) -> tuple[list[dict], int]:
        next_seq = self._events_base + len(self._events)
        if cursor > next_seq:
            # Cursor from an earlier process; only new events are meaningful.
            return [], next_seq
        if cursor < self._events_base:
            self._logger.debug(
                "SSE reader fell behind: %d event(s) no longer buffered",
                self._events_base - cursor,
            )
            cursor = self._events_base
        return self._events[cursor - self._events_base :], next_seq

    def get_events_since(self, cursor: int) -> tuple[list[dict], int]:
        with self._events_condition:
            return self._events_from(cursor)

    def wait_for_events(self, cursor: int, timeout: float = 5.0) -> tuple[list[dict], int]:
        """Block until events at or after ``cursor`` exist or ``timeout`` expires.

        Returns the new events and the cursor to pass next time.
        """
        with self._events_condition:
            events, next_cursor = self._events_from(cursor)
            if events:
                return events, next_cursor
            self._events_condition.wait(timeout=timeout)
            return self._events_from(next_cursor)

    # ---- Meetings ----

    def upsert_meeting_fields(self, meeting_id: str, fields: dict) -> dict:
        """Merge ``fields`` onto the meeting document, creating it if absent."""
        if not meeting_id:
            raise ValueError("meeting_id is required")
        with self._lock:
            path = self._meeting_path(meeting_id)
            existing = self._read_json(path)
            created = not isinstance(existing, dict)
            now = _utcnow()
            meeting = {} if created else existing
            if created:
                meeting["id"] = meeting_id
                meeting["created_at"] = now
            meeting.update(fields)
            meeting["id"] = meeting_id
            meeting["updated_at"] = now
            meeting = self._with_defaults(meeting, meeting_id)
            self._write_json(path, meeting)
        self._logger.debug(
            "Meeting upserted: id=%s created=%s fields=%s", meeting_id, created, sorted(fields)
        )
        self.publish_event(
            "meeting_created" if created else "meeting_updated",
            meeting_id,
            {"fields": sorted(fields)},
        )
        return meeting

    def save_transcript(self, meeting_id: str, segments: list[TranscriptSegment]) -> dict:
        return self.upsert_meeting_fields(
            meeting_id, {"transcript": [segment.to_dict() for segment in segments]}
        )

    def get_meeting(self, meeting_id: str) -> Optional[dict]:
        with self._lock:
            return self._read_meeting(meeting_id)

    def get_transcript(self, meeting_id: str) -> list[TranscriptSegment]:
        meeting = self.get_meeting(meeting_id)
        if not meeting:
            return []
        return parse_segments(meeting.get("transcript"))

    def list_meetings(self, user_id: Optional[str] = None, query: str = "") -> list[dict]:
        needle = (query or "").strip().lower()
        meetings: list[dict] = []
        with self._lock:
            for path in self._list_meeting_paths():
                data = self._read_json(path)
                if not isinstance(data, dict):
                    continue
                meeting = self._with_defaults(data)
                if user_id and meeting.get("user_id") != user_id:
                    continue
                if needle:
                    haystack = f"{meeting.get('title') or ''}\n{meeting.get('summary') or ''}"
                    if needle not in haystack.lower():
                        continue
                meetings.append(meeting)
        return sorted(meetings, key=lambda m: m.get("date") or "", reverse=True)

    def delete_meeting(self, meeting_id: str) -> bool:
        if not self.is_valid_id(meeting_id):
            return False
        with self._lock:
            path = self._meeting_path(meeting_id)
            if not os.path.exists(path):
                return False
            try:
                os.unlink(path)
            except OSError as exc:
                self._logger.warning("Failed to delete meeting file: %s error=%s", path, exc)
                return False
        self._logger.info("Meeting deleted: id=%s", meeting_id)
        self.publish_event("meeting_deleted", meeting_id)
        return True

    # ---- Invitations ----

    def _load_invitations(self) -> list[dict]:
        data = self._read_json(self._invitations_path)
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def add_invitation(self, event_id: str, invitee_id: str) -> dict:
        if not event_id or not invitee_id:
            raise ValueError("event_id and invitee_id are required")
        if not self.is_valid_id(event_id):
            raise ValueError("event_id must contain at least one safe character")
        with self._lock:
            invitations = self._load_invitations()
            for invitation in invitations:
                if invitation.get("event_id") == event_id and invitation.get("invitee_id") == invitee_id:
                    return invitation
            invitation = {"event_id": event_id, "invitee_id": invitee_id, "created_at": _utcnow()}
            invitations.append(invitation)
            self._write_json(self._invitations_path, invitations)
        self._logger.info("Invitation added: event=%s invitee=%s", event_id, invitee_id)
        return invitation

    def is_invited(self, event_id: str, user_id: str) -> bool:
        with self._lock:
            return any(
                invitation.get("event_id") == event_id and invitation.get("invitee_id") == user_id
                for invitation in self._load_invitations()
            )

    def fetch_meeting_details(self, event_id: str, user_id: str) -> Optional[dict]:
        """Existing meeting, else a fresh ``invited`` record when the user is invited."""
        with self._lock:
            meeting = self._read_meeting(event_id)
            if meeting is not None:
                return meeting
            if not self.is_invited(event_id, user_id):
                return None
            return self.upsert_meeting_fields(
                event_id,
                {
                    "user_id": user_id,
                    "status": "invited",
                    "transcript": [],
                    "notes": "",
                    "summary": "",
                    "action_items": [],
                },
            )

    # ---- Chat history persistence ----

    def get_chat_history(self, meeting_id: str) -> list:
        meeting = self.get_meeting(meeting_id)
        if not meeting:
            return []
        return meeting.get("chat_history", [])

    def save_chat_history(self, meeting_id: str, messages: list) -> bool:
        """Write chat_history into an existing meeting. Returns True on success."""
        with self._lock:
            if self._read_meeting(meeting_id) is None:
                return False
            self.upsert_meeting_fields(meeting_id, {"chat_history": messages})
            return True
