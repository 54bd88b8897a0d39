import json
import threading

import pytest

from meetmate.services.meeting_store import MeetingStore, PersistenceError
from meetmate.services.transcription.base import TranscriptSegment


@pytest.fixture()
def store(tmp_path):
    return MeetingStore(str(tmp_path / "meetings"), str(tmp_path / "meeting_invitations.json"))


def test_upsert_creates_then_merges(store, tmp_path):
    created = store.upsert_meeting_fields("evt-1", {"title": "Standup", "user_id": "u1"})
    assert created["status"] == "scheduled"
    assert created["transcript"] == []
    assert created["insights"] == {"sentiment": "neutral", "key_topics": [], "decisions": []}

    merged = store.upsert_meeting_fields("evt-1", {"notes": "bring coffee"})
    assert merged["title"] == "Standup"
    assert merged["notes"] == "bring coffee"
    assert merged["created_at"] == created["created_at"]

    on_disk = json.loads((tmp_path / "meetings" / "evt-1.json").read_text())
    assert on_disk["notes"] == "bring coffee"
    assert not (tmp_path / "meetings" / "evt-1.json.tmp").exists()


def test_transcript_round_trip_preserves_order(store):
    segments = [
        TranscriptSegment(text="second by clock", timestamp="2024-05-01T10:00:05+00:00"),
        TranscriptSegment(text="first by clock", timestamp="2024-05-01T10:00:00+00:00"),
    ]
    store.save_transcript("evt-1", segments)

    assert store.get_transcript("evt-1") == segments
    assert store.get_transcript("missing") == []


def test_list_meetings_filters_by_user_and_query_and_sorts_by_date(store):
    store.upsert_meeting_fields("a", {"user_id": "u1", "title": "Budget review", "date": "2024-05-01"})
    store.upsert_meeting_fields("b", {"user_id": "u1", "title": "Retro", "summary": "Budget overrun", "date": "2024-06-01"})
    store.upsert_meeting_fields("c", {"user_id": "u2", "title": "Budget sync", "date": "2024-07-01"})

    assert [m["id"] for m in store.list_meetings(user_id="u1")] == ["b", "a"]
    assert [m["id"] for m in store.list_meetings(user_id="u1", query="BUDGET")] == ["b", "a"]
    assert [m["id"] for m in store.list_meetings(query="retro")] == ["b"]
    assert [m["id"] for m in store.list_meetings()] == ["c", "b", "a"]


def test_fetch_details_creates_invited_record_only_for_invitees(store):
    assert store.fetch_meeting_details("evt-9", "u2") is None

    store.add_invitation("evt-9", "u2")
    store.add_invitation("evt-9", "u2")
    meeting = store.fetch_meeting_details("evt-9", "u2")

    assert meeting["status"] == "invited"
    assert meeting["user_id"] == "u2"
    assert meeting["transcript"] == [] and meeting["action_items"] == []
    assert store.fetch_meeting_details("evt-9", "someone-else")["id"] == "evt-9"


def test_delete_meeting(store):
    store.upsert_meeting_fields("evt-1", {"title": "x"})
    assert store.delete_meeting("evt-1") is True
    assert store.get_meeting("evt-1") is None
    assert store.delete_meeting("evt-1") is False


def test_chat_history_requires_existing_meeting(store):
    assert store.save_chat_history("nope", [{"role": "user", "content": "hi"}]) is False
    store.upsert_meeting_fields("evt-1", {})
    assert store.save_chat_history("evt-1", [{"role": "user", "content": "hi"}]) is True
    assert store.get_chat_history("evt-1") == [{"role": "user", "content": "hi"}]


def test_unsafe_ids_stay_inside_meetings_dir(store, tmp_path):
    store.upsert_meeting_fields("../../etc/passwd", {"title": "x"})
    files = [p.name for p in (tmp_path / "meetings").iterdir()]
    assert len(files) == 1 and "/" not in files[0]
    assert store.get_meeting("../../etc/passwd")["title"] == "x"


def test_write_failure_raises_persistence_error(tmp_path, monkeypatch):
    store = MeetingStore(str(tmp_path / "meetings"))

    def broken_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr("meetmate.services.meeting_store.os.replace", broken_replace)
    with pytest.raises(PersistenceError):
        store.upsert_meeting_fields("evt-1", {"title": "x"})


def test_events_wake_waiters(store):
    _, cursor = store.get_events_since(0)
    received = []

    def waiter():
        events, _ = store.wait_for_events(cursor, timeout=2.0)
        received.extend(events)

    thread = threading.Thread(target=waiter)
    thread.start()
    store.publish_event("recording_started", "evt-1")
    thread.join(timeout=3.0)

    assert [e["type"] for e in received] == ["recording_started"]
    assert received[0]["meeting_id"] == "evt-1"


def test_event_cursor_survives_buffer_trim(store):
    for i in range(200):
        store.publish_event("meeting_updated", str(i))
    events, cursor = store.get_events_since(0)
    assert len(events) == 200 and cursor == 200

    store.publish_event("meeting_updated", "200")
    events, cursor = store.get_events_since(cursor)

    assert [e["meeting_id"] for e in events] == ["200"]
    assert events[0]["seq"] == 200
    assert cursor == 201


def test_reader_behind_the_trim_resumes_at_oldest_buffered_event(store):
    _, cursor = store.get_events_since(0)
    for i in range(201):
        store.publish_event("transcript_segments", str(i))

    events, next_cursor = store.get_events_since(cursor)

    assert [e["seq"] for e in events] == list(range(101, 201))
    assert next_cursor == 201
    assert store.wait_for_events(next_cursor, timeout=0.01) == ([], 201)
