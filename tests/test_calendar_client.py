from unittest import mock

import pytest
import requests

from meetmate.services.calendar_client import (
    CalendarClient,
    CalendarError,
    CalendarEvent,
    format_event_time,
)


def _response(status=200, payload=None, reason="OK"):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status
    response.ok = 200 <= status < 300
    response.reason = reason
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def test_fetch_events_builds_request_and_maps_items():
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = _response(
        payload={
            "items": [
                {
                    "id": "evt-1",
                    "summary": "Planning",
                    "start": {"dateTime": "2024-05-01T10:00:00Z"},
                    "end": {"dateTime": "2024-05-01T11:00:00Z"},
                    "creator": {"email": "lead@example.com"},
                    "hangoutLink": "https://meet.google.com/abc-defg-hij",
                },
                {
                    "id": "evt-2",
                    "start": {"date": "2024-05-02"},
                    "conferenceData": {
                        "entryPoints": [
                            {"entryPointType": "phone", "uri": "tel:+1"},
                            {"entryPointType": "video", "uri": "https://zoom.us/j/1"},
                        ]
                    },
                },
            ]
        }
    )
    client = CalendarClient(session=session)

    events = client.fetch_events("token-123")

    _, kwargs = session.get.call_args
    assert session.get.call_args[0][0] == "https://www.googleapis.com/calendar/v3/calendars/primary/events"
    assert kwargs["headers"] == {"Authorization": "Bearer token-123"}
    assert kwargs["params"]["singleEvents"] == "true"
    assert kwargs["params"]["orderBy"] == "startTime"
    assert kwargs["params"]["maxResults"] == 10
    assert kwargs["params"]["timeMin"].endswith("Z")
    assert [e.id for e in events] == ["evt-1", "evt-2"]
    assert events[0].creator_email == "lead@example.com"
    assert events[0].conference_link == "https://meet.google.com/abc-defg-hij"
    assert events[1].conference_link == "https://zoom.us/j/1"
    assert events[1].summary == ""


def test_api_error_message_is_surfaced():
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = _response(401, {"error": {"message": "Invalid Credentials"}}, "Unauthorized")

    with pytest.raises(CalendarError, match="Invalid Credentials"):
        CalendarClient(session=session).fetch_events("expired")


def test_error_without_body_uses_status_line():
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = _response(503, ValueError("no json"), "Service Unavailable")

    with pytest.raises(CalendarError, match="Failed to fetch calendar events: 503 Service Unavailable"):
        CalendarClient(session=session).fetch_events("tok")


def test_transport_errors_are_wrapped():
    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(CalendarError, match="connection refused"):
        CalendarClient(session=session).fetch_events("tok")


def test_missing_token():
    with pytest.raises(CalendarError):
        CalendarClient(session=mock.Mock(spec=requests.Session)).fetch_events("")


def test_format_event_time():
    assert format_event_time(CalendarEvent(id="x")) == ""
    assert format_event_time(CalendarEvent(id="x", start={"date": "2024-05-02"})) == "Thu May 02, 2024"
    timed = format_event_time(CalendarEvent(id="x", start={"dateTime": "2024-05-01T10:00:00Z"}))
    assert "2024" in timed and ("AM" in timed or "PM" in timed)
