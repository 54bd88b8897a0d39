"""Google Calendar client for upcoming events on the primary calendar."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

import requests

DEFAULT_BASE_URL = "https://www.googleapis.com"


class CalendarError(RuntimeError):
    pass


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    summary: str = ""
    description: str = ""
    start: Optional[dict] = None
    end: Optional[dict] = None
    creator_email: Optional[str] = None
    conference_link: Optional[str] = None

    @classmethod
    def from_api(cls, item: dict) -> "CalendarEvent":
        return cls(
            id=str(item.get("id", "")),
            summary=item.get("summary") or "",
            description=item.get("description") or "",
            start=item.get("start"),
            end=item.get("end"),
            creator_email=(item.get("creator") or {}).get("email"),
            conference_link=_conference_link(item),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["formatted_time"] = format_event_time(self)
        return data


def _conference_link(item: dict) -> Optional[str]:
    if item.get("hangoutLink"):
        return item["hangoutLink"]
    for entry in (item.get("conferenceData") or {}).get("entryPoints") or []:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return None


def _parse_datetime(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_event_time(event: CalendarEvent) -> str:
    """Local, human-readable start time; all-day events have no time part."""
    start = event.start or {}
    value = start.get("dateTime") or start.get("date")
    if not value:
        return ""
    try:
        parsed = _parse_datetime(value)
    except ValueError:
        return value
    if "dateTime" not in start:
        return parsed.strftime("%a %b %d, %Y")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.strftime("%a %b %d, %Y %I:%M %p")


class CalendarClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._logger = logging.getLogger("meetmate.calendar")

    def fetch_events(self, access_token: str, max_results: int = 10) -> list[CalendarEvent]:
        if not access_token:
            raise CalendarError("Missing Google access token")
        url = f"{self._base_url}/calendar/v3/calendars/primary/events"
        params = {
            "timeMin": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": max_results,
        }
        try:
            response = self._session.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            self._logger.warning("Calendar request failed: %s", exc)
            raise CalendarError(str(exc) or "Failed to fetch calendar events") from exc

        if not response.ok:
            message = _api_error_message(response)
            self._logger.warning("Calendar API error %s: %s", response.status_code, message)
            raise CalendarError(message)

        try:
            data = response.json()
        except ValueError as exc:
            raise CalendarError("Failed to fetch calendar events") from exc
        items = data.get("items") or []
        self._logger.info("Fetched %d calendar event(s)", len(items))
        return [CalendarEvent.from_api(item) for item in items if isinstance(item, dict)]


def _api_error_message(response: requests.Response) -> str:
    fallback = f"Failed to fetch calendar events: {response.status_code} {response.reason}"
    try:
        payload = response.json()
    except ValueError:
        return fallback
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return fallback
