import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query

from meetmate.services.calendar_client import CalendarClient, CalendarError


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def create_calendar_router(calendar_client: CalendarClient, default_max_results: int = 10) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("meetmate.api.calendar")

    @router.get("/api/calendar/events")
    def list_events(
        authorization: Optional[str] = Header(None),
        max_results: Optional[int] = Query(None, ge=1, le=250),
    ) -> dict:
        token = _bearer_token(authorization)
        if not token:
            raise HTTPException(status_code=401, detail="Missing Google access token")
        try:
            events = calendar_client.fetch_events(token, max_results or default_max_results)
        except CalendarError as exc:
            logger.warning("Calendar fetch failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"events": [event.to_dict() for event in events]}

    return router
