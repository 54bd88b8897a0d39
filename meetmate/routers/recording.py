import logging
import time

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from meetmate.services.capture.base import SessionBusyError
from meetmate.services.meeting_store import PersistenceError
from meetmate.services.recording_service import RecordingService


class StartRecordingRequest(BaseModel):
    meeting_id: str = Field(..., min_length=1, description="Meeting (calendar event) id to record into")


def create_recording_router(recording_service: RecordingService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("meetmate.api.recording")

    @router.get("/api/audio/devices")
    def list_devices() -> list[dict]:
        try:
            return recording_service.session.backend.list_devices()
        except Exception as exc:
            logger.warning("Device listing failed: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @router.get("/api/recording/status")
    def recording_status() -> dict:
        return recording_service.status()

    @router.post("/api/recording/start")
    async def start_recording(payload: StartRecordingRequest) -> dict:
        start_time = time.perf_counter()
        logger.debug("start_recording received: %s", payload.model_dump())
        try:
            result = await recording_service.start(payload.meeting_id)
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info("start_recording completed in %.2f ms", duration_ms)
            return result
        except SessionBusyError as exc:
            logger.warning("start_recording rejected: %s", exc)
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except PersistenceError as exc:
            logger.error("start_recording could not update the meeting: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except (RuntimeError, ValueError) as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.warning("start_recording failed in %.2f ms: %s", duration_ms, exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception("start_recording error in %.2f ms: %s", duration_ms, exc)
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc

    @router.post("/api/recording/stop")
    async def stop_recording() -> dict:
        start_time = time.perf_counter()
        logger.debug("stop_recording received")
        try:
            result = await recording_service.stop()
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info("stop_recording completed in %.2f ms", duration_ms)
            return result
        except PersistenceError as exc:
            logger.error("stop_recording could not update the meeting: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except RuntimeError as exc:
            logger.warning("stop_recording failed: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            logger.exception("stop_recording error: %s", exc)
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc

    return router
