import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from meetmate.context import AppContext
from meetmate.routers.assistant import create_assistant_router
from meetmate.routers.calendar import create_calendar_router
from meetmate.routers.meetings import create_meetings_router
from meetmate.routers.recording import create_recording_router
from meetmate.routers.testing import create_testing_router
from meetmate.services.assistant import AssistantService
from meetmate.services.calendar_client import CalendarClient
from meetmate.services.capture import CaptureBackend, create_backend
from meetmate.services.capture_session import CaptureSession
from meetmate.services.chat_service import ChatService
from meetmate.services.config import (
    load_config,
    parse_capture_config,
    parse_provider_config,
)
from meetmate.services.llm import LLMProvider, create_provider
from meetmate.services.logging_setup import configure_logging
from meetmate.services.meeting_store import MeetingStore
from meetmate.services.recording_service import RecordingService
from meetmate.services.transcription import ModelTranscriptionClient, TranscriptionClient

VERSION = "0.1.0"


def create_app(
    data_dir: Optional[str] = None,
    *,
    backend: Optional[CaptureBackend] = None,
    provider: Optional[LLMProvider] = None,
    transcriber: Optional[TranscriptionClient] = None,
    calendar_client: Optional[CalendarClient] = None,
    setup_logging: bool = True,
) -> FastAPI:
    """Build the application.

    Keyword overrides replace the configured collaborators; tests use them to
    inject fakes without touching devices or the network.
    """
    cwd = os.getcwd()
    data_dir = data_dir or os.path.join(cwd, "data")
    config_path = os.path.join(data_dir, "config.json")
    ctx = AppContext(cwd=cwd, data_dir=data_dir, config_path=config_path)
    ctx.ensure_dirs()

    config = load_config(config_path)
    if setup_logging:
        configure_logging(
            ctx.logs_dir, config.get("logging", {}).get("console_level", "INFO")
        )
    logger = logging.getLogger("meetmate.boot")
    logger.info("Boot: starting create_app cwd=%s data_dir=%s", cwd, ctx.data_dir)
    logger.info("Boot: config keys=%s", sorted(config.keys()))
    capture_config = parse_capture_config(config.get("capture", {}))
    logger.info(
        "Boot: capture backend=%s chunk_seconds=%.1f min_chunk_bytes=%d",
        capture_config.backend,
        capture_config.chunk_seconds,
        capture_config.min_chunk_bytes,
    )

    if provider is None:
        provider = create_provider(parse_provider_config(config))
    logger.info("Boot: AI provider=%s", type(provider).__name__ if provider else "disabled")
    if transcriber is None:
        transcriber = ModelTranscriptionClient(provider)
    if backend is None:
        backend = create_backend(capture_config)
    if calendar_client is None:
        calendar_client = CalendarClient()

    meeting_store = MeetingStore(ctx.meetings_dir, ctx.invitations_path)
    recording_service: Optional[RecordingService] = None

    def _on_chunk_error(exc: Exception) -> None:
        if recording_service is not None:
            recording_service.report_error(exc)

    session = CaptureSession(backend, transcriber, capture_config, on_error=_on_chunk_error)
    recording_service = RecordingService(session, meeting_store)
    assistant = AssistantService(provider)
    chat_service = ChatService(meeting_store, assistant)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if session.state.value != "idle":
            logger.info("Shutdown: stopping active recording")
            await recording_service.stop()

    app = FastAPI(title="MeetMate", version=VERSION, lifespan=lifespan)
    app.state.version = VERSION
    app.state.ctx = ctx
    app.state.meeting_store = meeting_store
    app.state.recording_service = recording_service

    app.include_router(create_recording_router(recording_service))
    app.include_router(create_meetings_router(meeting_store, recording_service))
    app.include_router(create_assistant_router(meeting_store, assistant, chat_service))
    app.include_router(
        create_calendar_router(
            calendar_client, int(config.get("calendar", {}).get("max_results", 10))
        )
    )
    app.include_router(create_testing_router(ctx))
    logger.info("Boot: routers mounted")

    @app.get("/api/health")
    def health() -> dict:
        return {
            "status": "ok",
            "version": app.state.version,
            "ai_enabled": assistant.available,
            "capture_backend": backend.name,
        }

    logger.info("Boot: create_app complete")
    return app
