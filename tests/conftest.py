"""Pytest configuration helpers and in-memory capture fakes."""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Iterable, Optional, Union

import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from meetmate.services.capture.base import (  # noqa: E402
    AcquisitionError,
    CaptureBackend,
    MediaRecorder,
    MediaStream,
    MediaTrack,
    MicrophoneConstraints,
)
from meetmate.services.config import CaptureConfig  # noqa: E402
from meetmate.services.transcription.base import TranscriptionClient  # noqa: E402


class FakeTrack(MediaTrack):
    def __init__(self, label: str) -> None:
        super().__init__(kind="audio", label=label)
        self.release_count = 0

    def _release(self) -> None:
        self.release_count += 1


class FakeRecorder(MediaRecorder):
    def __init__(self, payload: bytes, mime_type: str, bits_per_second: int) -> None:
        super().__init__(mime_type, bits_per_second)
        self._payload = payload
        self.duration = 0.0

    def start(self) -> None:
        self.state = "recording"

    def stop(self) -> list[bytes]:
        if self.state != "recording":
            return []
        self.state = "inactive"
        return [self._payload] if self._payload else []


class FakeBackend(CaptureBackend):
    """Backend whose Nth recorder yields ``chunk_sizes[N]`` bytes (0 afterwards)."""

    name = "fake"

    def __init__(
        self,
        chunk_sizes: Iterable[int] = (),
        supported: Iterable[str] = ("audio/webm;codecs=opus",),
        fail_support: bool = False,
        fail_microphone: bool = False,
    ) -> None:
        self._chunk_sizes = list(chunk_sizes)
        self.supported = set(supported)
        self.fail_support = fail_support
        self.fail_microphone = fail_microphone
        self.tracks: dict[str, FakeTrack] = {}
        self.recorders: list[FakeRecorder] = []
        self._lock = threading.Lock()

    def check_support(self) -> None:
        if self.fail_support:
            raise AcquisitionError("Audio capture is not supported on this host")

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.supported

    def acquire_display(self) -> MediaStream:
        track = FakeTrack("display")
        self.tracks["display"] = track
        return MediaStream([track])

    def acquire_microphone(self, constraints: MicrophoneConstraints) -> MediaStream:
        if self.fail_microphone:
            raise AcquisitionError("Microphone permission denied")
        track = FakeTrack("microphone")
        self.tracks["microphone"] = track
        return MediaStream([track])

    def mix(self, sources: list[MediaStream]) -> MediaStream:
        track = FakeTrack("mixed")
        self.tracks["mixed"] = track
        return MediaStream([track])

    def create_recorder(self, stream: MediaStream, mime_type: str, bits_per_second: int) -> MediaRecorder:
        with self._lock:
            index = len(self.recorders)
            size = self._chunk_sizes[index] if index < len(self._chunk_sizes) else 0
            recorder = FakeRecorder(b"\x01" * size, mime_type, bits_per_second)
            self.recorders.append(recorder)
        return recorder


class FakeTranscriber(TranscriptionClient):
    """Returns scripted replies in order; exceptions in the script are raised."""

    def __init__(self, replies: Iterable[Union[str, Exception]] = (), delay: float = 0.0) -> None:
        self._replies = list(replies)
        self.delay = delay
        self.calls: list[tuple[int, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def transcribe(self, audio_b64: str, mime_type: str) -> str:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            index = len(self.calls)
            self.calls.append((len(audio_b64), mime_type))
        try:
            if self.delay:
                time.sleep(self.delay)
            reply = self._replies[index] if index < len(self._replies) else ""
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            with self._lock:
                self.active -= 1


class ListSink:
    """Persistence callback that keeps every flushed snapshot."""

    def __init__(self, fail_times: int = 0) -> None:
        self.flushes: list[list[str]] = []
        self.fail_times = fail_times

    def __call__(self, segments) -> None:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise OSError("disk full")
        self.flushes.append([segment.text for segment in segments])

    @property
    def last(self) -> Optional[list[str]]:
        return self.flushes[-1] if self.flushes else None


@pytest.fixture()
def fast_capture_config() -> CaptureConfig:
    return CaptureConfig(backend="fake", chunk_seconds=0.05, final_flush_timeout=2.0)


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    import asyncio

    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
