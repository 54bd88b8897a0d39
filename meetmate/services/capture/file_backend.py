"""Capture backend that replays an audio file as the display source.

Used to simulate a meeting without devices and by the in-app test harness.
The microphone source is silent.

Playback speed works like the upload simulator:
- 0 = no delay (as fast as possible)
- 100 = real-time
- 300 = 3x faster
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

import soundfile as sf

from meetmate.services.capture.base import (
    AcquisitionError,
    CaptureBackend,
    MediaRecorder,
    MediaStream,
    MicrophoneConstraints,
)
from meetmate.services.capture.mixer import (
    PcmTrack,
    SoundFileRecorder,
    mix_streams,
    soundfile_supports,
)


class FileCaptureBackend(CaptureBackend):
    name = "file"

    def __init__(
        self,
        file_path: str,
        samplerate: int = 48000,
        speed_percent: int = 100,
        block_seconds: float = 0.1,
    ) -> None:
        self._file_path = file_path
        self._samplerate = samplerate
        self._speed_percent = speed_percent
        self._block_seconds = block_seconds
        self._logger = logging.getLogger("meetmate.capture.file")

    def check_support(self) -> None:
        if not self._file_path or not os.path.exists(self._file_path):
            raise AcquisitionError(f"Simulation audio file not found: {self._file_path}")

    def is_type_supported(self, mime_type: str) -> bool:
        return soundfile_supports(mime_type, self._samplerate)

    def acquire_display(self) -> MediaStream:
        try:
            info = sf.info(self._file_path)
        except Exception as exc:
            raise AcquisitionError(f"Unreadable simulation audio file: {exc}") from exc

        track = PcmTrack(
            label=f"display:{os.path.basename(self._file_path)}",
            samplerate=self._samplerate,
            channels=info.channels,
            source_samplerate=info.samplerate,
        )
        cancel = threading.Event()
        reader = threading.Thread(
            target=self._reader_loop,
            args=(track, info.samplerate, cancel),
            daemon=True,
            name="file-capture-reader",
        )

        def _release() -> None:
            cancel.set()
            reader.join(timeout=2.0)

        track.set_release_hook(_release)
        reader.start()
        self._logger.info(
            "Replaying %s: samplerate=%s channels=%s speed=%s%%",
            self._file_path,
            info.samplerate,
            info.channels,
            self._speed_percent,
        )
        return MediaStream([track])

    def _reader_loop(self, track: PcmTrack, file_samplerate: int, cancel: threading.Event) -> None:
        block_frames = max(1, int(file_samplerate * self._block_seconds))
        delay: Optional[float] = None
        if self._speed_percent > 0:
            delay = self._block_seconds / (self._speed_percent / 100.0)
        try:
            with sf.SoundFile(self._file_path) as sound_file:
                while not cancel.is_set():
                    data = sound_file.read(block_frames, dtype="int16")
                    if len(data) == 0:
                        break
                    track.push(data.tobytes())
                    if delay:
                        cancel.wait(timeout=delay)
        except Exception as exc:
            self._logger.exception("File capture reader failed: %s", exc)
        self._logger.debug("File capture reader finished")

    def acquire_microphone(self, constraints: MicrophoneConstraints) -> MediaStream:
        return MediaStream(
            [PcmTrack(label="microphone:silence", samplerate=self._samplerate, channels=1)]
        )

    def mix(self, sources: list[MediaStream]) -> MediaStream:
        return mix_streams(sources, self._samplerate)

    def create_recorder(
        self, stream: MediaStream, mime_type: str, bits_per_second: int
    ) -> MediaRecorder:
        return SoundFileRecorder(stream, mime_type, bits_per_second)
