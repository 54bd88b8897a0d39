from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable


class AcquisitionError(RuntimeError):
    """Permission denied or capture capability missing; fatal to the session."""


class EncodingError(RuntimeError):
    """No supported recording format; fatal at session start."""


class SessionBusyError(RuntimeError):
    pass


@dataclass(frozen=True)
class MicrophoneConstraints:
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True


class MediaTrack(ABC):
    """One captured track. ``stop()`` releases the underlying device once."""

    def __init__(self, kind: str, label: str) -> None:
        self.kind = kind
        self.label = label
        self._ended = False
        self._logger = logging.getLogger("meetmate.capture.track")

    @property
    def ended(self) -> bool:
        return self._ended

    def stop(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._logger.debug("Track stopped: kind=%s label=%s", self.kind, self.label)
        self._release()

    @abstractmethod
    def _release(self) -> None:
        raise NotImplementedError


class MediaStream:
    """A set of tracks that are acquired and released together."""

    def __init__(self, tracks: Iterable[MediaTrack]) -> None:
        self._tracks = list(tracks)

    def get_tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> list[MediaTrack]:
        return [track for track in self._tracks if track.kind == "audio"]

    def stop_tracks(self) -> None:
        for track in self._tracks:
            track.stop()


class MediaRecorder(ABC):
    """Records one window of a stream into an encoded container."""

    def __init__(self, mime_type: str, bits_per_second: int) -> None:
        self.mime_type = mime_type
        self.bits_per_second = bits_per_second
        self.state = "inactive"

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> list[bytes]:
        """Stop recording and return the data fragments of the window."""
        raise NotImplementedError


class CaptureBackend(ABC):
    name: str = "base"

    @abstractmethod
    def check_support(self) -> None:
        """Raise AcquisitionError when the host cannot capture or record audio."""
        raise NotImplementedError

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def acquire_display(self) -> MediaStream:
        """Acquire the screen/tab (system output) audio source."""
        raise NotImplementedError

    @abstractmethod
    def acquire_microphone(self, constraints: MicrophoneConstraints) -> MediaStream:
        raise NotImplementedError

    @abstractmethod
    def mix(self, sources: list[MediaStream]) -> MediaStream:
        """Combine the audio tracks of all sources into one output stream."""
        raise NotImplementedError

    @abstractmethod
    def create_recorder(
        self, stream: MediaStream, mime_type: str, bits_per_second: int
    ) -> MediaRecorder:
        raise NotImplementedError

    def list_devices(self) -> list[dict]:
        """Input devices the backend can capture from; empty when not applicable."""
        return []
