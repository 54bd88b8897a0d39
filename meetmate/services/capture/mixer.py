"""PCM tracks, the audio mixer and the soundfile-backed chunk recorder.

Host backends feed int16 PCM blocks into ``PcmTrack`` objects. The mixer
reads every source track, converts to mono float32 at one sample rate, sums
them with clipping, and the recorder encodes one window into an in-memory
container (OGG/FLAC/WAV) with soundfile.
"""

from __future__ import annotations

import io
import logging
import threading
import time
from typing import Callable, Optional

import numpy as np
import soundfile as sf

from meetmate.services.capture.base import MediaRecorder, MediaStream, MediaTrack

# MIME type -> (soundfile format, subtype)
SOUNDFILE_FORMATS: dict[str, tuple[str, str]] = {
    "audio/ogg;codecs=opus": ("OGG", "OPUS"),
    "audio/ogg;codecs=vorbis": ("OGG", "VORBIS"),
    "audio/flac": ("FLAC", "PCM_16"),
    "audio/wav": ("WAV", "PCM_16"),
}

# Opus only encodes at these rates.
_OPUS_SAMPLERATES = (8000, 12000, 16000, 24000, 48000)


def soundfile_supports(mime_type: str, samplerate: int = 48000) -> bool:
    entry = SOUNDFILE_FORMATS.get(mime_type)
    if entry is None:
        return False
    fmt, subtype = entry
    if subtype == "OPUS" and samplerate not in _OPUS_SAMPLERATES:
        return False
    try:
        return bool(sf.check_format(fmt, subtype))
    except (ValueError, TypeError):
        # Older libsndfile builds do not know the subtype name at all.
        return False


def _resample(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    if src_rate == dst_rate or samples.size == 0:
        return samples
    duration = samples.size / float(src_rate)
    target_len = max(1, int(round(duration * dst_rate)))
    src_x = np.linspace(0.0, duration, num=samples.size, endpoint=False)
    dst_x = np.linspace(0.0, duration, num=target_len, endpoint=False)
    return np.interp(dst_x, src_x, samples).astype(np.float32)


class PcmTrack(MediaTrack):
    """Audio track fed with interleaved int16 PCM blocks.

    Blocks are down-mixed to mono float32 and resampled to ``samplerate`` as
    they arrive so that every track handed to the mixer shares one format.
    """

    def __init__(
        self,
        label: str,
        samplerate: int,
        channels: int,
        source_samplerate: Optional[int] = None,
        on_release: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__(kind="audio", label=label)
        self.samplerate = samplerate
        self.channels = channels
        self._source_samplerate = source_samplerate or samplerate
        self._on_release = on_release
        self._lock = threading.Lock()
        self._blocks: list[np.ndarray] = []

    def set_release_hook(self, on_release: Callable[[], None]) -> None:
        self._on_release = on_release

    def push(self, payload: bytes) -> None:
        if self.ended or not payload:
            return
        frames = np.frombuffer(payload, dtype=np.int16)
        if self.channels > 1:
            usable = frames.size - (frames.size % self.channels)
            frames = frames[:usable].reshape(-1, self.channels)
            mono = frames.astype(np.float32).mean(axis=1)
        else:
            mono = frames.astype(np.float32)
        mono = _resample(mono / 32768.0, self._source_samplerate, self.samplerate)
        with self._lock:
            self._blocks.append(mono)

    def read_all(self) -> np.ndarray:
        with self._lock:
            blocks, self._blocks = self._blocks, []
        if not blocks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(blocks)

    def _release(self) -> None:
        try:
            if self._on_release is not None:
                self._on_release()
        finally:
            with self._lock:
                self._blocks = []


class MixedTrack(MediaTrack):
    """Output of the mixer: the clipped sum of all source tracks."""

    def __init__(self, sources: list[PcmTrack], samplerate: int) -> None:
        super().__init__(kind="audio", label="mixed")
        self.samplerate = samplerate
        self._sources = sources

    def read(self) -> np.ndarray:
        if self.ended:
            return np.zeros(0, dtype=np.float32)
        parts = [source.read_all() for source in self._sources]
        length = max((part.size for part in parts), default=0)
        if length == 0:
            return np.zeros(0, dtype=np.float32)
        mixed = np.zeros(length, dtype=np.float32)
        for part in parts:
            mixed[: part.size] += part
        return np.clip(mixed, -1.0, 1.0)

    def _release(self) -> None:
        # Source tracks are owned and released by their own streams.
        self._sources = []


def mix_streams(sources: list[MediaStream], samplerate: int) -> MediaStream:
    tracks: list[PcmTrack] = []
    for stream in sources:
        for track in stream.get_audio_tracks():
            if not isinstance(track, PcmTrack):
                raise TypeError(f"Cannot mix track type {type(track).__name__}")
            tracks.append(track)
    return MediaStream([MixedTrack(tracks, samplerate)])


class SoundFileRecorder(MediaRecorder):
    """Encodes the mixed audio of one window with soundfile."""

    def __init__(self, stream: MediaStream, mime_type: str, bits_per_second: int) -> None:
        super().__init__(mime_type, bits_per_second)
        if mime_type not in SOUNDFILE_FORMATS:
            raise ValueError(f"Unsupported recorder MIME type: {mime_type}")
        tracks = [t for t in stream.get_audio_tracks() if isinstance(t, MixedTrack)]
        if not tracks:
            raise ValueError("Recorder requires a mixed stream")
        self._track = tracks[0]
        self._started_at: Optional[float] = None
        self.duration = 0.0
        self._logger = logging.getLogger("meetmate.capture.recorder")

    def start(self) -> None:
        if self.state == "recording":
            return
        # Audio from before this window (the dispatch gap) is not part of it.
        self._track.read()
        self._started_at = time.monotonic()
        self.state = "recording"

    def stop(self) -> list[bytes]:
        if self.state != "recording":
            return []
        samples = self._track.read()
        self.state = "inactive"
        self.duration = time.monotonic() - (self._started_at or time.monotonic())
        if samples.size == 0:
            return []
        fmt, subtype = SOUNDFILE_FORMATS[self.mime_type]
        buffer = io.BytesIO()
        with sf.SoundFile(
            buffer,
            mode="w",
            samplerate=self._track.samplerate,
            channels=1,
            format=fmt,
            subtype=subtype,
        ) as sound_file:
            sound_file.write(samples)
        data = buffer.getvalue()
        self._logger.debug(
            "Encoded window: mime=%s samples=%d bytes=%d", self.mime_type, samples.size, len(data)
        )
        return [data]
