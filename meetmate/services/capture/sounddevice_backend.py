"""Host capture backend built on sounddevice.

The "display" source is the system output captured through a loopback input
(BlackHole on macOS, "Stereo Mix" on Windows, a PulseAudio/PipeWire
"Monitor of ..." source on Linux). The microphone is the default input
device unless one is configured.
"""

from __future__ import annotations

import logging
from typing import Optional

import sounddevice as sd

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

LOOPBACK_NAME_HINTS = ("blackhole", "stereo mix", "monitor of", "loopback", "soundflower")


class SoundDeviceBackend(CaptureBackend):
    name = "sounddevice"

    def __init__(
        self,
        samplerate: int = 48000,
        display_device: Optional[int] = None,
        microphone_device: Optional[int] = None,
    ) -> None:
        self._samplerate = samplerate
        self._display_device = display_device
        self._microphone_device = microphone_device
        self._logger = logging.getLogger("meetmate.capture.sounddevice")

    def list_devices(self) -> list[dict]:
        devices = sd.query_devices()
        return [
            {
                "index": idx,
                "name": device["name"],
                "max_input_channels": device["max_input_channels"],
                "default_samplerate": device["default_samplerate"],
            }
            for idx, device in enumerate(devices)
            if device["max_input_channels"] > 0
        ]

    def check_support(self) -> None:
        try:
            inputs = self.list_devices()
        except Exception as exc:
            self._logger.exception("Audio device query failed: %s", exc)
            raise AcquisitionError("Audio capture is not available on this host.") from exc
        if not inputs:
            raise AcquisitionError("No audio input devices found.")

    def is_type_supported(self, mime_type: str) -> bool:
        return soundfile_supports(mime_type, self._samplerate)

    def _find_display_device(self) -> int:
        if self._display_device is not None:
            return self._display_device
        for device in self.list_devices():
            name = str(device["name"]).lower()
            if any(hint in name for hint in LOOPBACK_NAME_HINTS):
                self._logger.info("Using loopback device: %s", device["name"])
                return int(device["index"])
        raise AcquisitionError(
            "No system audio (loopback) device found. Install a loopback driver "
            "or set capture.display_device in config.json."
        )

    def _find_microphone_device(self) -> int:
        if self._microphone_device is not None:
            return self._microphone_device
        try:
            default_input = sd.query_devices(kind="input")
        except Exception as exc:
            raise AcquisitionError("No default microphone available.") from exc
        return int(default_input["index"])

    def _open_track(self, device_index: int, role: str) -> PcmTrack:
        try:
            info = sd.query_devices(device_index)
        except Exception as exc:
            raise AcquisitionError(f"Invalid {role} device index: {device_index}") from exc
        channels = min(2, int(info.get("max_input_channels", 0)))
        if channels < 1:
            raise AcquisitionError(f"Selected {role} device has no input channels")

        track = PcmTrack(label=f"{role}:{info['name']}", samplerate=self._samplerate, channels=channels)

        def _callback(indata, frames, time_info, status) -> None:
            if status:
                self._logger.debug("%s callback status: %s", role, status)
            track.push(bytes(indata))

        try:
            stream = sd.RawInputStream(
                device=device_index,
                samplerate=self._samplerate,
                channels=channels,
                dtype="int16",
                blocksize=4096,
                callback=_callback,
            )
            stream.start()
        except Exception as exc:
            self._logger.warning("Failed to open %s device %s: %s", role, device_index, exc)
            raise AcquisitionError(f"Could not open {role} device: {exc}") from exc

        def _close() -> None:
            stream.stop()
            stream.close()

        track.set_release_hook(_close)
        self._logger.info(
            "Opened %s device: index=%s name=%s channels=%s samplerate=%s",
            role,
            device_index,
            info["name"],
            channels,
            self._samplerate,
        )
        return track

    def acquire_display(self) -> MediaStream:
        return MediaStream([self._open_track(self._find_display_device(), "display")])

    def acquire_microphone(self, constraints: MicrophoneConstraints) -> MediaStream:
        # PortAudio exposes raw input; echo cancellation, noise suppression and
        # gain control come from the OS audio stack when it provides them.
        self._logger.debug("Microphone constraints requested: %s", constraints)
        return MediaStream([self._open_track(self._find_microphone_device(), "microphone")])

    def mix(self, sources: list[MediaStream]) -> MediaStream:
        return mix_streams(sources, self._samplerate)

    def create_recorder(
        self, stream: MediaStream, mime_type: str, bits_per_second: int
    ) -> MediaRecorder:
        return SoundFileRecorder(stream, mime_type, bits_per_second)
