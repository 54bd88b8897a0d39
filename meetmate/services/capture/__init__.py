from meetmate.services.capture.base import (
    AcquisitionError,
    CaptureBackend,
    EncodingError,
    MediaRecorder,
    MediaStream,
    MediaTrack,
    MicrophoneConstraints,
    SessionBusyError,
)
from meetmate.services.config import CaptureConfig


def create_backend(config: CaptureConfig) -> CaptureBackend:
    """Build the capture backend named by ``capture.backend``."""
    if config.backend == "file":
        from meetmate.services.capture.file_backend import FileCaptureBackend

        return FileCaptureBackend(config.simulate_file or "", samplerate=config.samplerate)
    if config.backend == "sounddevice":
        # Imported lazily: PortAudio is only needed when capturing from devices.
        from meetmate.services.capture.sounddevice_backend import SoundDeviceBackend

        return SoundDeviceBackend(
            samplerate=config.samplerate,
            display_device=config.display_device,
            microphone_device=config.microphone_device,
        )
    raise ValueError(f"Unsupported capture backend: {config.backend}")


__all__ = [
    "AcquisitionError",
    "CaptureBackend",
    "EncodingError",
    "MediaRecorder",
    "MediaStream",
    "MediaTrack",
    "MicrophoneConstraints",
    "SessionBusyError",
    "create_backend",
]
