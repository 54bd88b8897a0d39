import io

import numpy as np
import pytest
import soundfile as sf

from meetmate.services.capture import create_backend
from meetmate.services.capture.base import MediaStream
from meetmate.services.capture.file_backend import FileCaptureBackend
from meetmate.services.capture.mixer import PcmTrack, SoundFileRecorder, mix_streams, soundfile_supports
from meetmate.services.config import CaptureConfig, parse_capture_config


def _pcm(values) -> bytes:
    return np.asarray(values, dtype=np.int16).reshape(-1).tobytes()


def test_stereo_blocks_are_downmixed_to_mono():
    track = PcmTrack("display", samplerate=16000, channels=2)
    track.push(_pcm([[16384, 0], [-16384, -16384]]))

    samples = track.read_all()

    assert samples.tolist() == pytest.approx([0.25, -0.5])
    assert track.read_all().size == 0


def test_mixer_sums_sources_and_clips():
    display = PcmTrack("display", samplerate=16000, channels=1)
    microphone = PcmTrack("microphone", samplerate=16000, channels=1)
    mixed_stream = mix_streams([MediaStream([display]), MediaStream([microphone])], 16000)
    mixed = mixed_stream.get_audio_tracks()[0]

    display.push(_pcm([24576, 8192, 100]))
    microphone.push(_pcm([24576, -8192]))

    out = mixed.read()
    assert out.size == 3
    assert out[0] == pytest.approx(1.0)
    assert out[1] == pytest.approx(0.0)
    assert out[2] == pytest.approx(100 / 32768.0)


def test_resampling_to_target_rate():
    track = PcmTrack("display", samplerate=16000, channels=1, source_samplerate=48000)
    track.push(_pcm(np.zeros(4800)))
    assert track.read_all().size == 1600


def test_released_track_ignores_audio_and_runs_hook_once():
    calls = []
    track = PcmTrack("display", samplerate=16000, channels=1, on_release=lambda: calls.append(1))
    track.stop()
    track.stop()
    track.push(_pcm([1, 2, 3]))
    assert calls == [1]
    assert track.read_all().size == 0


def test_recorder_encodes_only_its_window():
    source = PcmTrack("display", samplerate=16000, channels=1)
    stream = mix_streams([MediaStream([source])], 16000)
    recorder = SoundFileRecorder(stream, "audio/wav", 128000)

    source.push(_pcm(np.full(500, 1000)))  # before the window: dropped
    recorder.start()
    source.push(_pcm(np.full(1600, 2000)))
    fragments = recorder.stop()

    assert recorder.state == "inactive"
    data, rate = sf.read(io.BytesIO(fragments[0]), dtype="int16")
    assert rate == 16000
    assert data.shape == (1600,)
    assert recorder.stop() == []


def test_recorder_with_no_audio_yields_nothing():
    stream = mix_streams([MediaStream([PcmTrack("display", samplerate=16000, channels=1)])], 16000)
    recorder = SoundFileRecorder(stream, "audio/flac", 128000)
    recorder.start()
    assert recorder.stop() == []


def test_container_support():
    assert soundfile_supports("audio/wav")
    assert soundfile_supports("audio/flac")
    assert not soundfile_supports("audio/webm;codecs=opus")
    assert not soundfile_supports("audio/ogg;codecs=opus", samplerate=44100)


def test_file_backend_requires_existing_file(tmp_path):
    from meetmate.services.capture.base import AcquisitionError

    backend = FileCaptureBackend(str(tmp_path / "missing.wav"))
    with pytest.raises(AcquisitionError):
        backend.check_support()


def test_create_backend_and_capture_config(tmp_path):
    config = parse_capture_config({"backend": "FILE", "simulate_file": str(tmp_path / "a.wav"), "chunk_seconds": 3})
    assert config.backend == "file"
    assert config.chunk_seconds == 3.0
    assert config.min_chunk_bytes == 8000
    assert isinstance(create_backend(config), FileCaptureBackend)

    with pytest.raises(ValueError):
        create_backend(CaptureConfig(backend="carrier-pigeon"))
    with pytest.raises(ValueError):
        parse_capture_config({"chunk_seconds": 0})
