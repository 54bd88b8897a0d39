from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "gemini:gemini-1.5-flash"


@dataclass(frozen=True)
class CaptureConfig:
    """Settings for the chunked capture pipeline.

    The window length is a timer, not an audio boundary, so the last chunk
    before a manual stop is usually shorter than ``chunk_seconds``.
    """
    backend: str = "sounddevice"  # "sounddevice" or "file"
    chunk_seconds: float = 6.0
    min_chunk_bytes: int = 8000
    audio_bits_per_second: int = 128000
    samplerate: int = 48000
    display_device: Optional[int] = None
    microphone_device: Optional[int] = None
    final_flush_timeout: float = 30.0
    simulate_file: Optional[str] = None


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    model: str
    api_key: str
    base_url: str


def load_config(config_path: str) -> dict:
    """Read config.json, returning an empty dict when it does not exist."""
    if not os.path.exists(config_path):
        return {}
    with open(config_path, "r", encoding="utf-8") as config_file:
        data = json.load(config_file)
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be an object: {config_path}")
    return data


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def parse_capture_config(config_dict: dict) -> CaptureConfig:
    """Parse the ``capture`` section of config.json.

    Example:
        {"backend": "sounddevice", "chunk_seconds": 6, "min_chunk_bytes": 8000}
    """
    defaults = CaptureConfig()
    chunk_seconds = float(config_dict.get("chunk_seconds", defaults.chunk_seconds))
    if chunk_seconds <= 0:
        raise ValueError("capture.chunk_seconds must be positive")
    return CaptureConfig(
        backend=str(config_dict.get("backend", defaults.backend)).lower(),
        chunk_seconds=chunk_seconds,
        min_chunk_bytes=int(config_dict.get("min_chunk_bytes", defaults.min_chunk_bytes)),
        audio_bits_per_second=int(
            config_dict.get("audio_bits_per_second", defaults.audio_bits_per_second)
        ),
        samplerate=int(config_dict.get("samplerate", defaults.samplerate)),
        display_device=_optional_int(config_dict.get("display_device")),
        microphone_device=_optional_int(config_dict.get("microphone_device")),
        final_flush_timeout=float(
            config_dict.get("final_flush_timeout", defaults.final_flush_timeout)
        ),
        simulate_file=config_dict.get("simulate_file") or None,
    )


def parse_provider_config(config: dict) -> Optional[ProviderConfig]:
    """Resolve the selected AI model and its credentials.

    ``models.selected_model`` has the form "provider:model_id". The
    GEMINI_API_KEY environment variable wins over the stored key. Returns
    None when no key is available, which disables AI features.
    """
    logger = logging.getLogger("meetmate.config")
    selected = config.get("models", {}).get("selected_model") or DEFAULT_MODEL
    if ":" not in selected:
        raise ValueError(f"Invalid model format '{selected}'. Expected 'provider:model_id'.")
    provider_name, model_id = selected.split(":", 1)
    provider_name = provider_name.lower()
    provider_cfg = config.get("providers", {}).get(provider_name, {})
    api_key = provider_cfg.get("api_key", "")
    if provider_name == "gemini":
        api_key = os.environ.get("GEMINI_API_KEY") or api_key
    if not api_key:
        logger.warning("No API key for provider=%s; AI features disabled", provider_name)
        return None
    return ProviderConfig(
        name=provider_name,
        model=model_id,
        api_key=api_key,
        base_url=provider_cfg.get("base_url", ""),
    )
