"""
Factory for creating capture and playback services based on configuration.
"""

from typing import Optional

from ..config import CaptureConfig, VoiceConfig
from .base import BaseCaptureService, BasePlaybackService


def create_capture_service(config: CaptureConfig) -> Optional[BaseCaptureService]:
    """
    Instantiate the capture engine named in config.
    Returns None for "none"; the assistant then runs text-only input.
    """
    engine_type = config.engine_type.lower()

    if engine_type == "none":
        return None
    elif engine_type == "whisper":
        from .capture import WhisperCaptureService
        return WhisperCaptureService(config)
    else:
        raise ValueError(f"Unknown capture engine type: {engine_type}")


def create_playback_service(config: VoiceConfig) -> Optional[BasePlaybackService]:
    """
    Instantiate the playback engine named in config.
    Returns None for "none"; responses are then shown but not spoken.
    """
    engine_type = config.engine_type.lower()

    if engine_type == "none":
        return None
    elif engine_type == "pyttsx3":
        from .playback import Pyttsx3PlaybackService
        return Pyttsx3PlaybackService(config)
    else:
        raise ValueError(f"Unknown playback engine type: {engine_type}")
