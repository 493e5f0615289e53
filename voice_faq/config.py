"""
Centralized configuration for the Voice FAQ Assistant.
All settings loaded from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigError


@dataclass
class AssistantConfig:
    """Conversation engine behaviour."""
    rules_pack: str = "gromo"  # bundled pack name or path to a JSON file
    thinking_delay: float = 0.5  # seconds before the response is revealed
    auto_listen: bool = True  # re-arm capture after the assistant finishes speaking
    auto_listen_delay: float = 1.0
    greet_on_start: bool = False


@dataclass
class CaptureConfig:
    """Speech capture configuration."""
    engine_type: str = "whisper"  # "whisper" or "none"
    language: str = "en"
    sample_rate: int = 16000
    vad_threshold: float = 0.5
    silence_timeout: float = 0.8  # seconds of silence to finalize the utterance
    no_speech_timeout: float = 8.0  # give up if nobody speaks
    device_name: str = ""  # empty = default mic

    # Whisper specific
    whisper_model: str = "small"
    whisper_device: str = "cpu"  # "cpu" or "cuda"
    whisper_compute_type: str = "int8"


@dataclass
class VoiceConfig:
    """Speech playback configuration."""
    engine_type: str = "pyttsx3"  # "pyttsx3" or "none"
    language: str = "en-IN"
    rate: float = 0.85  # multiplier on the engine's normal speed
    pitch: float = 1.2
    volume: float = 0.9
    voice_hints: Tuple[str, ...] = ("female", "woman", "samantha", "microsoft zira")


@dataclass
class ServerConfig:
    """WebSocket server configuration."""
    host: str = "0.0.0.0"
    port: int = 8765


@dataclass
class AppConfig:
    """Top-level application configuration."""
    assistant: AssistantConfig = field(default_factory=AssistantConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables (including .env file)."""
        load_dotenv()
        config = cls()

        # Assistant config
        config.assistant.rules_pack = os.getenv("RULES_PACK", config.assistant.rules_pack)
        config.assistant.thinking_delay = _env_float("THINKING_DELAY", config.assistant.thinking_delay)
        config.assistant.auto_listen = _env_bool("AUTO_LISTEN", config.assistant.auto_listen)
        config.assistant.auto_listen_delay = _env_float(
            "AUTO_LISTEN_DELAY", config.assistant.auto_listen_delay
        )
        config.assistant.greet_on_start = _env_bool("GREET_ON_START", config.assistant.greet_on_start)

        # Capture config
        config.capture.engine_type = os.getenv("ASR_ENGINE", config.capture.engine_type)
        config.capture.language = os.getenv("ASR_LANGUAGE", config.capture.language)
        config.capture.device_name = os.getenv("AUDIO_DEVICE", config.capture.device_name)
        config.capture.whisper_model = os.getenv("WHISPER_MODEL", config.capture.whisper_model)
        config.capture.whisper_device = os.getenv("WHISPER_DEVICE", config.capture.whisper_device)
        config.capture.silence_timeout = _env_float("SILENCE_TIMEOUT", config.capture.silence_timeout)
        config.capture.no_speech_timeout = _env_float(
            "NO_SPEECH_TIMEOUT", config.capture.no_speech_timeout
        )

        # Voice config
        config.voice.engine_type = os.getenv("TTS_ENGINE", config.voice.engine_type)
        config.voice.language = os.getenv("TTS_LANGUAGE", config.voice.language)
        config.voice.rate = _env_float("TTS_RATE", config.voice.rate)
        config.voice.pitch = _env_float("TTS_PITCH", config.voice.pitch)
        config.voice.volume = _env_float("TTS_VOLUME", config.voice.volume)
        hints = os.getenv("TTS_VOICE_HINTS")
        if hints is not None:
            config.voice.voice_hints = tuple(
                h.strip().lower() for h in hints.split(",") if h.strip()
            )

        # Server config
        config.server.host = os.getenv("SERVER_HOST", config.server.host)
        port = _env_int("SERVER_PORT")
        if port is not None:
            config.server.port = port

        config.log_level = os.getenv("LOG_LEVEL", config.log_level).upper()
        return config


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
