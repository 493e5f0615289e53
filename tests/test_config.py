"""
Unit tests for AppConfig environment variable loading.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from voice_faq.config import AppConfig
from voice_faq.errors import ConfigError


class TestAppConfig:
    """Tests for AppConfig.from_env()."""

    def test_default_values(self):
        """Config should have sensible defaults without env vars."""
        config = AppConfig()
        assert config.assistant.rules_pack == "gromo"
        assert config.assistant.thinking_delay == 0.5
        assert config.assistant.auto_listen is True
        assert config.capture.sample_rate == 16000
        assert config.voice.rate == 0.85
        assert config.voice.pitch == 1.2
        assert config.voice.volume == 0.9
        assert config.voice.language == "en-IN"
        assert config.server.port == 8765

    def test_from_env_assistant(self, monkeypatch):
        monkeypatch.setenv("RULES_PACK", "gromo_compact")
        monkeypatch.setenv("THINKING_DELAY", "0")
        monkeypatch.setenv("AUTO_LISTEN", "off")
        monkeypatch.setenv("GREET_ON_START", "Yes")
        config = AppConfig.from_env()
        assert config.assistant.rules_pack == "gromo_compact"
        assert config.assistant.thinking_delay == 0.0
        assert config.assistant.auto_listen is False
        assert config.assistant.greet_on_start is True

    def test_from_env_capture(self, monkeypatch):
        """Capture config should load from environment variables."""
        monkeypatch.setenv("AUDIO_DEVICE", "BlackHole")
        monkeypatch.setenv("WHISPER_MODEL", "large-v2")
        monkeypatch.setenv("ASR_ENGINE", "none")
        monkeypatch.setenv("NO_SPEECH_TIMEOUT", "5")
        config = AppConfig.from_env()
        assert config.capture.device_name == "BlackHole"
        assert config.capture.whisper_model == "large-v2"
        assert config.capture.engine_type == "none"
        assert config.capture.no_speech_timeout == 5.0

    def test_from_env_voice(self, monkeypatch):
        monkeypatch.setenv("TTS_RATE", "1.1")
        monkeypatch.setenv("TTS_VOICE_HINTS", " Zira, ,Heera ")
        config = AppConfig.from_env()
        assert config.voice.rate == 1.1
        assert config.voice.voice_hints == ("zira", "heera")

    def test_from_env_server(self, monkeypatch):
        """Server config should load from environment variables."""
        monkeypatch.setenv("SERVER_HOST", "127.0.0.1")
        monkeypatch.setenv("SERVER_PORT", "9999")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        config = AppConfig.from_env()
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 9999
        assert config.log_level == "DEBUG"

    def test_from_env_defaults_without_env(self):
        """Without env vars set, from_env should return defaults."""
        config = AppConfig.from_env()
        assert config.capture.device_name == ""
        assert config.server.host == "0.0.0.0"
        assert config.voice.engine_type == "pyttsx3"

    def test_blank_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("THINKING_DELAY", "  ")
        monkeypatch.setenv("SERVER_PORT", "")
        config = AppConfig.from_env()
        assert config.assistant.thinking_delay == 0.5
        assert config.server.port == 8765

    @pytest.mark.parametrize("name,value", [
        ("THINKING_DELAY", "soon"),
        ("AUTO_LISTEN", "maybe"),
        ("SERVER_PORT", "80.5"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            AppConfig.from_env()
