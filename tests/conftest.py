"""
Pytest configuration, fake speech engines and shared fixtures.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from voice_faq.config import AssistantConfig
from voice_faq.event_bus import EventBus, EventType
from voice_faq.speech.base import BaseCaptureService, BasePlaybackService, CaptureEvent, PlaybackEvent


class FakeCapture(BaseCaptureService):
    """Capture engine driven by the test: call interim()/final()/error()/end()."""

    def __init__(self, available=True, fail_with=None):
        super().__init__()
        self._available = available
        self.fail_with = fail_with
        self.started = 0
        self.stopped = 0

    @property
    def available(self):
        return self._available

    async def _open(self):
        if self.fail_with is not None:
            raise self.fail_with
        self.started += 1
        self._emit_start()

    async def _close(self):
        self.stopped += 1

    def interim(self, text, session=None):
        self._emit(CaptureEvent.INTERIM_RESULT, session or self.session, text)

    def final(self, text, session=None):
        self._emit(CaptureEvent.FINAL_RESULT, session or self.session, text)

    def error(self, reason, session=None):
        self._emit(CaptureEvent.ERROR, session or self.session, reason)

    def end(self, session=None):
        self._emit(CaptureEvent.END, session or self.session)


class FakePlayback(BasePlaybackService):
    """Playback engine that never makes a sound; the test calls finish() or fail()."""

    def __init__(self, fail_with=None):
        super().__init__()
        self.fail_with = fail_with
        self.spoken = []
        self.cancelled = 0

    async def _play(self, utterance, options):
        if self.fail_with is not None:
            raise self.fail_with
        self.spoken.append((utterance, options))
        self._emit(PlaybackEvent.START, utterance)

    async def _cancel(self):
        self.cancelled += 1

    @property
    def last_text(self):
        return self.spoken[-1][0].text if self.spoken else None

    def finish(self, utterance=None):
        self._emit(PlaybackEvent.END, utterance or self.spoken[-1][0])

    def fail(self, reason="audio device lost"):
        self._emit(PlaybackEvent.ERROR, self.spoken[-1][0], reason)


class RecordingBus(EventBus):
    """EventBus that also keeps every published event in order."""

    def __init__(self):
        super().__init__()
        self.events = []

    async def publish(self, event):
        self.events.append(event)
        await super().publish(event)

    def of_type(self, event_type: EventType):
        return [e for e in self.events if e.type == event_type]


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def playback():
    return FakePlayback()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def fast_config():
    """No thinking delay and no hands-free re-arm, so tests stay deterministic."""
    return AssistantConfig(thinking_delay=0.0, auto_listen=False)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's .env or shell settings out of the tests."""
    for name in (
        "RULES_PACK", "THINKING_DELAY", "AUTO_LISTEN", "AUTO_LISTEN_DELAY", "GREET_ON_START",
        "ASR_ENGINE", "ASR_LANGUAGE", "AUDIO_DEVICE", "WHISPER_MODEL", "WHISPER_DEVICE",
        "SILENCE_TIMEOUT", "NO_SPEECH_TIMEOUT", "TTS_ENGINE", "TTS_LANGUAGE", "TTS_RATE",
        "TTS_PITCH", "TTS_VOLUME", "TTS_VOICE_HINTS", "SERVER_HOST", "SERVER_PORT", "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
