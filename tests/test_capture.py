"""
Unit tests for WhisperCaptureService with mocked faster-whisper and audio thread.
"""

import asyncio
import sys
import os
import numpy as np
from unittest.mock import MagicMock, PropertyMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from voice_faq.config import CaptureConfig, VoiceConfig
from voice_faq.errors import CaptureError
from voice_faq.speech.base import CaptureEvent
from voice_faq.speech.capture import WhisperCaptureService
from voice_faq.speech.factory import create_capture_service, create_playback_service
from voice_faq.speech.playback import Pyttsx3PlaybackService


def run(coro):
    """Helper to run a coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def record(service):
    events = []
    for kind in CaptureEvent:
        service.subscribe(kind, lambda *args, kind=kind: events.append((kind, args)))
    return events


class TestFactory:

    def test_factory_creates_whisper(self):
        assert isinstance(create_capture_service(CaptureConfig()), WhisperCaptureService)

    def test_factory_creates_pyttsx3(self):
        assert isinstance(create_playback_service(VoiceConfig()), Pyttsx3PlaybackService)

    def test_none_means_no_engine(self):
        assert create_capture_service(CaptureConfig(engine_type="none")) is None
        assert create_playback_service(VoiceConfig(engine_type="NONE")) is None

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            create_capture_service(CaptureConfig(engine_type="cloud"))
        with pytest.raises(ValueError):
            create_playback_service(VoiceConfig(engine_type="cloud"))


class TestWhisperCapture:
    """Tests for transcription and session handling."""

    def _make_mock_model(self, text="How do I register?"):
        """Create a mock WhisperModel that returns preset text."""
        mock_model = MagicMock()
        mock_segment = MagicMock()
        mock_segment.text = text
        mock_model.transcribe.return_value = ([mock_segment], MagicMock())
        return mock_model

    def test_initial_state(self):
        service = WhisperCaptureService(CaptureConfig(sample_rate=44100))
        assert service.sample_rate == 44100
        assert service.chunk_size == 512
        assert service.session == 0
        assert service._speech_buffer == []

    def test_clean_text(self):
        service = WhisperCaptureService(CaptureConfig())
        assert service._clean_text("  Where is Salem?  ") == "Where is Salem?"
        assert service._clean_text("Thanks for watching!") == ""
        assert service._clean_text(None) == ""
        # Only short outputs are treated as hallucinations
        assert service._clean_text("please subscribe me as a vendor in salem") != ""

    def test_do_transcribe_uses_language(self):
        service = WhisperCaptureService(CaptureConfig(language="ta"))
        service._asr_model = self._make_mock_model(" vanakkam ")
        audio = np.random.randn(16000).astype(np.float32)
        assert service._do_transcribe(audio) == "vanakkam"
        _, kwargs = service._asr_model.transcribe.call_args
        assert kwargs["language"] == "ta"
        assert kwargs["vad_filter"] is False

    def test_finish_reports_final_then_end(self):
        async def _test():
            service = WhisperCaptureService(CaptureConfig())
            service._session = 3
            events = record(service)
            with patch.object(service, "_do_transcribe", return_value="salem please"):
                await service._finish(np.zeros(512, dtype=np.float32), 3)
            assert events == [
                (CaptureEvent.FINAL_RESULT, (3, "salem please")),
                (CaptureEvent.END, (3,)),
            ]

        run(_test())

    def test_finish_empty_text_is_no_speech(self):
        async def _test():
            service = WhisperCaptureService(CaptureConfig())
            service._session = 1
            events = record(service)
            with patch.object(service, "_do_transcribe", return_value=""):
                await service._finish(np.zeros(512, dtype=np.float32), 1)
            assert events == [
                (CaptureEvent.ERROR, (1, "no-speech")),
                (CaptureEvent.END, (1,)),
            ]

        run(_test())

    def test_finish_transcription_failure(self):
        async def _test():
            service = WhisperCaptureService(CaptureConfig())
            service._session = 1
            events = record(service)
            with patch.object(service, "_do_transcribe", side_effect=RuntimeError("oom")):
                await service._finish(np.zeros(512, dtype=np.float32), 1)
            assert events[0] == (CaptureEvent.ERROR, (1, "transcription-failed"))

        run(_test())

    def test_finish_stale_session_ignored(self):
        async def _test():
            service = WhisperCaptureService(CaptureConfig())
            service._session = 2
            events = record(service)
            transcribe = MagicMock(return_value="salem")
            with patch.object(service, "_do_transcribe", transcribe):
                await service._finish(np.zeros(512, dtype=np.float32), 1)
            assert events == []
            transcribe.assert_not_called()

        run(_test())

    def test_start_and_stop_audio_thread(self):
        """start() opens a new session on a worker thread; stop() joins it."""
        async def _test():
            service = WhisperCaptureService(CaptureConfig())
            service._asr_model = MagicMock()
            service._vad_model = MagicMock()
            events = record(service)

            def fake_thread(device_idx, session, stop):
                stop.wait(2.0)

            with patch.object(service, "_audio_thread", side_effect=fake_thread), \
                    patch.object(WhisperCaptureService, "available", new_callable=PropertyMock, return_value=True):
                await service.start()
                assert service.session == 1
                assert service._thread.is_alive()
                assert events == [(CaptureEvent.START, (1,))]

                with pytest.raises(CaptureError) as exc_info:
                    await service.start()
                assert exc_info.value.reason == "already-listening"

                await service.stop()
                assert service._thread is None

        run(_test())

    def test_stop_without_start(self):
        """stop() should work even if start() was never called."""
        async def _test():
            service = WhisperCaptureService(CaptureConfig())
            await service.stop()
            assert service._thread is None

        run(_test())
