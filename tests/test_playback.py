"""
Unit tests for Pyttsx3PlaybackService with a mocked pyttsx3 engine.
"""

import asyncio
import os
import sys
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from voice_faq.config import VoiceConfig
from voice_faq.speech.base import PlaybackEvent, SpeechOptions, Utterance
from voice_faq.speech.playback import BASE_WORDS_PER_MINUTE, Pyttsx3PlaybackService


def run(coro):
    """Helper to run a coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def make_service(voices=()):
    service = Pyttsx3PlaybackService(VoiceConfig())
    engine = MagicMock()
    engine.getProperty.return_value = list(voices)
    service._engine = engine
    return service, engine


def record(service):
    events = []
    for kind in PlaybackEvent:
        service.subscribe(kind, lambda *args, kind=kind: events.append((kind, args)))
    return events


class TestPyttsx3Playback:

    def test_speak_blocking_applies_options(self):
        voices = [
            SimpleNamespace(id="david", name="Microsoft David", languages=["en-US"], gender="male"),
            SimpleNamespace(id="heera", name="Microsoft Heera", languages=["en_IN"], gender="female"),
        ]
        service, engine = make_service(voices)
        events = record(service)
        utterance = Utterance(1, "Vanakkam!")
        options = SpeechOptions(rate=0.85, pitch=1.2, volume=1.5, language="en-IN", voice_hints=("female",))

        service._speak_blocking(utterance, options, threading.Event())

        engine.setProperty.assert_any_call("rate", int(BASE_WORDS_PER_MINUTE * 0.85))
        engine.setProperty.assert_any_call("volume", 1.0)
        engine.setProperty.assert_any_call("voice", "heera")
        engine.say.assert_called_once_with("Vanakkam!")
        engine.runAndWait.assert_called_once()
        assert events == [(PlaybackEvent.START, (utterance,))]

    def test_no_matching_voice_keeps_default(self):
        voices = [SimpleNamespace(id="david", name="David", languages=[b"\x05en-us"], gender="male")]
        service, engine = make_service(voices)
        service._speak_blocking(
            Utterance(1, "hi"), SpeechOptions(language="en-IN", voice_hints=("zira",)), threading.Event()
        )
        voice_calls = [c for c in engine.setProperty.call_args_list if c.args[0] == "voice"]
        assert voice_calls == []

    def test_list_voices_decodes_bytes_language(self):
        voices = [SimpleNamespace(id="a", name="Alex", languages=[b"\x05en_US"], gender=None)]
        service, _ = make_service(voices)
        listed = service._list_voices()
        assert listed[0].language == "en_US"
        assert listed[0].gender == ""

    def test_done_callback_reports_end(self):
        async def _test():
            service, _ = make_service()
            events = record(service)
            utterance = Utterance(4, "ok")
            fut = asyncio.get_running_loop().create_future()
            fut.set_result(None)
            service._on_done(fut, utterance)
            assert events == [(PlaybackEvent.END, (utterance,))]

        run(_test())

    def test_done_callback_reports_error(self):
        async def _test():
            service, _ = make_service()
            events = record(service)
            utterance = Utterance(5, "ok")
            fut = asyncio.get_running_loop().create_future()
            fut.set_exception(RuntimeError("driver crashed"))
            service._on_done(fut, utterance)
            assert events == [(PlaybackEvent.ERROR, (utterance, "driver crashed"))]

        run(_test())

    def test_speak_runs_to_completion(self):
        async def _test():
            service, engine = make_service()
            events = record(service)
            utterance = await service.speak("hello", SpeechOptions())
            await service._task
            await asyncio.sleep(0)
            assert [kind for kind, _ in events] == [PlaybackEvent.START, PlaybackEvent.END]
            assert events[-1][1] == (utterance,)
            engine.say.assert_called_once_with("hello")
            await service.close()

        run(_test())

    def test_cancel_stops_engine_while_speaking(self):
        async def _test():
            service, engine = make_service()
            service._task = asyncio.get_running_loop().create_future()
            await service.cancel()
            engine.stop.assert_called_once()
            service._task.cancel()

        run(_test())

    def test_already_halted_skips_engine(self):
        service, engine = make_service()
        events = record(service)
        halted = threading.Event()
        halted.set()
        service._speak_blocking(Utterance(1, "hi"), SpeechOptions(), halted)
        engine.say.assert_not_called()
        engine.runAndWait.assert_not_called()
        assert events == []

    def test_cancel_during_voice_listing(self):
        """An interrupt while the engine is still being set up stops the answer being spoken."""
        async def _test():
            gate = threading.Event()
            entered = threading.Event()
            service, engine = make_service()

            def slow_voices(name):
                entered.set()
                gate.wait(2.0)
                return []

            engine.getProperty.side_effect = slow_voices
            events = record(service)
            utterance = await service.speak("Vanakkam!", SpeechOptions())
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, entered.wait, 2.0)

            await service.cancel()
            gate.set()
            await service._task
            await asyncio.sleep(0)

            engine.say.assert_not_called()
            assert engine.runAndWait.call_count == 0
            assert events == [(PlaybackEvent.END, (utterance,))]
            await service.close()

        run(_test())

    def test_cancel_before_engine_exists(self):
        async def _test():
            gate = threading.Event()
            service, engine = make_service()
            service._engine = None

            def slow_init():
                gate.wait(2.0)
                service._engine = engine
                return engine

            service._get_engine = slow_init
            await service.speak("Vanakkam!", SpeechOptions())
            await service.cancel()
            gate.set()
            await service._task

            assert engine.runAndWait.call_count == 0
            await service.close()

        run(_test())

    def test_stop_hook_registered_while_speaking(self):
        service, engine = make_service()
        service._speak_blocking(Utterance(1, "hi"), SpeechOptions(), threading.Event())
        event_name = engine.connect.call_args.args[0]
        assert event_name == "started-utterance"
        engine.disconnect.assert_called_once_with(engine.connect.return_value)
