"""
Speech playback using pyttsx3.
pyttsx3 blocks in runAndWait(), so the engine lives on a dedicated
single-thread executor and completion is reported via PlaybackEvent.END.
"""

import asyncio
import importlib.util
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..config import VoiceConfig
from .base import BasePlaybackService, PlaybackEvent, SpeechOptions, Utterance
from .voices import Voice, select_voice

logger = logging.getLogger(__name__)

BASE_WORDS_PER_MINUTE = 200  # pyttsx3 default speaking rate


class Pyttsx3PlaybackService(BasePlaybackService):
    """Offline text-to-speech through the platform voices (SAPI5, NSSS, eSpeak)."""

    def __init__(self, config: VoiceConfig):
        super().__init__()
        self.config = config
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tts")
        self._engine = None
        self._task: Optional[asyncio.Future] = None
        self._halted: Optional[threading.Event] = None

    @property
    def available(self) -> bool:
        return importlib.util.find_spec("pyttsx3") is not None

    def _get_engine(self):
        # Only ever called on the executor thread
        if self._engine is None:
            import pyttsx3
            self._engine = pyttsx3.init()
        return self._engine

    def _list_voices(self) -> List[Voice]:
        voices = []
        for v in self._get_engine().getProperty("voices"):
            languages = getattr(v, "languages", None) or []
            language = languages[0] if languages else ""
            if isinstance(language, bytes):
                language = language.decode("utf-8", "ignore").lstrip("\x05")
            voices.append(Voice(
                id=v.id,
                name=v.name or "",
                language=str(language),
                gender=str(getattr(v, "gender", "") or ""),
            ))
        return voices

    async def _play(self, utterance: Utterance, options: SpeechOptions) -> None:
        loop = asyncio.get_running_loop()
        halted = threading.Event()
        self._halted = halted
        task = loop.run_in_executor(
            self._executor, self._speak_blocking, utterance, options, halted
        )
        self._task = task
        task.add_done_callback(lambda fut: self._on_done(fut, utterance))

    def _speak_blocking(
        self, utterance: Utterance, options: SpeechOptions, halted: threading.Event
    ) -> None:
        if halted.is_set():
            logger.debug("Utterance #%d cancelled before the engine started", utterance.id)
            return
        engine = self._get_engine()
        engine.setProperty("rate", int(BASE_WORDS_PER_MINUTE * options.rate))
        engine.setProperty("volume", max(0.0, min(1.0, options.volume)))

        voice = select_voice(self._list_voices(), options.language, options.voice_hints)
        if voice is not None:
            engine.setProperty("voice", voice.id)
        if options.pitch != 1.0:
            logger.debug("pyttsx3 has no pitch control, ignoring pitch=%.2f", options.pitch)

        # stop() is a no-op until the run loop is up, so re-check once it starts
        token = engine.connect(
            "started-utterance", lambda name: halted.is_set() and engine.stop()
        )
        try:
            if halted.is_set():
                logger.debug("Utterance #%d cancelled before playback", utterance.id)
                return
            self._emit(PlaybackEvent.START, utterance)
            engine.say(utterance.text)
            engine.runAndWait()
        finally:
            engine.disconnect(token)

    def _on_done(self, fut: asyncio.Future, utterance: Utterance) -> None:
        if fut.cancelled():
            self._emit(PlaybackEvent.END, utterance)
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Playback failed: %s", exc)
            self._emit(PlaybackEvent.ERROR, utterance, str(exc) or type(exc).__name__)
        else:
            self._emit(PlaybackEvent.END, utterance)

    async def _cancel(self) -> None:
        if self._halted is not None:
            self._halted.set()
        if self._engine is not None and self._task is not None and not self._task.done():
            # stop() is the one call pyttsx3 allows from another thread
            self._engine.stop()

    async def close(self) -> None:
        await super().close()
        self._executor.shutdown(wait=False)
