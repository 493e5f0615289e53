"""
Base abstract classes for capture (speech-to-text) and playback
(text-to-speech) services.

Engines report progress through ``subscribe(event, handler)`` callbacks.
Handlers may be invoked from an engine worker thread, so they must not
touch shared state directly.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, DefaultDict, List, Optional, Tuple

from ..errors import CaptureError, CaptureUnavailable, PlaybackError

logger = logging.getLogger(__name__)


class CaptureEvent(Enum):
    START = auto()
    INTERIM_RESULT = auto()  # handler(session, text)
    FINAL_RESULT = auto()    # handler(session, text)
    ERROR = auto()           # handler(session, reason)
    END = auto()


class PlaybackEvent(Enum):
    START = auto()  # handler(utterance)
    END = auto()    # handler(utterance)
    ERROR = auto()  # handler(utterance, reason)


@dataclass(frozen=True)
class SpeechOptions:
    """Per-utterance playback settings."""
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0
    language: str = "en-US"
    voice_hints: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, config) -> "SpeechOptions":
        """Build options from a VoiceConfig."""
        return cls(
            rate=config.rate,
            pitch=config.pitch,
            volume=config.volume,
            language=config.language,
            voice_hints=tuple(config.voice_hints),
        )


@dataclass(frozen=True)
class Utterance:
    """One playback request."""
    id: int
    text: str


class _Emitter:
    """Minimal synchronous callback registry shared by both service kinds."""

    def __init__(self):
        self._listeners: DefaultDict[Enum, List[Callable]] = defaultdict(list)

    def subscribe(self, event: Enum, handler: Callable) -> None:
        self._listeners[event].append(handler)

    def _emit(self, event: Enum, *args) -> None:
        for handler in list(self._listeners[event]):
            try:
                handler(*args)
            except Exception:
                logger.exception("Error in %s handler", event.name)


class BaseCaptureService(_Emitter, ABC):
    """
    Abstract base class for speech capture engines.

    Every ``start()`` opens a new capture session; events carry the session
    number so late events from a stopped session can be told apart.
    """

    def __init__(self):
        super().__init__()
        self._session = 0

    @property
    def available(self) -> bool:
        """Whether the engine can run on this host."""
        return True

    @property
    def session(self) -> int:
        return self._session

    async def initialize(self) -> None:
        """Load models or open devices ahead of the first start()."""

    async def start(self) -> None:
        """
        Begin capturing a single utterance.

        Raises:
            CaptureUnavailable: the engine cannot run on this host.
            CaptureError: the engine could not start listening.
        """
        if not self.available:
            raise CaptureUnavailable(f"{type(self).__name__} is not available")
        self._session += 1
        try:
            await self._open()
        except CaptureError:
            raise
        except Exception as exc:
            raise CaptureError(str(exc) or type(exc).__name__) from exc

    async def stop(self) -> None:
        """Stop capturing; any partial result is dropped."""
        await self._close()

    @abstractmethod
    async def _open(self) -> None:
        """Engine specific start-up."""

    @abstractmethod
    async def _close(self) -> None:
        """Engine specific shutdown. Must be safe to call when not started."""

    # Helpers for subclasses
    def _emit_start(self) -> None:
        self._emit(CaptureEvent.START, self._session)

    def _emit_interim(self, text: str) -> None:
        self._emit(CaptureEvent.INTERIM_RESULT, self._session, text)

    def _emit_final(self, text: str) -> None:
        self._emit(CaptureEvent.FINAL_RESULT, self._session, text)

    def _emit_error(self, reason: str) -> None:
        self._emit(CaptureEvent.ERROR, self._session, reason)

    def _emit_end(self) -> None:
        self._emit(CaptureEvent.END, self._session)


class BasePlaybackService(_Emitter, ABC):
    """
    Abstract base class for speech playback engines.

    ``speak()`` returns as soon as playback has been scheduled; completion is
    reported with PlaybackEvent.END for the returned utterance.
    """

    def __init__(self):
        super().__init__()
        self._ids = itertools.count(1)
        self._current: Optional[Utterance] = None

    @property
    def available(self) -> bool:
        return True

    async def speak(self, text: str, options: SpeechOptions) -> Utterance:
        """
        Start speaking ``text``.

        Raises:
            PlaybackError: playback could not be started.
        """
        utterance = Utterance(id=next(self._ids), text=text)
        self._current = utterance
        try:
            await self._play(utterance, options)
        except PlaybackError:
            raise
        except Exception as exc:
            raise PlaybackError(str(exc) or type(exc).__name__) from exc
        return utterance

    async def cancel(self) -> None:
        """Halt the current utterance, if any."""
        self._current = None
        await self._cancel()

    @abstractmethod
    async def _play(self, utterance: Utterance, options: SpeechOptions) -> None:
        """Schedule playback of ``utterance``."""

    @abstractmethod
    async def _cancel(self) -> None:
        """Stop whatever is playing."""

    async def close(self) -> None:
        """Release engine resources."""
        await self.cancel()
