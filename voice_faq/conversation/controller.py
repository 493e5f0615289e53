"""
Conversation Controller.
Owns the turn-taking state machine (idle → listening → processing → speaking)
and the transcript, and coordinates the capture service, the response matcher
and the playback service.

Every mutation runs on one worker task draining an inbox queue. Public
methods and engine callbacks (which may fire on engine threads) only post
commands to that inbox.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from ..config import AssistantConfig
from ..errors import CaptureError, CaptureUnavailable, PlaybackError
from ..event_bus import EventBus, interim_event, notice_event, state_event, turn_event
from ..speech.base import (
    BaseCaptureService,
    BasePlaybackService,
    CaptureEvent,
    PlaybackEvent,
    SpeechOptions,
    Utterance,
)
from .matcher import ResponseMatcher
from .schema import Speaker, Turn, Transcript
from .state import ConversationState, InvalidTransition, can_transition

logger = logging.getLogger(__name__)

NOTICE_CAPTURE_UNAVAILABLE = "capture_unavailable"
NOTICE_CAPTURE_ERROR = "capture_error"
NOTICE_PLAYBACK_ERROR = "playback_error"

_UNAVAILABLE_MESSAGE = "Voice input is not supported here. You can still type your question."

_CAPTURE_MESSAGES = {
    "no-speech": "I didn't hear anything. Please try again.",
    "not-allowed": "Microphone access was denied.",
    "audio-capture": "No microphone was found.",
}


def _capture_message(reason: str) -> str:
    for key, message in _CAPTURE_MESSAGES.items():
        if reason.startswith(key):
            return message
    return "Could not understand. Please try again."


class ConversationController:
    """
    Session-scoped conversation engine.

    Usage:
        async with ConversationController(matcher, bus, capture=..., playback=...) as ctl:
            await ctl.submit_text("How do I register as a vendor?")
    """

    def __init__(
        self,
        matcher: ResponseMatcher,
        event_bus: EventBus,
        config: Optional[AssistantConfig] = None,
        capture: Optional[BaseCaptureService] = None,
        playback: Optional[BasePlaybackService] = None,
        speech_options: Optional[SpeechOptions] = None,
        greeting: Optional[str] = None,
        quick_actions: Sequence[str] = (),
    ):
        self.matcher = matcher
        self.bus = event_bus
        self.config = config or AssistantConfig()
        self.capture = capture
        self.playback = playback
        self.speech_options = speech_options or SpeechOptions()
        self.greeting = greeting
        self._quick_actions = tuple(quick_actions)

        self._state = ConversationState.IDLE
        self._transcript = Transcript()
        self._partial = ""
        self._pending_text: Optional[str] = None
        self._processing_token = 0
        self._capture_session: Optional[int] = None
        self._utterance: Optional[Utterance] = None
        self._reveal_timer: Optional[asyncio.TimerHandle] = None
        self._rearm_timer: Optional[asyncio.TimerHandle] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbox: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

        self._handlers: Dict[str, Callable[..., Awaitable[bool]]] = {
            "start_listening": self._on_start_listening,
            "stop_listening": self._on_stop_listening,
            "submit_text": self._on_submit_text,
            "interrupt": self._on_interrupt,
            "greet": self._on_greet,
            "reveal": self._on_reveal,
            "rearm": self._on_rearm,
            "shutdown": self._on_shutdown,
            "capture_interim": self._on_capture_interim,
            "capture_final": self._on_capture_final,
            "capture_error": self._on_capture_error,
            "capture_end": self._on_capture_end,
            "playback_start": self._on_playback_start,
            "playback_end": self._on_playback_end,
            "playback_error": self._on_playback_error,
        }

        # Engine callbacks only forward into the inbox
        if capture is not None:
            capture.subscribe(
                CaptureEvent.INTERIM_RESULT,
                lambda session, text: self._post("capture_interim", session=session, text=text),
            )
            capture.subscribe(
                CaptureEvent.FINAL_RESULT,
                lambda session, text: self._post("capture_final", session=session, text=text),
            )
            capture.subscribe(
                CaptureEvent.ERROR,
                lambda session, reason: self._post("capture_error", session=session, reason=reason),
            )
            capture.subscribe(
                CaptureEvent.END,
                lambda session: self._post("capture_end", session=session),
            )
        if playback is not None:
            playback.subscribe(
                PlaybackEvent.START,
                lambda utterance: self._post("playback_start", utterance=utterance),
            )
            playback.subscribe(
                PlaybackEvent.END,
                lambda utterance: self._post("playback_end", utterance=utterance),
            )
            playback.subscribe(
                PlaybackEvent.ERROR,
                lambda utterance, reason: self._post(
                    "playback_error", utterance=utterance, reason=reason
                ),
            )

    # ------------------------------------------------------------------
    # Queryable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def transcript(self) -> Tuple[Turn, ...]:
        return self._transcript.turns()

    @property
    def partial_transcript(self) -> str:
        return self._partial

    @property
    def quick_actions(self) -> Tuple[str, ...]:
        return self._quick_actions

    @property
    def capture_available(self) -> bool:
        return self.capture is not None and self.capture.available

    @property
    def playback_available(self) -> bool:
        return self.playback is not None and self.playback.available

    @property
    def running(self) -> bool:
        return self._worker is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the worker task. Must be called from the event loop that will drive it."""
        if self._worker is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())
        logger.info(
            "Conversation started (capture=%s, playback=%s)",
            "on" if self.capture_available else "off",
            "on" if self.playback_available else "off",
        )
        if self.config.greet_on_start and self.greeting:
            self._enqueue("greet", {}, None)

    async def close(self) -> None:
        """Stop engines, cancel timers and end the session."""
        if self._worker is None:
            return
        await self._request("shutdown")

        worker, self._worker = self._worker, None
        worker.cancel()
        await asyncio.gather(worker, return_exceptions=True)

        # Resolve anything still queued so callers are not left waiting
        inbox, self._inbox = self._inbox, None
        while not inbox.empty():
            _, _, future = inbox.get_nowait()
            if future is not None and not future.done():
                future.set_result(False)
        logger.info("Conversation closed (%d turns)", len(self._transcript))

    async def __aenter__(self) -> "ConversationController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def drain(self) -> None:
        """Wait until every queued command has been handled."""
        if self._inbox is not None:
            await self._inbox.join()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start_listening(self) -> bool:
        """Idle → listening. Posts a capture_unavailable notice when there is no engine."""
        return await self._request("start_listening")

    async def stop_listening(self) -> bool:
        """Listening → idle, discarding any partial transcript."""
        return await self._request("stop_listening")

    async def submit_text(self, text: str) -> bool:
        """Typed input; skips listening and goes straight to processing."""
        return await self._request("submit_text", text=text)

    async def submit_quick_action(self, index: int) -> bool:
        if not 0 <= index < len(self._quick_actions):
            logger.warning("Unknown quick action #%s", index)
            return False
        return await self.submit_text(self._quick_actions[index])

    async def interrupt(self) -> bool:
        """Halt playback immediately; the spoken turn stays in the transcript."""
        return await self._request("interrupt")

    async def greet(self) -> bool:
        return await self._request("greet")

    # ------------------------------------------------------------------
    # Inbox plumbing
    # ------------------------------------------------------------------

    async def _request(self, kind: str, **payload) -> bool:
        if self._worker is None:
            raise RuntimeError("Conversation not started. Call start() first.")
        future = self._loop.create_future()
        self._enqueue(kind, payload, future)
        return await future

    def _enqueue(self, kind: str, payload: Dict[str, Any], future: Optional[asyncio.Future]) -> None:
        if self._inbox is None:
            logger.debug("Dropping '%s', conversation is closed", kind)
            if future is not None and not future.done():
                future.set_result(False)
            return
        self._inbox.put_nowait((kind, payload, future))

    def _post(self, kind: str, **payload) -> None:
        """Thread-safe fire-and-forget command, used by engine callbacks and timers."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Dropping '%s', no event loop", kind)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._enqueue(kind, payload, None)
        else:
            loop.call_soon_threadsafe(self._enqueue, kind, payload, None)

    async def _run(self) -> None:
        while True:
            kind, payload, future = await self._inbox.get()
            result = False
            try:
                result = await self._handlers[kind](**payload)
            except Exception:
                logger.exception("Error handling '%s', resetting to idle", kind)
                await self._force_idle()
            finally:
                if future is not None and not future.done():
                    future.set_result(result)
                self._inbox.task_done()

    # ------------------------------------------------------------------
    # State and transcript mutation (worker task only)
    # ------------------------------------------------------------------

    async def _set_state(self, target: ConversationState) -> None:
        if target is self._state:
            return
        if not can_transition(self._state, target):
            raise InvalidTransition(self._state, target)
        previous, self._state = self._state, target
        if previous is ConversationState.IDLE:
            self._cancel_timer("_rearm_timer")
        logger.info("State: %s → %s", previous.value, target.value)
        await self.bus.publish(state_event(target, previous))

    async def _append(self, text: str, speaker: Speaker) -> Turn:
        turn = self._transcript.append(text, speaker)
        logger.info("%s #%d: %s", speaker.value, turn.id, text[:80])
        await self.bus.publish(turn_event(turn))
        return turn

    async def _notice(self, kind: str, message: str) -> None:
        logger.warning("Notice [%s]: %s", kind, message)
        await self.bus.publish(notice_event(kind, message))

    def _cancel_timer(self, attr: str) -> None:
        timer = getattr(self, attr)
        if timer is not None:
            timer.cancel()
            setattr(self, attr, None)

    async def _force_idle(self) -> None:
        self._cancel_timer("_reveal_timer")
        self._cancel_timer("_rearm_timer")
        self._pending_text = None
        self._partial = ""
        self._capture_session = None
        self._utterance = None
        if self._state is not ConversationState.IDLE:
            await self._set_state(ConversationState.IDLE)

    async def _stop_capture(self) -> None:
        try:
            await self.capture.stop()
        except Exception:
            logger.warning("Capture stop failed", exc_info=True)

    async def _halt_playback(self) -> None:
        self._utterance = None
        await self._set_state(ConversationState.IDLE)
        try:
            await self.playback.cancel()
        except Exception:
            logger.warning("Playback cancel failed", exc_info=True)

    def _is_current_capture(self, session: int) -> bool:
        return (
            self._state is ConversationState.LISTENING
            and session == self._capture_session
        )

    def _is_current_utterance(self, utterance: Utterance) -> bool:
        return (
            self._state is ConversationState.SPEAKING
            and self._utterance is not None
            and utterance.id == self._utterance.id
        )

    async def _begin_processing(self, text: str) -> None:
        # User turn is committed before the matcher ever sees the text
        await self._append(text, Speaker.USER)
        await self._set_state(ConversationState.PROCESSING)
        self._pending_text = text
        self._processing_token += 1
        token = self._processing_token

        delay = self.config.thinking_delay
        if delay > 0:
            self._reveal_timer = self._loop.call_later(delay, lambda: self._post("reveal", token=token))
        else:
            self._enqueue("reveal", {"token": token}, None)

    async def _speak(self, text: str) -> None:
        if not self.playback_available:
            # Text-only mode: nothing to wait for
            await self._set_state(ConversationState.IDLE)
            return
        await self._set_state(ConversationState.SPEAKING)
        try:
            self._utterance = await self.playback.speak(text, self.speech_options)
        except PlaybackError as exc:
            self._utterance = None
            logger.warning("Playback failed to start: %s", exc.reason)
            await self._set_state(ConversationState.IDLE)
            await self._notice(NOTICE_PLAYBACK_ERROR, "Could not play the answer aloud.")

    def _schedule_rearm(self) -> None:
        if not (self.config.auto_listen and self.capture_available):
            return
        self._cancel_timer("_rearm_timer")
        self._rearm_timer = self._loop.call_later(
            self.config.auto_listen_delay, lambda: self._post("rearm")
        )

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def _on_start_listening(self) -> bool:
        if self._state is not ConversationState.IDLE:
            logger.debug("Ignoring start_listening while %s", self._state.value)
            return False
        if not self.capture_available:
            await self._notice(NOTICE_CAPTURE_UNAVAILABLE, _UNAVAILABLE_MESSAGE)
            return False

        await self._set_state(ConversationState.LISTENING)
        self._partial = ""
        try:
            await self.capture.start()
        except CaptureUnavailable as exc:
            logger.warning("Capture unavailable: %s", exc)
            self._capture_session = None
            await self._set_state(ConversationState.IDLE)
            await self._notice(NOTICE_CAPTURE_UNAVAILABLE, _UNAVAILABLE_MESSAGE)
            return False
        except CaptureError as exc:
            logger.warning("Capture failed to start: %s", exc.reason)
            self._capture_session = None
            await self._set_state(ConversationState.IDLE)
            await self._notice(NOTICE_CAPTURE_ERROR, _capture_message(exc.reason))
            return False
        self._capture_session = self.capture.session
        return True

    async def _on_stop_listening(self) -> bool:
        if self._state is not ConversationState.LISTENING:
            return False
        self._capture_session = None
        self._partial = ""
        await self._set_state(ConversationState.IDLE)
        await self._stop_capture()
        return True

    async def _on_submit_text(self, text: str) -> bool:
        if self._state is ConversationState.PROCESSING:
            logger.info("Still answering, ignoring submitted text")
            return False
        if self._state is ConversationState.LISTENING:
            self._capture_session = None
            self._partial = ""
            await self._set_state(ConversationState.IDLE)
            await self._stop_capture()
        elif self._state is ConversationState.SPEAKING:
            await self._halt_playback()
        await self._begin_processing((text or "").strip())
        return True

    async def _on_interrupt(self) -> bool:
        if self._state is not ConversationState.SPEAKING:
            return False
        await self._halt_playback()
        return True

    async def _on_greet(self) -> bool:
        if not self.greeting or self._state is not ConversationState.IDLE:
            return False
        await self._append(self.greeting, Speaker.ASSISTANT)
        await self._speak(self.greeting)
        return True

    async def _on_reveal(self, token: int) -> bool:
        if self._state is not ConversationState.PROCESSING or token != self._processing_token:
            return False
        self._reveal_timer = None
        text, self._pending_text = self._pending_text or "", None
        response = self.matcher.match(text.lower())
        await self._append(response, Speaker.ASSISTANT)
        await self._speak(response)
        return True

    async def _on_rearm(self) -> bool:
        self._rearm_timer = None
        if self._state is not ConversationState.IDLE:
            return False
        return await self._on_start_listening()

    async def _on_shutdown(self) -> bool:
        self._cancel_timer("_reveal_timer")
        self._cancel_timer("_rearm_timer")
        if self._state is ConversationState.LISTENING:
            self._capture_session = None
            self._partial = ""
            await self._set_state(ConversationState.IDLE)
            await self._stop_capture()
        elif self._state is ConversationState.SPEAKING:
            await self._halt_playback()
        else:
            await self._force_idle()
        return True

    async def _on_capture_interim(self, session: int, text: str) -> bool:
        if not self._is_current_capture(session):
            return False
        self._partial = text
        await self.bus.publish(interim_event(text))
        return True

    async def _on_capture_final(self, session: int, text: str) -> bool:
        if not self._is_current_capture(session):
            logger.debug("Dropping stale final result: %r", text[:80])
            return False
        self._capture_session = None
        self._partial = ""
        await self._begin_processing((text or "").strip())
        await self._stop_capture()
        return True

    async def _on_capture_error(self, session: int, reason: str) -> bool:
        if not self._is_current_capture(session):
            return False
        logger.warning("Capture error: %s", reason)
        self._capture_session = None
        self._partial = ""
        await self._set_state(ConversationState.IDLE)
        await self._stop_capture()
        await self._notice(NOTICE_CAPTURE_ERROR, _capture_message(reason))
        return True

    async def _on_capture_end(self, session: int) -> bool:
        if not self._is_current_capture(session):
            return False
        # Ended without a final result
        self._capture_session = None
        self._partial = ""
        await self._set_state(ConversationState.IDLE)
        return True

    async def _on_playback_start(self, utterance: Utterance) -> bool:
        logger.debug("🔊 Speaking utterance #%d", utterance.id)
        return True

    async def _on_playback_end(self, utterance: Utterance) -> bool:
        if not self._is_current_utterance(utterance):
            return False
        self._utterance = None
        await self._set_state(ConversationState.IDLE)
        self._schedule_rearm()
        return True

    async def _on_playback_error(self, utterance: Utterance, reason: str) -> bool:
        if not self._is_current_utterance(utterance):
            return False
        logger.warning("Playback error: %s", reason)
        self._utterance = None
        await self._set_state(ConversationState.IDLE)
        await self._notice(NOTICE_PLAYBACK_ERROR, "Could not play the answer aloud.")
        return True
