"""
Async event bus for inter-component communication.
Uses asyncio.Queue with typed events and pub/sub pattern.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Coroutine, Dict, List

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event Types
# ---------------------------------------------------------------------------

class EventType(Enum):
    """All event types flowing through the system."""
    STATE_CHANGED = auto()       # Conversation state transition
    TURN_APPENDED = auto()       # New user/assistant turn in the transcript
    INTERIM_TRANSCRIPT = auto()  # Non-final capture text
    NOTICE = auto()              # Transient, non-fatal notice for the user


@dataclass
class Event:
    """Base event structure."""
    type: EventType
    data: Any
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = ""


# ---------------------------------------------------------------------------
# Convenience Event Constructors
# ---------------------------------------------------------------------------

def state_event(state, previous) -> Event:
    """Create a state transition event."""
    return Event(
        type=EventType.STATE_CHANGED,
        data={"state": state, "previous": previous},
        source="controller"
    )


def turn_event(turn) -> Event:
    """Create a transcript append event."""
    return Event(
        type=EventType.TURN_APPENDED,
        data={"turn": turn},
        source="controller"
    )


def interim_event(text: str) -> Event:
    """Create an interim (partial) transcript event."""
    return Event(
        type=EventType.INTERIM_TRANSCRIPT,
        data={"text": text},
        source="capture"
    )


def notice_event(kind: str, message: str) -> Event:
    """Create a user-facing notice event."""
    return Event(
        type=EventType.NOTICE,
        data={"kind": kind, "message": message},
        source="controller"
    )


# ---------------------------------------------------------------------------
# Event Bus
# ---------------------------------------------------------------------------

# Type alias for subscriber callbacks
Subscriber = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """
    Async publish/subscribe event bus.

    Components publish typed events; interested subscribers receive them
    asynchronously. Each subscriber gets its own queue to avoid blocking.
    """

    def __init__(self, maxsize: int = 256):
        self._subscribers: Dict[EventType, List[asyncio.Queue]] = {}
        self._handlers: Dict[EventType, List[Subscriber]] = {}
        self._maxsize = maxsize
        self._running = False
        self._tasks: List[asyncio.Task] = []

    def subscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Register an async handler for a specific event type."""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
            self._handlers[event_type] = []
        q: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers[event_type].append(q)
        self._handlers[event_type].append(handler)
        if self._running:
            self._tasks.append(
                asyncio.create_task(self._dispatch_loop(q, handler, event_type.name))
            )
        logger.debug("Subscriber registered for %s", event_type.name)

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers of its type."""
        queues = self._subscribers.get(event.type, [])
        for q in queues:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Queue full for %s subscriber, dropping event", event.type.name
                )

    async def start(self) -> None:
        """Start dispatcher loops for all registered subscribers."""
        self._running = True
        for event_type, queues in self._subscribers.items():
            handlers = self._handlers[event_type]
            for q, handler in zip(queues, handlers):
                task = asyncio.create_task(
                    self._dispatch_loop(q, handler, event_type.name)
                )
                self._tasks.append(task)
        logger.info("EventBus started with %d dispatch loops", len(self._tasks))

    async def stop(self) -> None:
        """Stop all dispatcher loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("EventBus stopped")

    async def _dispatch_loop(
        self, queue: asyncio.Queue, handler: Subscriber, name: str
    ) -> None:
        """Continuously dispatch events from a queue to its handler."""
        while self._running:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=1.0)
                try:
                    await handler(event)
                except Exception:
                    logger.exception("Error in handler for %s", name)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
