"""Turn-taking states and the transitions allowed between them."""

from enum import Enum
from typing import Dict, FrozenSet


class ConversationState(str, Enum):
    IDLE = "idle"              # Waiting for input
    LISTENING = "listening"    # Capture service active
    PROCESSING = "processing"  # Selecting the response ("thinking")
    SPEAKING = "speaking"      # Playback in progress


TRANSITIONS: Dict[ConversationState, FrozenSet[ConversationState]] = {
    ConversationState.IDLE: frozenset({
        ConversationState.LISTENING,
        ConversationState.PROCESSING,
        ConversationState.SPEAKING,  # greeting
    }),
    ConversationState.LISTENING: frozenset({
        ConversationState.IDLE,
        ConversationState.PROCESSING,
    }),
    ConversationState.PROCESSING: frozenset({
        ConversationState.SPEAKING,
        ConversationState.IDLE,  # text-only mode or session close
    }),
    ConversationState.SPEAKING: frozenset({
        ConversationState.IDLE,
    }),
}


class InvalidTransition(RuntimeError):
    """Raised when the controller attempts a transition outside TRANSITIONS."""

    def __init__(self, current: ConversationState, target: ConversationState):
        super().__init__(f"{current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: ConversationState, target: ConversationState) -> bool:
    return target in TRANSITIONS[current]
