import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Tuple


class Speaker(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """A single logged utterance or response."""
    id: int
    text: str
    speaker: Speaker
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "speaker": self.speaker.value,
            "created_at": self.created_at.isoformat(),
        }


class Transcript:
    """
    Append-only, insertion-ordered history of turns for one session.
    Turn ids are unique and strictly increasing.
    """

    def __init__(self):
        self._turns: List[Turn] = []
        self._ids = itertools.count(1)

    def append(self, text: str, speaker: Speaker) -> Turn:
        turn = Turn(id=next(self._ids), text=text, speaker=speaker)
        self._turns.append(turn)
        return turn

    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]
