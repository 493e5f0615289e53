import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence


class ClientMessageType(str, Enum):
    SUBMIT_TEXT = "submit_text"
    QUICK_ACTION = "quick_action"
    START_LISTENING = "start_listening"
    STOP_LISTENING = "stop_listening"
    INTERRUPT = "interrupt"


@dataclass
class ClientMessage:
    type: ClientMessageType
    payload: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str) -> "ClientMessage":
        """Parse a client frame. Raises ValueError on anything malformed."""
        try:
            parsed = json.loads(data)
            msg_type = ClientMessageType(parsed["type"])
        except (TypeError, KeyError, json.JSONDecodeError) as exc:
            raise ValueError(f"Malformed client message: {exc}") from exc
        payload = parsed.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("Client message payload must be an object")
        return cls(type=msg_type, payload=payload)

    @classmethod
    def submit_text(cls, text: str) -> "ClientMessage":
        """Typed question from the input box."""
        return cls(type=ClientMessageType.SUBMIT_TEXT, payload={"text": text})

    @classmethod
    def quick_action(cls, index: int) -> "ClientMessage":
        return cls(type=ClientMessageType.QUICK_ACTION, payload={"index": index})


# Server to Client messages
class ServerMessageType(str, Enum):
    SYNC = "sync"
    STATE = "state"
    TURN = "turn"
    INTERIM = "interim"
    NOTICE = "notice"
    ERROR = "error"


@dataclass
class ServerMessage:
    type: ServerMessageType
    payload: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str) -> "ServerMessage":
        parsed = json.loads(data)
        return cls(type=ServerMessageType(parsed["type"]), payload=parsed.get("payload", {}))

    @classmethod
    def sync(
        cls, state: str, transcript: List[Dict[str, Any]], partial: str, quick_actions: Sequence[str]
    ) -> "ServerMessage":
        """Full snapshot sent to a client right after it connects."""
        return cls(type=ServerMessageType.SYNC, payload={
            "state": state,
            "transcript": transcript,
            "partial": partial,
            "quick_actions": list(quick_actions),
        })

    @classmethod
    def error(cls, message: str) -> "ServerMessage":
        return cls(type=ServerMessageType.ERROR, payload={"message": message})
