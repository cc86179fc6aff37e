"""Event model, line decoding and classification helpers for tgbroker."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


class EventType(enum.Enum):
    SEND_MESSAGE = "send_message"
    RECEIVE_MESSAGE = "receive_message"
    UNDEFINED = "undefined"


class ActionType(enum.Enum):
    NO_ACTION = "no_action"
    UNKNOWN_ACTION = "unknown_action"
    CHAT_ADD_USER = "chat_add_user"
    CREATE_GROUP_CHAT = "create_group_chat"
    ADD_CONTACT = "add_contact"


_KNOWN_ACTIONS = {
    "chat_add_user": ActionType.CHAT_ADD_USER,
    "create_group_chat": ActionType.CREATE_GROUP_CHAT,
    "add_contact": ActionType.ADD_CONTACT,
}


def _peer_id(value: Any) -> Optional[int]:
    # exact integers only; "7" and 7.9 never match a user id
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


@dataclass(frozen=True)
class Event:
    client: Any
    type: EventType
    action: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def sender_id(self) -> Optional[int]:
        sender = self.payload.get("from")
        if isinstance(sender, dict):
            return _peer_id(sender.get("peer_id"))
        return None

    @property
    def text(self) -> Optional[str]:
        value = self.payload.get("text")
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one output line: a payload or a discard reason."""

    payload: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.payload is not None


def decode_line(line: Union[bytes, str]) -> DecodeResult:
    """Extract the JSON object that starts at the first ``{`` of ``line``."""

    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    brace = line.find("{")
    if brace < 0:
        return DecodeResult(reason="no json object")
    candidate = line[brace:].rstrip("\r\n")
    try:
        payload = json.loads(candidate, strict=False)
    except ValueError as exc:
        return DecodeResult(reason=f"invalid json: {exc}")
    if not isinstance(payload, dict):
        return DecodeResult(reason="not a json object")
    return DecodeResult(payload=payload)


def classify(payload: Dict[str, Any], current_user_id: Optional[int]) -> Tuple[EventType, ActionType]:
    event_type = EventType.UNDEFINED
    if payload.get("event") == "message":
        sender = payload.get("from")
        peer_id = _peer_id(sender.get("peer_id")) if isinstance(sender, dict) else None
        if peer_id is not None and peer_id == current_user_id:
            event_type = EventType.SEND_MESSAGE
        else:
            event_type = EventType.RECEIVE_MESSAGE

    if "action" not in payload:
        return event_type, ActionType.NO_ACTION
    raw_action = payload["action"]
    if not isinstance(raw_action, str):
        return event_type, ActionType.UNKNOWN_ACTION
    return event_type, _KNOWN_ACTIONS.get(raw_action, ActionType.UNKNOWN_ACTION)
