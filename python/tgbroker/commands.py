"""Typed command helpers built on top of ConnectionPool."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .pool import ConnectionPool


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _peer_name(peer: str) -> str:
    peer = peer.strip()
    if not peer or any(ch.isspace() for ch in peer):
        raise ValueError(f"invalid peer name: {peer!r}")
    return peer


@dataclass
class CommandClient:
    pool: ConnectionPool
    timeout: Optional[float] = None

    def _request(self, *parts: str) -> Any:
        return self.pool.communicate(" ".join(parts), timeout=self.timeout)

    def get_self(self) -> Dict[str, Any]:
        response = self._request("get_self")
        return response if isinstance(response, dict) else {}

    def contact_list(self) -> List[Dict[str, Any]]:
        return _as_list(self._request("contact_list"))

    def dialog_list(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if limit is None:
            return _as_list(self._request("dialog_list"))
        return _as_list(self._request("dialog_list", str(int(limit))))

    def send_message(self, peer: str, text: str) -> Any:
        return self._request("msg", _peer_name(peer), quote(text))

    def mark_read(self, peer: str) -> Any:
        return self._request("mark_read", _peer_name(peer))

    def chat_add_user(self, chat: str, user: str, forward_messages: int = 100) -> Any:
        return self._request("chat_add_user", _peer_name(chat), _peer_name(user), str(int(forward_messages)))

    def create_group_chat(self, title: str, *users: str) -> Any:
        if not users:
            raise ValueError("a group chat needs at least one member")
        return self._request("create_group_chat", quote(title), *(_peer_name(user) for user in users))

    def add_contact(self, phone: str, first_name: str, last_name: str = "") -> Any:
        return self._request("add_contact", _peer_name(phone), quote(first_name), quote(last_name))

    def safe_quit(self) -> Any:
        return self._request("safe_quit")


def _as_list(response: Any) -> List[Dict[str, Any]]:
    if isinstance(response, list):
        return [item for item in response if isinstance(item, dict)]
    return []
