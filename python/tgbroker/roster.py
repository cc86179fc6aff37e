"""Profile, contact and chat snapshots refreshed from the daemon."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .commands import CommandClient


logger = logging.getLogger(__name__)

CHAT_PEER_TYPES = {"chat", "channel"}


def _to_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Contact:
    id: Optional[int]
    peer_type: str = "user"
    print_name: str = ""
    first_name: str = ""
    last_name: str = ""
    username: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Contact":
        return cls(
            id=_to_int(payload.get("peer_id", payload.get("id"))),
            peer_type=str(payload.get("peer_type") or "user"),
            print_name=str(payload.get("print_name") or ""),
            first_name=str(payload.get("first_name") or ""),
            last_name=str(payload.get("last_name") or ""),
            username=payload.get("username"),
            phone=payload.get("phone"),
        )

    @property
    def name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.print_name or (self.username or "")


@dataclass
class Chat:
    id: Optional[int]
    title: str = ""
    peer_type: str = "chat"
    print_name: str = ""
    members_num: Optional[int] = None
    admin_id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Chat":
        admin = payload.get("admin")
        return cls(
            id=_to_int(payload.get("peer_id", payload.get("id"))),
            title=str(payload.get("title") or payload.get("print_name") or ""),
            peer_type=str(payload.get("peer_type") or "chat"),
            print_name=str(payload.get("print_name") or ""),
            members_num=_to_int(payload.get("members_num")),
            admin_id=_to_int(admin.get("peer_id")) if isinstance(admin, dict) else None,
        )


@dataclass
class Roster:
    """Current user's profile, contact list and joined chats."""

    profile: Optional[Contact] = None
    contacts: List[Contact] = field(default_factory=list)
    chats: List[Chat] = field(default_factory=list)

    def current_user_id(self) -> Optional[int]:
        return self.profile.id if self.profile else None

    def refresh(self, commands: CommandClient) -> "Roster":
        """Reload everything from the daemon.

        Errors propagate to the caller and leave the previous snapshot untouched.
        """

        me = commands.get_self()
        contacts = [Contact.from_payload(item) for item in commands.contact_list()]
        chats = [
            Chat.from_payload(item)
            for item in commands.dialog_list()
            if str(item.get("peer_type") or "") in CHAT_PEER_TYPES
        ]
        self.profile = Contact.from_payload(me) if me else None
        self.contacts = contacts
        self.chats = chats
        logger.info(
            "roster refreshed: user %s, %s contacts, %s chats",
            self.current_user_id(),
            len(self.contacts),
            len(self.chats),
        )
        return self

    def find_contact(self, peer_id: int) -> Optional[Contact]:
        for contact in self.contacts:
            if contact.id == peer_id:
                return contact
        return None

    def find_chat(self, peer_id: int) -> Optional[Chat]:
        for chat in self.chats:
            if chat.id == peer_id:
                return chat
        return None

    def clear(self) -> None:
        self.profile = None
        self.contacts = []
        self.chats = []

    def as_dict(self) -> Dict[str, Any]:
        return {
            "profile": asdict(self.profile) if self.profile else None,
            "contacts": [asdict(contact) for contact in self.contacts],
            "chats": [asdict(chat) for chat in self.chats],
        }
