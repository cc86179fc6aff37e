"""
tgbroker - bridge between an application and a long-running telegram-cli daemon.

The package supervises the daemon process, gates startup behind its login
sequence, keeps a pool of unix-socket connections to it, and turns the JSON
lines it prints into classified events delivered to registered handlers.
Each concern lives in its own module:

    supervisor.py    → daemon spawn, exit detection, SIGINT teardown
    authorization.py → banner skip / interactive login gate
    connection.py    → one pooled socket and its answer framing
    pool.py          → connection pool and readiness barrier
    events.py        → event types, line decoding, classification
    ingest.py        → output stream reader feeding the event queue
    dispatch.py      → serialized handler dispatch
    commands.py      → typed daemon command wrappers
    roster.py        → profile / contacts / chats snapshot
    client.py        → session state machine and public API
"""

from .authorization import AuthError, AuthorizationGate, AuthProperties  # noqa: F401
from .client import Client, SessionState  # noqa: F401
from .commands import CommandClient  # noqa: F401
from .config import SessionConfig, render_cli_arguments, render_command  # noqa: F401
from .connection import Connection, PoolConnectionError  # noqa: F401
from .dispatch import EventDispatcher, HandlerTable  # noqa: F401
from .events import (  # noqa: F401
    ActionType,
    DecodeResult,
    Event,
    EventType,
    classify,
    decode_line,
)
from .ingest import END_OF_STREAM, EventIngester  # noqa: F401
from .pool import ConnectionPool  # noqa: F401
from .roster import Chat, Contact, Roster  # noqa: F401
from .supervisor import ProcessHandle, ProcessSupervisor, SpawnError  # noqa: F401

__all__ = [
    "Client",
    "SessionState",
    "SessionConfig",
    "render_cli_arguments",
    "render_command",
    "AuthProperties",
    "AuthorizationGate",
    "AuthError",
    "ProcessSupervisor",
    "ProcessHandle",
    "SpawnError",
    "Connection",
    "ConnectionPool",
    "PoolConnectionError",
    "EventType",
    "ActionType",
    "Event",
    "DecodeResult",
    "decode_line",
    "classify",
    "EventIngester",
    "END_OF_STREAM",
    "EventDispatcher",
    "HandlerTable",
    "CommandClient",
    "Roster",
    "Contact",
    "Chat",
]

__version__ = "0.1.0"
