"""Serialized classification and dispatch of queued payloads."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Dict, Optional

from .events import Event, EventType, classify
from .ingest import END_OF_STREAM


logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], None]


class HandlerTable:
    """One callback per event type, owned by a client instance."""

    def __init__(self) -> None:
        self._handlers: Dict[EventType, EventHandler] = {}
        self._lock = threading.Lock()

    def register(self, event_type: EventType, handler: Optional[EventHandler]) -> None:
        if not isinstance(event_type, EventType):
            raise TypeError(f"expected EventType, got {event_type!r}")
        if event_type is EventType.UNDEFINED:
            raise ValueError("handlers cannot be registered for undefined events")
        with self._lock:
            if handler is None:
                self._handlers.pop(event_type, None)
            else:
                self._handlers[event_type] = handler

    def get(self, event_type: EventType) -> Optional[EventHandler]:
        with self._lock:
            return self._handlers.get(event_type)

    def __contains__(self, event_type: object) -> bool:
        with self._lock:
            return event_type in self._handlers


class EventDispatcher:
    """Drain the event queue one payload at a time.

    A handler that raises is logged with its payload; the loop carries on
    with the next payload. The loop ends at :data:`END_OF_STREAM`.
    """

    def __init__(
        self,
        events: "queue.Queue[Any]",
        handlers: HandlerTable,
        *,
        client: Any = None,
        current_user_id: Callable[[], Optional[int]] = lambda: None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.events = events
        self.handlers = handlers
        self.client = client
        self.current_user_id = current_user_id
        self.log = log or logger
        self.dispatched = 0
        self.failed = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name="tgbroker-dispatch", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        while True:
            payload = self.events.get()
            if payload is END_OF_STREAM:
                break
            self.dispatch(payload)

    def dispatch(self, payload: Dict[str, Any]) -> Optional[Event]:
        try:
            event_type, action = classify(payload, self.current_user_id())
        except Exception:
            self.log.exception("Error occurred during classification: %r", payload)
            self.failed += 1
            return None
        handler = self.handlers.get(event_type)
        if handler is None:
            return None
        event = Event(self.client, event_type, action, payload)
        try:
            handler(event)
        except Exception:
            self.failed += 1
            self.log.exception("Error occurred during the processing: %r", payload)
        else:
            self.dispatched += 1
        return event
