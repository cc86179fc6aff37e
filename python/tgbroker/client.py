"""Client session built on top of the supervisor, gate, pool and event pipeline."""

from __future__ import annotations

import enum
import logging
import queue
import threading
from typing import Any, Callable, List, Optional

from .authorization import AuthError, AuthorizationGate, AuthProperties
from .commands import CommandClient
from .config import SessionConfig, render_command
from .connection import Connection, PoolConnectionError
from .dispatch import EventDispatcher, EventHandler, HandlerTable
from .events import EventType
from .ingest import EventIngester
from .pool import ConnectionFactory, ConnectionPool
from .roster import Chat, Contact, Roster
from .supervisor import ProcessHandle, ProcessSupervisor, SpawnError


logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    AUTHORIZING = "authorizing"
    POOL_CONNECTING = "pool_connecting"
    READY = "ready"
    DISCONNECTING = "disconnecting"
    CLOSED = "closed"
    FAILED = "failed"


_FAILABLE = {SessionState.SPAWNING, SessionState.AUTHORIZING, SessionState.POOL_CONNECTING}


class Client:
    """Broker between the embedding application and one daemon process.

    ``connect`` returns immediately; the daemon is started, authorized and
    connected from a background thread. Once every pooled connection is up
    the roster is refreshed, ``on_ready`` runs and queued events start
    flowing to the registered handlers in arrival order.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        auth_properties: Optional[AuthProperties] = None,
        *,
        supervisor: Optional[ProcessSupervisor] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self.config = (config or SessionConfig()).validate()
        self.auth_properties = auth_properties
        self.logger = self.config.logger or logger
        self.supervisor = supervisor or ProcessSupervisor()
        self.supervisor.on_failure = self._on_daemon_failure
        self.connection_factory = connection_factory or self._default_connection
        self.handlers = HandlerTable()
        self.roster = Roster()
        self.events: "queue.Queue[Any]" = queue.Queue()
        self.process: Optional[ProcessHandle] = None
        self.pool: Optional[ConnectionPool] = None
        self.commands: Optional[CommandClient] = None
        self.failure: Optional[BaseException] = None

        self._state = SessionState.IDLE
        self._state_lock = threading.RLock()
        self._closed = threading.Event()
        self._ready_callback: Optional[Callable[[], None]] = None
        self._disconnect_callback: Optional[Callable[[], None]] = None
        self._failure_callback: Optional[Callable[[BaseException], None]] = None
        self._threads: List[threading.Thread] = []
        self._ingester: Optional[EventIngester] = None
        self._dispatcher: Optional[EventDispatcher] = None

        self.logger.info("Initialized")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def profile(self) -> Optional[Contact]:
        return self.roster.profile

    @property
    def contacts(self) -> List[Contact]:
        return self.roster.contacts

    @property
    def chats(self) -> List[Chat]:
        return self.roster.chats

    def current_user_id(self) -> Optional[int]:
        return self.roster.current_user_id()

    def is_connected(self) -> bool:
        pool = self.pool
        return pool is not None and pool.is_ready()

    def register_handler(self, event_type: EventType, callback: Optional[EventHandler]) -> None:
        self.handlers.register(event_type, callback)

    def on(self, event_type: EventType) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of :meth:`register_handler`."""

        def decorator(func: EventHandler) -> EventHandler:
            self.register_handler(event_type, func)
            return func

        return decorator

    def set_on_disconnect(self, callback: Optional[Callable[[], None]]) -> None:
        self._disconnect_callback = callback

    def set_on_execution_failure(self, callback: Optional[Callable[[BaseException], None]]) -> None:
        self._failure_callback = callback

    def connect(self, on_ready: Optional[Callable[[], None]] = None) -> None:
        """Start the daemon and connect; ``on_ready`` runs once the pool is full."""

        with self._state_lock:
            if self._state is not SessionState.IDLE:
                raise RuntimeError(f"cannot connect from state {self._state.value}")
            self._state = SessionState.SPAWNING
        self._ready_callback = on_ready
        self.logger.info("Trying to start telegram-cli and then connect")
        self._spawn_thread(self._bootstrap, "tgbroker-bootstrap")

    def close(self) -> None:
        """Tear the session down; a ready session goes through its disconnect path."""

        with self._state_lock:
            state = self._state
            if state in (SessionState.CLOSED, SessionState.FAILED, SessionState.DISCONNECTING):
                return
            if state is not SessionState.READY:
                self._state = SessionState.CLOSED
        if state is SessionState.READY:
            self.logger.info("closing session")
            self.supervisor.terminate(self.process)
            if self.pool is not None:
                self.pool.close()
            return
        self._release()
        self._closed.set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for background threads (bootstrap, ingestion, dispatch) to finish."""

        for thread in list(self._threads):
            if thread is not threading.current_thread():
                thread.join(timeout)
        for worker in (self._ingester, self._dispatcher):
            if worker is not None:
                worker.join(timeout)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _bootstrap(self) -> None:
        command = render_command(self.config)
        try:
            self.process = self.supervisor.spawn(command)
        except SpawnError as exc:
            self._fail(exc)
            return
        if not self._advance(SessionState.SPAWNING, SessionState.AUTHORIZING):
            self._release()
            return
        try:
            AuthorizationGate(self.auth_properties).gate(self.process.stdout, self.process.stdin)
        except AuthError as exc:
            self._fail(exc)
            return
        if not self._advance(SessionState.AUTHORIZING, SessionState.POOL_CONNECTING):
            self._release()
            return
        pool = ConnectionPool(
            self.config.size,
            self.connection_factory,
            on_ready=self._on_pool_ready,
            on_exhausted=self._on_pool_exhausted,
            on_failure=self._fail,
        )
        with self._state_lock:
            if self._state is not SessionState.POOL_CONNECTING:
                return
            self.pool = pool
            self.commands = CommandClient(pool)
        pool.start()

    def _on_pool_ready(self) -> None:
        if not self._advance(SessionState.POOL_CONNECTING, SessionState.READY):
            return
        self.logger.info("Successfully connected to the Telegram CLI")
        self._spawn_thread(self._enter_ready, "tgbroker-ready")

    def _enter_ready(self) -> None:
        process, commands = self.process, self.commands
        if process is None or commands is None:
            raise RuntimeError("ready reached without a daemon process and command client")
        self._ingester = EventIngester(process.stdout, self.events)
        self._ingester.start()
        try:
            self.roster.refresh(commands)
        except Exception:
            self.logger.exception("roster refresh failed")
        if not self._still_ready("ready callback"):
            return
        callback = self._ready_callback
        if callback is not None:
            try:
                callback()
            except Exception:
                self.logger.exception("ready callback raised")
        if not self._still_ready("event dispatch"):
            return
        self._dispatcher = EventDispatcher(
            self.events,
            self.handlers,
            client=self,
            current_user_id=self.roster.current_user_id,
            log=self.logger,
        )
        self._dispatcher.start()

    def _still_ready(self, step: str) -> bool:
        with self._state_lock:
            state = self._state
        if state is SessionState.READY:
            return True
        self.logger.info("session left ready state (%s), skipping %s", state.value, step)
        return False

    def _on_pool_exhausted(self) -> None:
        with self._state_lock:
            state = self._state
            if state is SessionState.READY:
                self._state = SessionState.DISCONNECTING
        if state is SessionState.POOL_CONNECTING:
            self._fail(PoolConnectionError("every connection dropped before the pool was ready"))
            return
        if state is not SessionState.READY:
            return
        self.logger.info("Disconnected from Telegram CLI")
        self.supervisor.terminate(self.process)
        callback = self._disconnect_callback
        if callback is not None:
            try:
                callback()
            except Exception:
                self.logger.exception("disconnect callback raised")
        self._release()
        self._set_state(SessionState.CLOSED)
        self._closed.set()

    def _on_daemon_failure(self, exc: BaseException) -> None:
        if self.state in _FAILABLE:
            self._fail(exc)
        else:
            self.logger.warning("%s", exc)

    def _fail(self, exc: BaseException) -> None:
        with self._state_lock:
            if self._state not in _FAILABLE:
                self.logger.debug("ignoring failure in state %s: %s", self._state.value, exc)
                return
            self._state = SessionState.FAILED
            self.failure = exc
        self.logger.error("Failed execution of telegram-cli: %s", exc)
        callback = self._failure_callback
        if callback is not None:
            try:
                callback(exc)
            except Exception:
                self.logger.exception("execution failure callback raised")
        self._release()
        self._set_state(SessionState.CLOSED)
        self._closed.set()

    def _release(self) -> None:
        self.supervisor.terminate(self.process)
        if self.pool is not None:
            self.pool.close()
        self.supervisor.release(self.process)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _advance(self, expected: SessionState, new_state: SessionState) -> bool:
        with self._state_lock:
            if self._state is not expected:
                return False
            self._state = new_state
        self.logger.debug("session %s -> %s", expected.value, new_state.value)
        return True

    def _set_state(self, new_state: SessionState) -> None:
        with self._state_lock:
            self._state = new_state

    def _spawn_thread(self, target: Callable[[], None], name: str) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _default_connection(self, index: int) -> Connection:
        return Connection(self.config.sock, index=index)
