"""Fixed-size pool of daemon socket connections with a readiness barrier."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional

from .connection import Connection, PoolConnectionError


logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[int], Connection]


class ConnectionPool:
    """Own ``size`` connections and count how many are up.

    Every connect/disconnect report goes through one lock. ``on_ready`` fires
    once when the count first reaches ``size``; ``on_exhausted`` fires once
    when it falls back to zero after having been positive. ``on_failure``
    fires once, for the first dial that fails. Callbacks run while the lock is
    held, so they are strictly ordered and should return quickly.
    """

    def __init__(
        self,
        size: int,
        factory: ConnectionFactory,
        *,
        on_ready: Optional[Callable[[], None]] = None,
        on_exhausted: Optional[Callable[[], None]] = None,
        on_failure: Optional[Callable[[PoolConnectionError], None]] = None,
    ) -> None:
        if size < 1:
            raise ValueError(f"pool size must be at least 1, got {size}")
        self.size = size
        self.factory = factory
        self.on_ready = on_ready
        self.on_exhausted = on_exhausted
        self.on_failure = on_failure
        self.connections: List[Connection] = []
        self._lock = threading.RLock()
        self._connected = 0
        self._was_positive = False
        self._ready_fired = False
        self._exhausted_fired = False
        self._failure_fired = False
        self._cursor = 0
        self._closed = False
        self._dialers: List[threading.Thread] = []

    @classmethod
    def open(cls, size: int, factory: ConnectionFactory, **callbacks) -> "ConnectionPool":
        pool = cls(size, factory, **callbacks)
        pool.start()
        return pool

    @property
    def connected_count(self) -> int:
        with self._lock:
            return self._connected

    def is_ready(self) -> bool:
        with self._lock:
            return self._connected == self.size

    def start(self) -> None:
        """Create every connection and dial them all concurrently."""

        with self._lock:
            if self.connections or self._closed:
                return
            for index in range(self.size):
                conn = self.factory(index)
                conn.on_connect = self._on_connect
                conn.on_disconnect = self._on_disconnect
                self.connections.append(conn)
        for conn in self.connections:
            thread = threading.Thread(
                target=self._dial,
                args=(conn,),
                name=f"tgbroker-dial-{conn.index}",
                daemon=True,
            )
            self._dialers.append(thread)
            thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in list(self._dialers):
            thread.join(timeout)

    def communicate(self, command: str, timeout: Optional[float] = None) -> Any:
        return self._acquire().communicate(command, timeout=timeout)

    def close(self) -> None:
        """Close every connection; a pool that was never started will not start."""

        with self._lock:
            self._closed = True
            connections = list(self.connections)
        for conn in connections:
            conn.close()

    def _acquire(self) -> Connection:
        with self._lock:
            count = len(self.connections)
            ordered = [self.connections[(self._cursor + i) % count] for i in range(count)] if count else []
            self._cursor = (self._cursor + 1) % count if count else 0
        for conn in ordered:
            if conn.available:
                return conn
        for conn in ordered:
            if conn.connected:
                return conn
        raise PoolConnectionError("no pooled connection is up")

    def _dial(self, conn: Connection) -> None:
        try:
            conn.dial()
        except PoolConnectionError as exc:
            logger.error("%s", exc)
            self._report_failure(exc)
            return
        with self._lock:
            closed = self._closed
        if closed:
            conn.close()

    def _on_connect(self, conn: Connection) -> None:
        with self._lock:
            self._connected += 1
            self._was_positive = True
            logger.debug("pool %s/%s connected", self._connected, self.size)
            if self._connected == self.size and not self._ready_fired:
                self._ready_fired = True
                self._fire(self.on_ready)

    def _on_disconnect(self, conn: Connection) -> None:
        with self._lock:
            self._connected -= 1
            logger.debug("pool %s/%s connected", self._connected, self.size)
            if self._connected == 0 and self._was_positive and not self._exhausted_fired:
                self._exhausted_fired = True
                self._fire(self.on_exhausted)

    def _report_failure(self, exc: PoolConnectionError) -> None:
        with self._lock:
            if self._failure_fired or self._ready_fired:
                return
            self._failure_fired = True
            callback = self.on_failure
            if callback is None:
                return
            try:
                callback(exc)
            except Exception:
                logger.exception("pool failure callback raised")

    def _fire(self, callback: Optional[Callable[[], None]]) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            logger.exception("pool callback raised")
