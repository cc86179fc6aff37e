"""
Single pooled connection to the daemon's local socket.

Responsibilities:
    * Dial the unix socket and report connect/disconnect to the owner.
    * Send one command line at a time and wait for its framed answer.
    * Parse the ``ANSWER <n>`` framing used by the daemon.
"""

from __future__ import annotations

import json
import logging
import queue
import socket
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)

CONNECTING = "connecting"
CONNECTED = "connected"
DISCONNECTED = "disconnected"

ANSWER_PREFIX = b"ANSWER "

_CLOSED = object()


class PoolConnectionError(RuntimeError):
    """Raised when a pooled socket cannot be dialled or drops mid-request."""


def parse_answer(buffer: bytes):
    """Split one framed answer off ``buffer``.

    Returns ``(body, rest)`` when a full answer is present, ``(None, buffer)``
    when more bytes are needed. Lines that are not answer headers are skipped.
    """

    while buffer:
        if not buffer.startswith(ANSWER_PREFIX):
            newline = buffer.find(b"\n")
            if newline < 0:
                if ANSWER_PREFIX.startswith(buffer[: len(ANSWER_PREFIX)]):
                    return None, buffer
                return None, b""
            buffer = buffer[newline + 1 :]
            continue
        newline = buffer.find(b"\n")
        if newline < 0:
            return None, buffer
        try:
            length = int(buffer[len(ANSWER_PREFIX) : newline].strip())
        except ValueError:
            buffer = buffer[newline + 1 :]
            continue
        start = newline + 1
        if len(buffer) < start + length:
            return None, buffer
        return buffer[start : start + length], buffer[start + length :]
    return None, buffer


def decode_answer(body: bytes) -> Any:
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        return json.loads(text, strict=False)
    except json.JSONDecodeError:
        return text


@dataclass
class Connection:
    """One unix-socket connection owned by a :class:`ConnectionPool`."""

    path: str
    index: int = 0
    on_connect: Optional[Callable[["Connection"], None]] = None
    on_disconnect: Optional[Callable[["Connection"], None]] = None

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _state: str = field(init=False, default=DISCONNECTED)
    _state_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _request_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _answers: "queue.Queue[Any]" = field(init=False, default_factory=queue.Queue)
    _reader_thread: Optional[threading.Thread] = field(init=False, default=None)
    _busy: bool = field(init=False, default=False)

    @property
    def state(self) -> str:
        with self._state_lock:
            return self._state

    @property
    def connected(self) -> bool:
        return self.state == CONNECTED

    @property
    def available(self) -> bool:
        return self.connected and not self._busy

    def dial(self) -> None:
        """Connect to the socket. Raises :class:`PoolConnectionError`."""

        with self._state_lock:
            if self._state != DISCONNECTED or self._sock is not None:
                return
            self._state = CONNECTING
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(self.path)
        except OSError as exc:
            sock.close()
            with self._state_lock:
                self._state = DISCONNECTED
            raise PoolConnectionError(f"connection {self.index}: dial {self.path} failed: {exc}") from exc
        self._sock = sock
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name=f"tgbroker-conn-{self.index}",
            daemon=True,
        )
        with self._state_lock:
            self._state = CONNECTED
        logger.debug("connection %s up", self.index)
        self._notify(self.on_connect)
        self._reader_thread.start()

    def communicate(self, command: str, timeout: Optional[float] = None) -> Any:
        """Send ``command`` and return the decoded answer."""

        with self._request_lock:
            sock = self._sock
            if sock is None or not self.connected:
                raise PoolConnectionError(f"connection {self.index} is not connected")
            self._busy = True
            try:
                self._drain_answers()
                try:
                    sock.sendall(command.rstrip("\n").encode("utf-8") + b"\n")
                except OSError as exc:
                    self._handle_disconnect()
                    raise PoolConnectionError(f"connection {self.index}: send failed: {exc}") from exc
                try:
                    answer = self._answers.get(timeout=timeout)
                except queue.Empty:
                    raise PoolConnectionError(f"connection {self.index}: no answer to {command.split()[0]!r}") from None
                if answer is _CLOSED:
                    raise PoolConnectionError(f"connection {self.index} closed while waiting for an answer")
                return answer
            finally:
                self._busy = False

    def close(self) -> None:
        sock = self._sock
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        reader = self._reader_thread
        if reader is None or not reader.is_alive() or reader is threading.current_thread():
            self._handle_disconnect()

    def _drain_answers(self) -> None:
        while True:
            try:
                stale = self._answers.get_nowait()
            except queue.Empty:
                return
            if stale is _CLOSED:
                self._answers.put(_CLOSED)
                return

    def _reader_loop(self) -> None:
        buffer = b""
        while True:
            sock = self._sock
            if sock is None:
                break
            try:
                chunk = sock.recv(4096)
            except OSError as exc:
                logger.debug("connection %s read failed: %s", self.index, exc)
                break
            if not chunk:
                break
            buffer += chunk
            while True:
                body, buffer = parse_answer(buffer)
                if body is None:
                    break
                self._answers.put(decode_answer(body))
        self._handle_disconnect()

    def _handle_disconnect(self) -> None:
        with self._state_lock:
            if self._state == DISCONNECTED:
                return
            was_connected = self._state == CONNECTED
            self._state = DISCONNECTED
            sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass
        self._answers.put(_CLOSED)
        if was_connected:
            logger.debug("connection %s down", self.index)
            self._notify(self.on_disconnect)

    def _notify(self, callback: Optional[Callable[["Connection"], None]]) -> None:
        if callback is None:
            return
        try:
            callback(self)
        except Exception:
            logger.exception("connection %s state callback failed", self.index)
