"""Lifecycle supervision for the spawned daemon process."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from typing import IO, Callable, Optional


logger = logging.getLogger(__name__)

FailureCallback = Callable[[BaseException], None]


class SpawnError(RuntimeError):
    """Raised when the daemon fails to start or exits on its own."""


@dataclass
class ProcessHandle:
    process: subprocess.Popen
    command: str
    _interrupted: bool = field(init=False, default=False)
    _lock: threading.Lock = field(init=False, default_factory=threading.Lock)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> IO[bytes]:
        stdout = self.process.stdout
        if stdout is None:
            raise RuntimeError("daemon was started without an output pipe")
        return stdout

    @property
    def stdin(self) -> Optional[IO[bytes]]:
        return self.process.stdin

    @property
    def returncode(self) -> Optional[int]:
        return self.process.poll()

    @property
    def interrupted(self) -> bool:
        with self._lock:
            return self._interrupted

    def _mark_interrupted(self) -> bool:
        with self._lock:
            if self._interrupted:
                return False
            self._interrupted = True
            return True


class ProcessSupervisor:
    """Spawn the daemon, watch it, and tear it down with an interrupt.

    ``spawn`` raises :class:`SpawnError` when the process cannot be started.
    An exit that was not requested through ``terminate`` is reported once
    through ``on_failure`` from the watcher thread.
    """

    def __init__(self, *, on_failure: Optional[FailureCallback] = None) -> None:
        self.on_failure = on_failure
        self._failed = False
        self._failure_lock = threading.Lock()
        self._watcher: Optional[threading.Thread] = None

    def spawn(self, command: str) -> ProcessHandle:
        logger.info("starting daemon: %s", command)
        try:
            process = subprocess.Popen(  # noqa: S602
                command,
                shell=True,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError) as exc:
            raise SpawnError(f"failed to start daemon: {exc}") from exc
        handle = ProcessHandle(process=process, command=command)
        self._watcher = threading.Thread(
            target=self._watch,
            args=(handle,),
            name=f"tgbroker-watch-{process.pid}",
            daemon=True,
        )
        self._watcher.start()
        return handle

    def terminate(self, handle: Optional[ProcessHandle]) -> None:
        """Send SIGINT to the daemon's process group. Safe to call repeatedly."""

        if handle is None or not handle._mark_interrupted():
            return
        if handle.returncode is not None:
            return
        logger.info("interrupting daemon pid %s", handle.pid)
        try:
            if os.name == "posix":
                # start_new_session makes the daemon its own group leader
                os.killpg(handle.pid, signal.SIGINT)
            else:
                handle.process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            logger.debug("daemon pid %s already gone", handle.pid)

    def release(self, handle: Optional[ProcessHandle]) -> None:
        """Close our end of the daemon's stdin; stdout is left to its reader."""

        if handle is None or handle.stdin is None:
            return
        try:
            handle.stdin.close()
        except OSError:
            pass

    def wait(self, handle: ProcessHandle, timeout: Optional[float] = None) -> Optional[int]:
        try:
            return handle.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def _watch(self, handle: ProcessHandle) -> None:
        code = handle.process.wait()
        if handle.interrupted:
            logger.info("daemon pid %s stopped (code %s)", handle.pid, code)
            return
        logger.error("daemon pid %s exited unexpectedly (code %s)", handle.pid, code)
        self._report_failure(SpawnError(f"daemon exited unexpectedly with code {code}"))

    def _report_failure(self, error: SpawnError) -> None:
        with self._failure_lock:
            if self._failed:
                return
            self._failed = True
        callback = self.on_failure
        if callback is None:
            return
        try:
            callback(error)
        except Exception:
            logger.exception("daemon failure callback raised")
