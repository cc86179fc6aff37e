"""Read the daemon's output stream and queue decoded payloads in order."""

from __future__ import annotations

import logging
import queue
import threading
from typing import IO, Any, Optional

from .events import decode_line


logger = logging.getLogger(__name__)

# Queued by the ingester after the last payload once the stream closes.
END_OF_STREAM = object()


class EventIngester:
    """Single producer for the event queue; runs until the stream closes."""

    def __init__(self, stream: IO[bytes], events: "queue.Queue[Any]") -> None:
        self.stream = stream
        self.events = events
        self.decoded = 0
        self.discarded = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name="tgbroker-ingest", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        logger.info("start polling for events")
        try:
            while True:
                try:
                    line = self.stream.readline()
                except (OSError, ValueError) as exc:
                    logger.debug("output stream read failed: %s", exc)
                    break
                if not line:
                    break
                self.ingest_line(line)
        finally:
            logger.info("output stream closed (%s decoded, %s discarded)", self.decoded, self.discarded)
            self.events.put(END_OF_STREAM)

    def ingest_line(self, line: bytes) -> bool:
        result = decode_line(line)
        if not result.ok:
            self.discarded += 1
            logger.debug("discarded line (%s): %r", result.reason, line[:200])
            return False
        self.decoded += 1
        self.events.put(result.payload)
        return True
