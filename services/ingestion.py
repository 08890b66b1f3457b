"""Read packets off the open serial port, decode them and dispatch readings."""

from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional

from datastore.readings_store import ReadingStore
from models.records import Reading
from services.broadcaster import Broadcaster
from services.decoder import Rejected, decode

logger = logging.getLogger(__name__)

LINE_TERMINATOR = b"\r\n"
# Unterminated input past this size is dropped.
MAX_LINE_BYTES = 256


def read_lines(connection: Any, running: threading.Event) -> Iterator[str]:
    """Yield CRLF-terminated lines until ``running`` is cleared.

    ``connection.readline`` returns whatever arrived before the read timeout,
    so fragments are buffered until the terminator shows up, up to
    ``MAX_LINE_BYTES``. Serial errors
    propagate to the caller.
    """
    buffer = b""
    while running.is_set():
        chunk = connection.readline()
        if not chunk:
            continue
        buffer += chunk
        if not buffer.endswith(b"\n"):
            if len(buffer) > MAX_LINE_BYTES:
                logger.debug("Dropping unterminated serial data", extra={"reason": f"{len(buffer)} bytes"})
                buffer = b""
            continue
        line, buffer = buffer, b""
        yield line.rstrip(LINE_TERMINATOR).decode("ascii", errors="replace")


class IngestionLoop:
    """Decode lines, fan out readings and persist them in arrival order."""

    def __init__(
        self,
        broadcaster: Broadcaster,
        store: ReadingStore,
        prune_probability: float = 0.01,
        retention: timedelta = timedelta(hours=24),
        random_source: Callable[[], float] = random.random,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.broadcaster = broadcaster
        self.store = store
        self.prune_probability = prune_probability
        self.retention = retention
        self._random = random_source
        self._clock = clock
        # One worker keeps inserts in the order the packets arrived.
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="persist")

    def run(self, connection: Any, running: threading.Event) -> None:
        for line in read_lines(connection, running):
            self.handle_line(line)

    def handle_line(self, line: str) -> Optional[Reading]:
        result = decode(line)
        if isinstance(result, Rejected):
            logger.debug("Discarding malformed packet", extra={"reason": result.reason})
            return None

        self.broadcaster.publish(result)
        self.submit_persist(result)
        return result

    def submit_persist(self, reading: Reading) -> Future[None]:
        return self.executor.submit(self._persist, reading)

    def prune(self) -> int:
        cutoff = self._clock() - self.retention
        deleted = self.store.delete_older_than(cutoff)
        if deleted:
            logger.info("Pruned old readings", extra={"deleted": deleted})
        return deleted

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def _persist(self, reading: Reading) -> None:
        try:
            reading_id = self.store.insert(reading)
        except Exception:
            logger.exception("Failed to persist reading", extra={"checksum": reading.checksum})
            return

        logger.debug("Persisted reading", extra={"reading_id": reading_id})
        if self._random() >= self.prune_probability:
            return
        try:
            self.prune()
        except Exception:
            logger.exception("Failed to prune old readings")
