"""Server-Sent-Events sessions bridging the broadcaster to HTTP clients."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from app.schemas import ConnectionSnapshot, ReadingPayload
from models.records import Reading
from services.broadcaster import Broadcaster, Subscription

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keepalive\n\n"
MAX_PENDING_READINGS = 100

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


class SubscriptionSession:
    """One client's stream: a status event, then readings and keep-alives.

    The broadcaster calls :meth:`deliver` from the ingestion thread; the
    reading is handed to this session's event loop and written by
    :meth:`events`. A client that falls more than ``max_pending`` readings
    behind misses the overflow. Keep-alives go out on a fixed interval
    whether or not readings are flowing. Registration and the keep-alive
    deadline both live inside :meth:`events`, so any way the generator ends
    releases both.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        status: Callable[[], ConnectionSnapshot],
        keepalive_seconds: float = 15.0,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        max_pending: int = MAX_PENDING_READINGS,
    ) -> None:
        self.broadcaster = broadcaster
        self._status = status
        self.keepalive_seconds = keepalive_seconds
        self._is_disconnected = is_disconnected
        self.max_pending = max_pending
        self._queue: Optional[asyncio.Queue[Reading]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.subscription: Optional[Subscription] = None

    def deliver(self, reading: Reading) -> None:
        """Thread-safe hand-off; raises once the session's loop is gone."""
        if self._loop is None or self._queue is None:
            raise RuntimeError("Subscription session is not streaming.")
        self._loop.call_soon_threadsafe(self._enqueue, self._queue, reading)

    def _enqueue(self, queue: asyncio.Queue[Reading], reading: Reading) -> None:
        try:
            queue.put_nowait(reading)
        except asyncio.QueueFull:
            logger.debug(
                "Dropping reading for slow stream client",
                extra={"checksum": reading.checksum},
            )

    async def events(self) -> AsyncIterator[str]:
        loop = self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.max_pending)
        queue = self._queue
        self.subscription = self.broadcaster.register(self.deliver)
        try:
            snapshot = self._status()
            yield format_event("status", snapshot.model_dump_json())

            next_keepalive = loop.time() + self.keepalive_seconds
            while not await self._client_gone():
                remaining = next_keepalive - loop.time()
                if remaining <= 0:
                    next_keepalive = loop.time() + self.keepalive_seconds
                    yield KEEPALIVE_FRAME
                    continue
                try:
                    reading = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    next_keepalive = loop.time() + self.keepalive_seconds
                    yield KEEPALIVE_FRAME
                    continue
                payload = ReadingPayload.from_reading(reading)
                yield format_event("weather", payload.model_dump_json())
        finally:
            self.broadcaster.unregister(self.subscription)
            self._loop = None
            logger.debug(
                "Stream session closed",
                extra={"subscribers": self.broadcaster.subscriber_count},
            )

    async def _client_gone(self) -> bool:
        if self._is_disconnected is None:
            return False
        return await self._is_disconnected()
