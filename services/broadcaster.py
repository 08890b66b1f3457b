"""In-process fan-out of decoded readings to live subscribers."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, Set

from models.records import Reading

logger = logging.getLogger(__name__)

Callback = Callable[[Reading], None]


class Subscription:
    """Registration handle; equality and hashing are by identity."""

    __slots__ = ("callback",)

    def __init__(self, callback: Callback) -> None:
        self.callback = callback


class Broadcaster:
    """Delivers each published reading to every registered callback.

    ``publish`` runs on the ingestion thread while ``register`` and
    ``unregister`` run on the HTTP event loop; all three take the same lock
    and ``publish`` iterates over a snapshot, so a delivery never observes a
    half-updated set.
    """

    def __init__(self) -> None:
        self._subscribers: Set[Subscription] = set()
        self._lock = Lock()

    def register(self, callback: Callback) -> Subscription:
        subscription = Subscription(callback)
        with self._lock:
            self._subscribers.add(subscription)
            count = len(self._subscribers)
        logger.debug("Subscriber registered", extra={"subscribers": count})
        return subscription

    def unregister(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)
            count = len(self._subscribers)
        logger.debug("Subscriber unregistered", extra={"subscribers": count})

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def is_registered(self, subscription: Subscription) -> bool:
        with self._lock:
            return subscription in self._subscribers

    def publish(self, reading: Reading) -> int:
        """Deliver ``reading`` and return how many subscribers accepted it."""
        with self._lock:
            snapshot = tuple(self._subscribers)

        delivered = 0
        for subscription in snapshot:
            try:
                subscription.callback(reading)
            except Exception as exc:
                logger.warning(
                    "Dropping subscriber after failed delivery",
                    extra={"reason": repr(exc), "checksum": reading.checksum},
                )
                self.unregister(subscription)
                continue
            delivered += 1
        return delivered
