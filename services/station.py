"""Wiring of the ingestion pipeline around one serial connection."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional

from app.schemas import StationStatus
from datastore.readings_store import ReadingStore, build_default_store
from services.broadcaster import Broadcaster
from services.connection import ConnectionSupervisor
from services.ingestion import IngestionLoop
from services.subscriptions import SubscriptionSession
from settings import get_settings


class StationService:
    """Owns the supervisor, broadcaster, ingestion loop and store for one process."""

    def __init__(
        self,
        store: ReadingStore,
        broadcaster: Broadcaster,
        ingestion: IngestionLoop,
        supervisor: ConnectionSupervisor,
        keepalive_seconds: float = 15.0,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.ingestion = ingestion
        self.supervisor = supervisor
        self.keepalive_seconds = keepalive_seconds

    def start(self) -> None:
        self.supervisor.start()

    def shutdown(self) -> None:
        """Close the port first so no new readings arrive, then drain pending writes."""
        self.supervisor.shutdown()
        self.ingestion.shutdown(wait=True)

    def status(self) -> StationStatus:
        return StationStatus(
            connection=self.supervisor.snapshot(),
            subscribers=self.broadcaster.subscriber_count,
        )

    def open_session(
        self,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> SubscriptionSession:
        return SubscriptionSession(
            broadcaster=self.broadcaster,
            status=self.supervisor.snapshot,
            keepalive_seconds=self.keepalive_seconds,
            is_disconnected=is_disconnected,
        )


def build_station(
    store: ReadingStore,
    port_override: Optional[str] = None,
    baud_rate: Optional[int] = None,
    **supervisor_options: Any,
) -> StationService:
    settings = get_settings()
    broadcaster = Broadcaster()
    ingestion = IngestionLoop(
        broadcaster=broadcaster,
        store=store,
        prune_probability=settings.prune_probability,
        retention=timedelta(hours=settings.retention_hours),
    )
    supervisor_options.setdefault("base_delay", settings.retry_base_seconds)
    supervisor_options.setdefault("max_delay", settings.retry_max_seconds)
    supervisor = ConnectionSupervisor(
        session_runner=ingestion.run,
        port_override=port_override,
        baud_rate=baud_rate,
        **supervisor_options,
    )
    return StationService(
        store=store,
        broadcaster=broadcaster,
        ingestion=ingestion,
        supervisor=supervisor,
        keepalive_seconds=settings.keepalive_seconds,
    )


@lru_cache
def build_default_station() -> StationService:
    """Factory that wires the station from environment settings."""
    settings = get_settings()
    return build_station(
        store=build_default_store(),
        port_override=settings.serial_port,
        baud_rate=settings.serial_baud,
    )
