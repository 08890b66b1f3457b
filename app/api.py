"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse

from app.schemas import StationStatus, StoredReading
from services.station import StationService, build_default_station
from services.subscriptions import SSE_HEADERS

router = APIRouter()


def get_station() -> StationService:
    return build_default_station()


@router.get(
    "/serial",
    summary="Stream live readings as Server-Sent Events.",
    response_class=StreamingResponse,
)
async def stream_readings(
    request: Request,
    station: StationService = Depends(get_station),
) -> StreamingResponse:
    session = station.open_session(is_disconnected=request.is_disconnected)
    return StreamingResponse(
        session.events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/readings",
    response_model=list[StoredReading],
    summary="Most recent stored readings, newest first.",
)
async def list_readings(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of readings."),
    station: StationService = Depends(get_station),
) -> list[StoredReading]:
    return station.store.list_recent(limit)


@router.get(
    "/status",
    response_model=StationStatus,
    summary="Serial connection state and live subscriber count.",
)
async def station_status(
    station: StationService = Depends(get_station),
) -> StationStatus:
    return station.status()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /serial for the live stream and /readings for history."}
