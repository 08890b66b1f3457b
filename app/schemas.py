"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.records import Reading


class ConnectionStatus(str, Enum):
    """Lifecycle states of the serial connection."""

    closed = "closed"
    opening = "opening"
    open = "open"
    error = "error"


class ReadingPayload(BaseModel):
    """A decoded reading as sent to stream subscribers."""

    wind_direction: int = Field(..., ge=0, description="Degrees, 0-360.")
    wind_speed_mph: int = Field(..., ge=0, description="1-minute average.")
    wind_speed_ms: float
    wind_gust_mph: int = Field(..., ge=0, description="5-minute maximum.")
    wind_gust_ms: float
    temp_f: int
    temp_c: float
    rain_1h_raw: int = Field(..., ge=0, description="Hundredths of an inch.")
    rain_1h_in: float
    rain_1h_mm: float
    rain_24h_raw: int = Field(..., ge=0, description="Hundredths of an inch.")
    rain_24h_in: float
    rain_24h_mm: float
    humidity: int = Field(..., ge=0)
    pressure_raw: int = Field(..., ge=0, description="Tenths of a millibar.")
    pressure_mbar: float
    pressure_inhg: float
    raw_string: str
    checksum: str
    captured_at: datetime
    rainfall_valid: bool = True

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingPayload":
        return cls(**reading.to_dict())


class StoredReading(ReadingPayload):
    """A reading as persisted, with store-assigned identity and time."""

    id: int = Field(..., ge=1)
    recorded_at: datetime


class ConnectionSnapshot(BaseModel):
    """Point-in-time view of the serial connection, sent as the stream's first event."""

    status: ConnectionStatus
    port_open: bool
    port: Optional[str] = None
    baud_rate: int
    retry_delay: float = Field(..., ge=0, description="Seconds until the next retry after a failure.")
    consecutive_failures: int = Field(default=0, ge=0)


class StationStatus(BaseModel):
    """Response payload for the status endpoint."""

    connection: ConnectionSnapshot
    subscribers: int = Field(..., ge=0)
