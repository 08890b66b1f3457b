"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True, slots=True)
class Reading:
    """One decoded weather packet.

    Every dual-unit pair is derived from the raw integer carried next to it,
    so the two units never disagree.
    """

    wind_direction: int
    wind_speed_mph: int
    wind_speed_ms: float
    wind_gust_mph: int
    wind_gust_ms: float
    temp_f: int
    temp_c: float
    rain_1h_raw: int
    rain_1h_in: float
    rain_1h_mm: float
    rain_24h_raw: int
    rain_24h_in: float
    rain_24h_mm: float
    humidity: int
    pressure_raw: int
    pressure_mbar: float
    pressure_inhg: float
    raw_string: str
    checksum: str
    captured_at: datetime
    rainfall_valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
