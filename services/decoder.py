"""Decoder for the fixed-width SEN0186 weather packet.

A packet looks like ``c090s002g007t074r010p010h46b09960*30``: a ``c`` marker
followed by single-letter field tags, each field at a fixed offset, and a
checksum after the ``*`` terminator. Relay firmware may echo the packet with a
``[RAW]`` debug prefix, which is stripped before validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from models.records import Reading

DEBUG_PREFIX = "[RAW]"
PACKET_MARKER = "c"
CHECKSUM_TERMINATOR = "*"
MIN_PACKET_LENGTH = 36

# The rain gauge reports this value on both rainfall fields when it is faulty.
RAINFALL_FAULT_SENTINEL = 453

# name -> (offset, length) into the trimmed packet
FIELD_LAYOUT = {
    "wind_direction": (1, 3),
    "wind_speed": (5, 3),
    "wind_gust": (9, 3),
    "temperature": (13, 3),
    "rain_1h": (17, 3),
    "rain_24h": (21, 3),
    "humidity": (25, 2),
    "pressure": (28, 5),
}

MPH_TO_MS = Decimal("0.44704")
INCHES_PER_HUNDREDTH = Decimal("0.01")
MM_PER_INCH = Decimal("25.4")
INHG_PER_MBAR = Decimal("0.02953")

_TWO_PLACES = Decimal("0.01")
_ONE_PLACE = Decimal("0.1")


@dataclass(frozen=True, slots=True)
class Rejected:
    """A line that is not a well-formed packet."""

    raw: str
    reason: str


DecodeResult = Union[Reading, Rejected]


def quantize(value: Decimal, places: Decimal) -> float:
    """Round half away from zero and return a float."""
    return float(value.quantize(places, rounding=ROUND_HALF_UP))


def mph_to_ms(mph: int) -> float:
    return quantize(Decimal(mph) * MPH_TO_MS, _TWO_PLACES)


def fahrenheit_to_celsius(temp_f: int) -> float:
    return quantize((Decimal(temp_f) - 32) * 5 / 9, _ONE_PLACE)


def rainfall_inches(raw: int) -> float:
    return quantize(Decimal(raw) * INCHES_PER_HUNDREDTH, _TWO_PLACES)


def inches_to_mm(inches: float) -> float:
    return quantize(Decimal(str(inches)) * MM_PER_INCH, _ONE_PLACE)


def pressure_mbar(raw: int) -> float:
    return quantize(Decimal(raw) / 10, _ONE_PLACE)


def mbar_to_inhg(mbar: float) -> float:
    return quantize(Decimal(str(mbar)) * INHG_PER_MBAR, _TWO_PLACES)


def normalize(raw: str) -> str:
    data = raw.strip()
    if data.startswith(DEBUG_PREFIX):
        data = data[len(DEBUG_PREFIX):].strip()
    return data


def _extract_fields(data: str) -> Optional[dict[str, int]]:
    fields: dict[str, int] = {}
    for name, (offset, length) in FIELD_LAYOUT.items():
        chunk = data[offset:offset + length]
        if len(chunk) != length or not (chunk.isascii() and chunk.isdigit()):
            return None
        fields[name] = int(chunk, 10)
    return fields


def decode(raw: str, captured_at: Optional[datetime] = None) -> DecodeResult:
    """Decode one serial line into a :class:`Reading` or a :class:`Rejected`."""
    data = normalize(raw)

    if len(data) < MIN_PACKET_LENGTH:
        return Rejected(raw=data, reason="too short")
    if not data.startswith(PACKET_MARKER):
        return Rejected(raw=data, reason="missing prefix")
    if data.count(CHECKSUM_TERMINATOR) != 1:
        return Rejected(raw=data, reason="checksum terminator")

    fields = _extract_fields(data)
    if fields is None:
        return Rejected(raw=data, reason="non-numeric field")

    checksum = data.split(CHECKSUM_TERMINATOR, 1)[1]

    rain_1h_in = rainfall_inches(fields["rain_1h"])
    rain_24h_in = rainfall_inches(fields["rain_24h"])
    mbar = pressure_mbar(fields["pressure"])

    return Reading(
        wind_direction=fields["wind_direction"],
        wind_speed_mph=fields["wind_speed"],
        wind_speed_ms=mph_to_ms(fields["wind_speed"]),
        wind_gust_mph=fields["wind_gust"],
        wind_gust_ms=mph_to_ms(fields["wind_gust"]),
        temp_f=fields["temperature"],
        temp_c=fahrenheit_to_celsius(fields["temperature"]),
        rain_1h_raw=fields["rain_1h"],
        rain_1h_in=rain_1h_in,
        rain_1h_mm=inches_to_mm(rain_1h_in),
        rain_24h_raw=fields["rain_24h"],
        rain_24h_in=rain_24h_in,
        rain_24h_mm=inches_to_mm(rain_24h_in),
        humidity=fields["humidity"],
        pressure_raw=fields["pressure"],
        pressure_mbar=mbar,
        pressure_inhg=mbar_to_inhg(mbar),
        raw_string=data,
        checksum=checksum,
        captured_at=captured_at or datetime.now(timezone.utc),
        rainfall_valid=RAINFALL_FAULT_SENTINEL not in (fields["rain_1h"], fields["rain_24h"]),
    )
