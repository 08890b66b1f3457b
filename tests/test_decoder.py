"""Unit tests for the weather packet decoder."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

import pytest

from models.records import Reading
from services.decoder import Rejected, decode

CAPTURED_AT = datetime(2026, 2, 18, 12, 0, tzinfo=timezone.utc)

SAMPLE_PACKETS = [
    "c090s002g007t074r010p010h46b09960*30",
    "c135s000g005t073r000p000h45b09960*3A",
    "c180s003g008t072r000p000h48b09955*2F",
    "c270s005g012t071r000p000h50b09948*1C",
    "c315s001g003t075r005p005h44b09972*22",
    "c000s000g000t086r000p000h53b10020*3E",
    "c045s111g222t005r999p999h99b12345*FF",
]


def _decode_ok(raw: str) -> Reading:
    result = decode(raw, captured_at=CAPTURED_AT)
    assert isinstance(result, Reading), result
    return result


def _round(value: Decimal, places: str) -> float:
    return float(value.quantize(Decimal(places), rounding=ROUND_HALF_UP))


def test_decode_reference_packet() -> None:
    reading = _decode_ok("c090s002g007t074r010p010h46b09960*30")

    assert reading.wind_direction == 90
    assert reading.wind_speed_mph == 2
    assert reading.wind_speed_ms == 0.89
    assert reading.wind_gust_mph == 7
    assert reading.wind_gust_ms == 3.13
    assert reading.temp_f == 74
    assert reading.temp_c == 23.3
    assert reading.rain_1h_in == 0.10
    assert reading.rain_1h_mm == 2.5
    assert reading.rain_24h_in == 0.10
    assert reading.rain_24h_mm == 2.5
    assert reading.humidity == 46
    assert reading.pressure_mbar == 996.0
    assert reading.pressure_inhg == 29.41
    assert reading.checksum == "30"
    assert reading.raw_string == "c090s002g007t074r010p010h46b09960*30"
    assert reading.captured_at == CAPTURED_AT
    assert reading.rainfall_valid is True


def test_debug_prefix_is_stripped() -> None:
    prefixed = _decode_ok("[RAW] c135s000g005t073r000p000h45b09960*3A")
    plain = _decode_ok("c135s000g005t073r000p000h45b09960*3A")

    assert prefixed == plain
    assert prefixed.raw_string == "c135s000g005t073r000p000h45b09960*3A"
    assert prefixed.wind_speed_mph == 0
    assert prefixed.wind_speed_ms == 0.0
    assert prefixed.checksum == "3A"


def test_surrounding_whitespace_and_crlf_are_trimmed() -> None:
    reading = _decode_ok("  c090s002g007t074r010p010h46b09960*30\r\n")

    assert reading.raw_string == "c090s002g007t074r010p010h46b09960*30"


@pytest.mark.parametrize(
    ("raw", "reason"),
    [
        ("bad-data", "too short"),
        ("", "too short"),
        ("c090s002g007t074r010p010h46b0996*3", "too short"),
        ("x090s002g007t074r010p010h46b09960*30", "missing prefix"),
        ("c090s002g007t074r010p010h46b09960#30", "checksum terminator"),
        ("c090s002g007t074r010p010h46b09960*3*", "checksum terminator"),
        ("c09as002g007t074r010p010h46b09960*30", "non-numeric field"),
        ("c090s002g007t-74r010p010h46b09960*30", "non-numeric field"),
    ],
)
def test_malformed_packets_are_rejected(raw: str, reason: str) -> None:
    result = decode(raw, captured_at=CAPTURED_AT)

    assert isinstance(result, Rejected)
    assert result.reason == reason


def test_bad_data_is_rejected() -> None:
    assert isinstance(decode("bad-data"), Rejected)


def test_decode_is_deterministic() -> None:
    for raw in SAMPLE_PACKETS:
        assert decode(raw, captured_at=CAPTURED_AT) == decode(raw, captured_at=CAPTURED_AT)


@pytest.mark.parametrize("raw", SAMPLE_PACKETS)
def test_derived_units_match_raw_integers(raw: str) -> None:
    reading = _decode_ok(raw)

    assert reading.wind_speed_ms == _round(Decimal(reading.wind_speed_mph) * Decimal("0.44704"), "0.01")
    assert reading.wind_gust_ms == _round(Decimal(reading.wind_gust_mph) * Decimal("0.44704"), "0.01")
    assert reading.temp_c == _round((Decimal(reading.temp_f) - 32) * 5 / 9, "0.1")
    assert reading.rain_1h_in == _round(Decimal(reading.rain_1h_raw) * Decimal("0.01"), "0.01")
    assert reading.rain_1h_mm == _round(Decimal(str(reading.rain_1h_in)) * Decimal("25.4"), "0.1")
    assert reading.rain_24h_in == _round(Decimal(reading.rain_24h_raw) * Decimal("0.01"), "0.01")
    assert reading.rain_24h_mm == _round(Decimal(str(reading.rain_24h_in)) * Decimal("25.4"), "0.1")
    assert reading.pressure_mbar == _round(Decimal(reading.pressure_raw) / 10, "0.1")
    assert reading.pressure_inhg == _round(Decimal(str(reading.pressure_mbar)) * Decimal("0.02953"), "0.01")


def test_rounding_is_half_away_from_zero() -> None:
    # 0 F is -17.777... C
    freezing = _decode_ok("c000s000g000t000r000p000h50b10000*00")
    assert freezing.temp_c == -17.8

    # 0.25 in * 25.4 = 6.35 mm rounds up to 6.4
    rain = _decode_ok("c000s000g000t050r025p025h50b10000*00")
    assert rain.rain_1h_mm == 6.4


def test_rain_gauge_fault_sentinel_flags_reading() -> None:
    reading = _decode_ok("c000s000g000t075r453p453h45b09830*3A")

    assert reading.rainfall_valid is False
    assert reading.rain_1h_raw == 453
    assert reading.rain_1h_in == 4.53


def test_reading_is_immutable() -> None:
    reading = _decode_ok(SAMPLE_PACKETS[0])

    with pytest.raises(AttributeError):
        reading.temp_f = 10  # type: ignore[misc]
