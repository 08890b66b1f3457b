from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_SERIAL_PORT_ENV = "SERIAL_PORT"
_SERIAL_BAUD_ENV = "SERIAL_BAUD"
_RETRY_BASE_ENV = "SERIAL_RETRY_BASE_SECONDS"
_RETRY_MAX_ENV = "SERIAL_RETRY_MAX_SECONDS"
_TABLE_NAME_ENV = "READINGS_TABLE_NAME"
_TABLE_PATH_ENV = "READINGS_PERSISTENCE_PATH"
_RETENTION_HOURS_ENV = "RETENTION_HOURS"
_PRUNE_PROBABILITY_ENV = "PRUNE_PROBABILITY"
_KEEPALIVE_ENV = "STREAM_KEEPALIVE_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    serial_port: Optional[str]
    serial_baud: int
    retry_base_seconds: float
    retry_max_seconds: float
    table_name: str
    table_persistence_path: Optional[str]
    retention_hours: int
    prune_probability: float
    keepalive_seconds: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_probability(default: float) -> float:
    value = os.getenv(_PRUNE_PROBABILITY_ENV)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if 0.0 <= parsed <= 1.0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        serial_port=_read_optional_env(_SERIAL_PORT_ENV, None),
        serial_baud=_read_positive_int(_SERIAL_BAUD_ENV, 9600),
        retry_base_seconds=_read_positive_float(_RETRY_BASE_ENV, 3.0),
        retry_max_seconds=_read_positive_float(_RETRY_MAX_ENV, 30.0),
        table_name=_read_str_env(_TABLE_NAME_ENV, "weather_readings"),
        table_persistence_path=_read_optional_env(_TABLE_PATH_ENV, "./tmp/readings.jsonl"),
        retention_hours=_read_positive_int(_RETENTION_HOURS_ENV, 24),
        prune_probability=_read_probability(0.01),
        keepalive_seconds=_read_positive_float(_KEEPALIVE_ENV, 15.0),
        log_level=_read_log_level("INFO"),
    )
