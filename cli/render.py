from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def reading_pairs(payload: Dict[str, Any]) -> list[tuple[str, Any]]:
    def dual(first: str, first_unit: str, second: str, second_unit: str) -> str:
        return f"{payload.get(first)} {first_unit} / {payload.get(second)} {second_unit}"

    rain_note = "" if payload.get("rainfall_valid", True) else " (rain gauge fault)"
    return [
        ("wind_direction", f"{payload.get('wind_direction')} deg"),
        ("wind_speed", dual("wind_speed_mph", "mph", "wind_speed_ms", "m/s")),
        ("wind_gust", dual("wind_gust_mph", "mph", "wind_gust_ms", "m/s")),
        ("temperature", dual("temp_f", "F", "temp_c", "C")),
        ("rain_1h", dual("rain_1h_in", "in", "rain_1h_mm", "mm") + rain_note),
        ("rain_24h", dual("rain_24h_in", "in", "rain_24h_mm", "mm") + rain_note),
        ("humidity", f"{payload.get('humidity')} %"),
        ("pressure", dual("pressure_mbar", "mbar", "pressure_inhg", "inHg")),
        ("checksum", payload.get("checksum")),
    ]


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Reading")
    meta = [("captured_at", payload.get("captured_at"))]
    if "id" in payload:
        meta = [("id", payload.get("id")), ("recorded_at", payload.get("recorded_at"))]
    echo_key_values(meta)
    echo_key_values(reading_pairs(payload))


def render_readings(readings: Sequence[Dict[str, Any]]) -> None:
    if not readings:
        typer.echo("No readings stored.")
        return
    for index, payload in enumerate(readings):
        if index:
            typer.echo()
        render_reading(payload)


def render_status(payload: Dict[str, Any]) -> None:
    connection = payload.get("connection") or {}
    echo_heading("Serial Connection")
    echo_key_values(
        [
            ("status", connection.get("status")),
            ("port", connection.get("port") or "(unresolved)"),
            ("baud_rate", connection.get("baud_rate")),
            ("retry_delay", connection.get("retry_delay")),
            ("consecutive_failures", connection.get("consecutive_failures")),
        ]
    )
    typer.echo()
    echo_heading("Stream")
    echo_key_values([("subscribers", payload.get("subscribers"))])
