from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.readings_calls: List[int] = []
        self.readings_payload: List[Dict[str, Any]] = [
            {
                "id": 7,
                "recorded_at": "2026-02-18T12:00:00Z",
                "captured_at": "2026-02-18T12:00:00Z",
                "wind_direction": 90,
                "wind_speed_mph": 2,
                "wind_speed_ms": 0.89,
                "wind_gust_mph": 7,
                "wind_gust_ms": 3.13,
                "temp_f": 74,
                "temp_c": 23.3,
                "rain_1h_in": 0.1,
                "rain_1h_mm": 2.5,
                "rain_24h_in": 0.1,
                "rain_24h_mm": 2.5,
                "humidity": 46,
                "pressure_mbar": 996.0,
                "pressure_inhg": 29.41,
                "checksum": "30",
                "rainfall_valid": True,
            }
        ]
        self.status_payload: Dict[str, Any] = {
            "connection": {
                "status": "error",
                "port_open": False,
                "port": "/dev/cu.usbmodem1101",
                "baud_rate": 9600,
                "retry_delay": 6.75,
                "consecutive_failures": 3,
            },
            "subscribers": 2,
        }
        self.closed = False

    def get_readings(self, limit: int) -> List[Dict[str, Any]]:
        self.readings_calls.append(limit)
        return self.readings_payload

    def get_status(self) -> Dict[str, Any]:
        return self.status_payload

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_readings_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["readings", "--limit", "3"])

    assert result.exit_code == 0
    assert stub.readings_calls == [3]
    assert "id: 7" in result.stdout
    assert "wind_speed: 2 mph / 0.89 m/s" in result.stdout
    assert "pressure: 996.0 mbar / 29.41 inHg" in result.stdout
    assert stub.closed is True


def test_readings_command_with_no_rows(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.readings_payload = []
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["readings"])

    assert result.exit_code == 0
    assert stub.readings_calls == [10]
    assert "No readings stored." in result.stdout


def test_status_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["--base-url", "http://station.local:8000/", "status"])

    assert result.exit_code == 0
    assert stub.config.base_url == "http://station.local:8000"
    assert "status: error" in result.stdout
    assert "consecutive_failures: 3" in result.stdout
    assert "subscribers: 2" in result.stdout


def test_decode_command_prints_reading(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))

    result = runner.invoke(app, ["decode", "[RAW] c090s002g007t074r010p010h46b09960*30"])

    assert result.exit_code == 0
    assert "temperature: 74 F / 23.3 C" in result.stdout
    assert "rain_1h: 0.1 in / 2.5 mm" in result.stdout
    assert "checksum: 30" in result.stdout


def test_decode_command_flags_rain_gauge_fault(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))

    result = runner.invoke(app, ["decode", "c000s000g000t075r453p453h45b09830*3A"])

    assert result.exit_code == 0
    assert "(rain gauge fault)" in result.stdout


def test_decode_command_rejects_malformed_packet(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))

    result = runner.invoke(app, ["decode", "bad-data"])

    assert result.exit_code == 1


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://example.test/")
    monkeypatch.setenv("CLI_HTTP_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://example.test"
    assert config.http_timeout == 10.0
