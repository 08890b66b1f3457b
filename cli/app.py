from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from app.schemas import ReadingPayload
from cli.client import ApiClient
from cli.config import DEFAULT_READINGS_LIMIT, CLIConfig, load_config
from cli.render import render_reading, render_readings, render_status
from services.decoder import Rejected, decode


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for inspecting the weather station ingestion service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, http_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    limit: int = typer.Option(
        DEFAULT_READINGS_LIMIT,
        "--limit",
        "-n",
        min=1,
        max=500,
        help="Number of most recent readings to show.",
    ),
) -> None:
    """Show the most recent stored readings."""
    state = _get_state(ctx)
    render_readings(state.client.get_readings(limit))


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the serial connection state and subscriber count."""
    state = _get_state(ctx)
    render_status(state.client.get_status())


@app.command("decode")
def decode_command(
    packet: str = typer.Argument(..., help="Raw packet, e.g. c090s002g007t074r010p010h46b09960*30"),
) -> None:
    """Decode a packet locally without contacting the service."""
    result = decode(packet)
    if isinstance(result, Rejected):
        typer.secho(f"Rejected: {result.reason}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    render_reading(ReadingPayload.from_reading(result).model_dump(mode="json"))
