"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import httpx
import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import HttpBridgeBackend
from core.config import GatewaySettings, get_user_env_file, write_user_env_vars
from core.services.schema_validator import build_default_registry

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_bridge(settings: GatewaySettings) -> tuple[bool, str]:
    try:
        async with HttpBridgeBackend(settings) as backend:
            status = await backend.ping()
        return True, f"HTTP {status}"
    except httpx.HTTPError as exc:
        return False, str(exc) or type(exc).__name__


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = GatewaySettings()

    table = Table(title="IPC Gateway Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Bridge URL", "OK", settings.bridge_url)
    table.add_row("Default timeout", "OK", f"{settings.default_timeout_ms} ms")
    table.add_row(
        "Retry backoff",
        "OK",
        f"{settings.retry_backoff}, base {settings.retry_base_delay_ms} ms",
    )
    table.add_row(
        "Timeout policy",
        "OK",
        "cancel losing call" if settings.cancel_on_timeout else "discard losing call (keeps running)",
    )
    if settings.telemetry_enabled:
        table.add_row(
            "Telemetry",
            "OK",
            f"window {settings.telemetry_dedupe_window_ms} ms, cap {settings.telemetry_max_events_per_session}",
        )
    else:
        table.add_row("Telemetry", "OFF", "Failures are not sent to the audit log")
    if settings.debug_ipc:
        table.add_row("Debug IPC", "WARN", "Params and results are logged")

    table.add_row("Contracts", "OK", f"{len(build_default_registry())} registered")

    # Connectivity (best-effort)
    ok_bridge, detail_bridge = asyncio.run(_check_bridge(settings))
    table.add_row("Bridge connectivity", "OK" if ok_bridge else "FAIL", detail_bridge)

    _console.print(table)

    if not ok_bridge:
        _console.print(
            "\n[yellow]Note:[/yellow] Start the backend bridge or run `ipc-gateway doctor configure`."
        )


@app.command(name="configure")
def configure() -> None:
    """Interactive bridge setup (stores config in the user config .env)."""

    settings = GatewaySettings()

    bridge_url = typer.prompt("Bridge URL", default=settings.bridge_url, show_default=True).strip()
    timeout_ms = typer.prompt(
        "Default timeout (ms)",
        default=settings.default_timeout_ms,
        show_default=True,
        type=int,
    )
    actor = typer.prompt("Operator name", default=settings.actor or "", show_default=False).strip()

    if not bridge_url.startswith(("http://", "https://")):
        raise typer.BadParameter("bridge URL must start with http:// or https://")
    if timeout_ms <= 0:
        raise typer.BadParameter("timeout must be positive")

    values = {
        "IPC_GATEWAY_BRIDGE_URL": bridge_url,
        "IPC_GATEWAY_DEFAULT_TIMEOUT_MS": str(timeout_ms),
    }
    if actor:
        values["IPC_GATEWAY_ACTOR"] = actor

    env_path = write_user_env_vars(values, env_path=get_user_env_file())
    _console.print(f"[green]Saved gateway config to:[/green] {env_path}")
