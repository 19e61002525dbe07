"""`ipc-gateway` command line.

The CLI is a thin shell: it builds the gateway from settings, runs one call
and prints the result. Failures are shown by the gateway's presenter and turn
into a non-zero exit code.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import typer
from pydantic_core import to_jsonable_python
from rich.console import Console

from adapters.http_client import HttpBridgeBackend
from adapters.telemetry_sink import BackendTelemetrySink
from cli import doctor
from cli.ui_components import RichErrorPresenter, build_contracts_table
from core.config import GatewaySettings
from core.domain.errors import IpcCallError
from core.interfaces.backend import Backend
from core.logging import configure_logging
from core.services.gateway import IpcClient
from core.services.schema_validator import ContractRegistry, build_default_registry
from core.services.stale_revision import StaleRevisionHandler
from core.services.telemetry import TelemetryReporter

app = typer.Typer(no_args_is_help=True, help="Resilient, contract-checked calls to the native backend.")
app.add_typer(doctor.app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)


def build_client(
    backend: Backend,
    *,
    settings: GatewaySettings,
    registry: ContractRegistry | None = None,
    presenter: RichErrorPresenter | None = None,
) -> IpcClient:
    """Wire a fully featured gateway around `backend`."""

    presenter = presenter or RichErrorPresenter(_err_console)
    return IpcClient(
        backend,
        settings=settings,
        registry=registry if registry is not None else build_default_registry(),
        telemetry=TelemetryReporter.from_settings(settings, BackendTelemetrySink(backend)),
        presenter=presenter,
        stale_revisions=StaleRevisionHandler(
            notify=presenter.notice,
            cooldown_ms=settings.stale_rev_toast_cooldown_ms,
        ),
    )


def _parse_params(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"params must be JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise typer.BadParameter("params must be a JSON object")
    return parsed


async def _call(
    settings: GatewaySettings,
    command: str,
    params: dict[str, Any],
    *,
    retry: int,
    timeout_ms: int,
    show_error: bool,
    validate: bool,
) -> Any:
    presenter = RichErrorPresenter(_err_console)
    async with HttpBridgeBackend(settings) as backend:
        client = build_client(
            backend,
            settings=settings,
            registry=build_default_registry() if validate else ContractRegistry(),
            presenter=presenter,
        )
        try:
            return await client.call(
                command,
                params,
                client.options(retry=retry, timeout_ms=timeout_ms, show_error=show_error),
            )
        finally:
            await client.drain()
            await presenter.drain()


@app.command()
def call(
    command: str = typer.Argument(..., help="Backend command name."),
    params: str = typer.Option("{}", "--params", "-p", help="Named arguments as a JSON object."),
    retry: int = typer.Option(0, "--retry", "-r", min=0, help="Additional attempts on transient failures."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout", "-t", min=1, help="Per-attempt deadline (ms)."),
    show_error: bool = typer.Option(True, "--show-error/--no-show-error", help="Render failures and audit them."),
    validate: bool = typer.Option(True, "--contract/--no-contract", help="Enforce the registered contract."),
    debug: bool = typer.Option(False, "--debug", help="Log every call in detail."),
) -> None:
    """Invoke COMMAND through the gateway and print its JSON result."""

    overrides: dict[str, Any] = {"debug_ipc": True} if debug else {}
    settings = GatewaySettings(**overrides)
    configure_logging(settings.log_level, debug_mode=settings.debug_ipc)

    named = _parse_params(params)
    try:
        result = asyncio.run(
            _call(
                settings,
                command,
                named,
                retry=retry,
                timeout_ms=timeout_ms or settings.default_timeout_ms,
                show_error=show_error,
                validate=validate,
            )
        )
    except IpcCallError as exc:
        if not show_error:
            _err_console.print(f"[red]{exc.code}[/red]: {exc.message}")
        raise typer.Exit(code=1) from exc

    _console.print_json(data=to_jsonable_python(result))


@app.command()
def contracts() -> None:
    """List the response contracts enforced by the gateway."""

    _console.print(build_contracts_table(build_default_registry()))


def run() -> None:
    app()


if __name__ == "__main__":
    run()
