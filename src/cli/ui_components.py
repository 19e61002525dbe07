"""UI components for the CLI (Rich).

Why separate components:
- Keeps command logic apart from visual details.
- The error presenter is the operator-facing sink of the gateway.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Callable, get_origin

from rich.console import Console, Group
from rich.panel import Panel
from rich.prompt import Confirm
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from core.domain.errors import CanonicalError
from core.services.schema_validator import ContractRegistry

logger = logging.getLogger(__name__)

CopyText = Callable[[str], None]
AskCopy = Callable[[], bool]


def osc52_copy(console: Console) -> CopyText:
    """Clipboard writer using the OSC 52 terminal escape (works over SSH)."""

    def copy(text: str) -> None:
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        console.file.write(f"\x1b]52;c;{encoded}\a")
        console.file.flush()

    return copy


def build_error_panel(error: CanonicalError) -> Panel:
    """Panel showing code, message and (if present) details."""

    body: list[Text | Syntax] = [Text(error.message or "(no message)")]
    if error.details is not None:
        details = json.dumps(error.details, ensure_ascii=False, indent=2, default=str)
        body.append(Text(""))
        body.append(Syntax(details, "json", word_wrap=True, background_color="default"))
    return Panel(
        Group(*body),
        title=Text(f"Error: {error.code}", style="bold red"),
        border_style="red",
    )


class RichErrorPresenter:
    """`ErrorPresenter` rendering to a Rich console.

    After the panel, interactive consoles are asked whether to copy the full
    error (pretty JSON) to the clipboard. Inside an event loop the question
    runs in a worker thread: the gateway raises to its caller right away and
    `drain()` waits for the answer.
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        copy_text: CopyText | None = None,
        ask_copy: AskCopy | None = None,
    ) -> None:
        self.console = console or Console(stderr=True)
        self._copy_text = copy_text or osc52_copy(self.console)
        self._ask_copy = ask_copy
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_prompts(self) -> int:
        return len(self._pending)

    def present(self, error: CanonicalError) -> None:
        self.console.print(build_error_panel(error))
        if self._ask_copy is None and not self.console.is_interactive:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if self._wants_copy():
                self._copy(error)
            return

        task = loop.create_task(self._offer_copy(error))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def notice(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    async def drain(self) -> None:
        """Wait for open copy prompts (before the CLI exits)."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _offer_copy(self, error: CanonicalError) -> None:
        try:
            if await asyncio.to_thread(self._wants_copy):
                self._copy(error)
        except Exception as exc:
            logger.warning("Copy prompt failed: %r", exc)

    def _copy(self, error: CanonicalError) -> None:
        self._copy_text(error.to_text())
        self.console.print("[dim]Error copied to clipboard.[/dim]")

    def _wants_copy(self) -> bool:
        if self._ask_copy is not None:
            return self._ask_copy()
        return Confirm.ask("Copy error details", console=self.console, default=False)


def build_contracts_table(registry: ContractRegistry) -> Table:
    """Table of registered response contracts."""

    table = Table(title="IPC Contracts")
    table.add_column("Command", style="cyan", no_wrap=True)
    table.add_column("Schema", style="white")
    table.add_column("Version", style="magenta")
    for descriptor in registry:
        schema = descriptor.schema
        plain = isinstance(schema, type) and get_origin(schema) is None
        name = schema.__name__ if plain else str(schema).replace("core.domain.contracts.", "")
        table.add_row(descriptor.command, name, descriptor.version)
    return table
