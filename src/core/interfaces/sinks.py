"""Side-channel sinks: audit telemetry and operator presentation.

Both are best-effort. The gateway never lets their failures reach the caller.
"""

from __future__ import annotations

from typing import Any, Awaitable, Protocol, runtime_checkable

from core.domain.errors import CanonicalError
from core.domain.models import TelemetryReport


@runtime_checkable
class TelemetrySink(Protocol):
    """Receives deduplicated telemetry reports."""

    async def send(self, report: TelemetryReport) -> None: ...

    async def latest_version_id(self) -> str | None:
        """Best-effort lookup used when the context has no version id."""

        ...


@runtime_checkable
class ErrorPresenter(Protocol):
    """Renders a terminal failure to the operator.

    `present` may be sync or async; its return value is ignored.
    """

    def present(self, error: CanonicalError) -> Awaitable[Any] | None: ...

    def notice(self, message: str) -> None:
        """Short, non-blocking warning (toast-like)."""

        ...
