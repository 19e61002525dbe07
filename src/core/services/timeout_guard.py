"""Deadline race for backend calls.

The backend call and a deadline timer race; the first to settle decides the
attempt. When the deadline wins, the backend call is either left running with
its outcome discarded (default: the bridge has no cancellation, and commands
may already have side effects) or cancelled (`cancel_on_timeout`).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

from core.domain.errors import ErrorCode, IpcCallError

logger = logging.getLogger(__name__)


class TimeoutGuard:
    """Runs awaitables under a deadline and tracks abandoned ones."""

    def __init__(self, *, cancel_on_timeout: bool = False) -> None:
        self.cancel_on_timeout = cancel_on_timeout
        self._abandoned: set[asyncio.Future[Any]] = set()

    @property
    def abandoned_count(self) -> int:
        """Backend calls that lost a race and are still running."""

        return len(self._abandoned)

    async def run(
        self,
        call: Awaitable[Any],
        *,
        timeout_ms: int,
        command: str,
        cancel_on_timeout: bool | None = None,
    ) -> Any:
        task = asyncio.ensure_future(call)
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            # Caller went away: the in-flight call is left alone, like a timeout.
            self._abandon(task, command)
            raise

        if task in done:
            return task.result()

        cancel = self.cancel_on_timeout if cancel_on_timeout is None else cancel_on_timeout
        if cancel:
            task.cancel()
            logger.debug("Cancelled '%s' after %sms deadline", command, timeout_ms)
        else:
            self._abandon(task, command)

        raise IpcCallError.of(
            ErrorCode.TIMEOUT,
            "Timeout",
            {"command": command, "timeout_ms": timeout_ms},
            command=command,
        )

    async def drain(self) -> None:
        """Wait for every abandoned call to settle (shutdown, tests)."""

        if self._abandoned:
            await asyncio.gather(*list(self._abandoned), return_exceptions=True)

    def _abandon(self, task: asyncio.Future[Any], command: str) -> None:
        self._abandoned.add(task)

        def _discard(fut: asyncio.Future[Any]) -> None:
            self._abandoned.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.debug("Discarded late failure of '%s': %r", command, exc)
            else:
                logger.debug("Discarded late result of '%s'", command)

        task.add_done_callback(_discard)
