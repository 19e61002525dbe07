"""Handling of `STALE_PLAN_REV` failures.

A stale plan revision is not an operator-facing error: another writer moved
the plan forward. The gateway shows a short notice, asks the embedder to
refresh (one refresh at a time, shared by concurrent failures) and skips the
error dialog and the audit report. The caller still receives the error.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Literal

from core.domain.errors import CanonicalError, ErrorCode
from core.services.telemetry import Clock, wall_clock_ms

logger = logging.getLogger(__name__)

DEFAULT_TOAST_COOLDOWN_MS = 4_000
MIN_TOAST_COOLDOWN_MS = 1_000
MAX_TOAST_COOLDOWN_MS = 60_000

STALE_NOTICE = "Plan version was updated elsewhere; switching to the latest plan..."


@dataclass(frozen=True)
class StaleRevisionDetails:
    version_id: str | None = None
    expected_plan_rev: int | float | None = None
    actual_plan_rev: int | float | None = None


@dataclass(frozen=True)
class StaleRevisionMeta:
    source: Literal["query", "mutation", "ipc", "manual"] | None = None
    command: str | None = None


@dataclass(frozen=True)
class StaleRevisionContext:
    details: StaleRevisionDetails
    meta: StaleRevisionMeta | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


RefreshHandler = Callable[[StaleRevisionContext], Awaitable[None]]
Notify = Callable[[str], None]


def sanitize_cooldown_ms(value: object) -> int:
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_TOAST_COOLDOWN_MS
    if not math.isfinite(parsed):
        return DEFAULT_TOAST_COOLDOWN_MS
    return min(MAX_TOAST_COOLDOWN_MS, max(MIN_TOAST_COOLDOWN_MS, round(parsed)))


def is_stale_revision_error(error: CanonicalError | None) -> bool:
    if error is None:
        return False
    return str(error.code or "").strip().upper() == ErrorCode.STALE_PLAN_REV


def _finite_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def read_stale_revision_details(error: CanonicalError) -> StaleRevisionDetails:
    raw = error.details
    if not isinstance(raw, dict):
        return StaleRevisionDetails()
    version_id = raw.get("version_id")
    return StaleRevisionDetails(
        version_id=version_id if isinstance(version_id, str) else None,
        expected_plan_rev=_finite_number(raw.get("expected_plan_rev")),
        actual_plan_rev=_finite_number(raw.get("actual_plan_rev")),
    )


class StaleRevisionHandler:
    def __init__(
        self,
        *,
        notify: Notify | None = None,
        refresh_handler: RefreshHandler | None = None,
        cooldown_ms: object = DEFAULT_TOAST_COOLDOWN_MS,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.notify = notify
        self.refresh_handler = refresh_handler
        self.cooldown_ms = sanitize_cooldown_ms(cooldown_ms)
        self.clock = clock
        self._last_notice_at: float | None = None
        self._in_flight: asyncio.Task[None] | None = None

    def configure_cooldown(self, value: object) -> int:
        self.cooldown_ms = sanitize_cooldown_ms(value)
        return self.cooldown_ms

    def register_refresh_handler(self, handler: RefreshHandler | None) -> None:
        self.refresh_handler = handler

    async def handle(self, error: CanonicalError, meta: StaleRevisionMeta | None = None) -> bool:
        """Return True when `error` was a stale revision and has been handled."""

        if not is_stale_revision_error(error):
            return False

        now = self.clock()
        if self._last_notice_at is None or now - self._last_notice_at > self.cooldown_ms:
            self._last_notice_at = now
            if self.notify is not None:
                try:
                    self.notify(STALE_NOTICE)
                except Exception as exc:
                    logger.warning("Stale revision notice failed: %r", exc)

        if self._in_flight is None:
            context = StaleRevisionContext(details=read_stale_revision_details(error), meta=meta)
            self._in_flight = asyncio.get_running_loop().create_task(self._refresh(context))

        await asyncio.shield(self._in_flight)
        return True

    async def _refresh(self, context: StaleRevisionContext) -> None:
        try:
            if self.refresh_handler is not None:
                await self.refresh_handler(context)
        except Exception as exc:
            logger.warning("Stale revision refresh failed: %r", exc)
        finally:
            self._in_flight = None
