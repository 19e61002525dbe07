"""Best-effort audit telemetry for user-visible failures.

Responsibility:
- Deduplicate identical failures inside a time window (fingerprints).
- Enforce a per-session cap on the number of events.
- Forward `{level, message, payload}` to the audit sink without ever raising,
  within a per-report deadline.

State is an explicit object (`TelemetryState`) with an injected clock so
that lifetime, eviction and memory bounds are testable.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import platform
import time
import traceback
from typing import Any, Callable

from core.config import GatewaySettings
from core.domain.errors import CanonicalError
from core.domain.models import FrontendLogLevel, TelemetryContext, TelemetryReport
from core.interfaces.sinks import TelemetrySink

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
ContextProvider = Callable[[], TelemetryContext]

FINGERPRINT_MAX_LEN = 512
EXTRA_MAX_LEN = 256


def wall_clock_ms() -> float:
    return time.time() * 1000


def truncate(text: object, max_len: int = 16_000) -> str:
    s = str(text or "")
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]}...<truncated {len(s) - max_len} chars>"


def safe_json(obj: Any) -> Any:
    """JSON-compatible copy of `obj`, or its string form."""

    try:
        return json.loads(json.dumps(obj, default=str))
    except (TypeError, ValueError):
        return str(obj)


def make_fingerprint(level: str, message: str, extra: str | None = None) -> str:
    base = f"{level}|{message}"
    suffix = f"|{extra}" if extra else ""
    return truncate(base + suffix, FINGERPRINT_MAX_LEN)


def describe_exception(err: object) -> dict[str, str | None]:
    """`{name, message, stack}` of any raised value."""

    if err is None:
        return {"name": None, "message": "Unknown error", "stack": None}
    if isinstance(err, BaseException):
        stack = None
        if err.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
        return {"name": type(err).__name__, "message": str(err) or type(err).__name__, "stack": stack}
    if isinstance(err, str):
        return {"name": None, "message": err, "stack": None}
    try:
        return {"name": None, "message": json.dumps(err), "stack": None}
    except (TypeError, ValueError):
        return {"name": None, "message": str(err), "stack": None}


class TelemetryState:
    """Fingerprint -> last-sent timestamp map plus the session counter."""

    def __init__(
        self,
        *,
        dedupe_window_ms: int = 30_000,
        max_events: int = 50,
        max_fingerprints: int = 1_024,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.dedupe_window_ms = dedupe_window_ms
        self.max_events = max_events
        self.max_fingerprints = max_fingerprints
        self.clock = clock
        self.sent_count = 0
        self._last_sent: dict[str, float] = {}

    @classmethod
    def from_settings(cls, settings: GatewaySettings, *, clock: Clock = wall_clock_ms) -> "TelemetryState":
        return cls(
            dedupe_window_ms=settings.telemetry_dedupe_window_ms,
            max_events=settings.telemetry_max_events_per_session,
            max_fingerprints=settings.telemetry_max_fingerprints,
            clock=clock,
        )

    @property
    def exhausted(self) -> bool:
        return self.sent_count >= self.max_events

    def __len__(self) -> int:
        return len(self._last_sent)

    def admit(self, fingerprint: str) -> bool:
        """Record and accept `fingerprint` unless capped or seen within the window."""

        if self.exhausted:
            return False
        now = self.clock()
        last = self._last_sent.get(fingerprint)
        if last is not None and now - last < self.dedupe_window_ms:
            return False
        self._last_sent[fingerprint] = now
        self.sent_count += 1
        if len(self._last_sent) > self.max_fingerprints:
            self.evict_expired(now)
        return True

    def evict_expired(self, now: float | None = None) -> int:
        """Drop fingerprints whose window has elapsed. Returns how many."""

        now = self.clock() if now is None else now
        expired = [fp for fp, ts in self._last_sent.items() if now - ts >= self.dedupe_window_ms]
        for fp in expired:
            del self._last_sent[fp]
        return len(expired)

    def reset(self) -> None:
        self.sent_count = 0
        self._last_sent.clear()


class TelemetryReporter:
    """Deduplicating front of a `TelemetrySink`."""

    def __init__(
        self,
        sink: TelemetrySink | None,
        *,
        state: TelemetryState | None = None,
        context_provider: ContextProvider | None = None,
        environment: str = "production",
        max_text_len: int = 16_000,
        send_timeout_ms: int = 5_000,
    ) -> None:
        self.sink = sink
        self.state = state or TelemetryState()
        self.context_provider = context_provider
        self.environment = environment
        self.max_text_len = max_text_len
        self.send_timeout_ms = send_timeout_ms
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        sink: TelemetrySink | None,
        *,
        state: TelemetryState | None = None,
        context_provider: ContextProvider | None = None,
    ) -> "TelemetryReporter":
        if context_provider is None and settings.actor:
            actor = settings.actor

            def context_provider() -> TelemetryContext:
                return TelemetryContext(actor=actor)

        return cls(
            sink if settings.telemetry_enabled else None,
            state=state or TelemetryState.from_settings(settings),
            context_provider=context_provider,
            environment=settings.environment,
            max_text_len=settings.telemetry_max_text_len,
            send_timeout_ms=settings.telemetry_send_timeout_ms,
        )

    @property
    def enabled(self) -> bool:
        return self.sink is not None

    # -- gateway entry point -------------------------------------------------

    def submit_call_failure(
        self,
        *,
        command: str,
        error: CanonicalError,
        params_keys: list[str],
    ) -> bool:
        """Fire-and-forget report of a failed call.

        The dedup decision is taken synchronously; only the send is deferred.
        Returns True when a report was scheduled.
        """

        message = f"IPC call failed: {command}"
        extra = truncate(f"{error.code}: {error.message}", EXTRA_MAX_LEN)
        if not self._admit(make_fingerprint("error", message, extra)):
            return False
        payload = {
            "command": command,
            "params_keys": params_keys,
            "error": error.model_dump(mode="json"),
        }
        task = asyncio.get_running_loop().create_task(self._send("error", message, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def drain(self) -> None:
        """Wait for scheduled reports (shutdown, tests)."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -- direct reporting ----------------------------------------------------

    async def report_event(
        self,
        level: FrontendLogLevel,
        message: str,
        payload: Any = None,
    ) -> bool:
        """Report an arbitrary event. Returns True when it was sent."""

        if not self._admit(make_fingerprint(level, message)):
            return False
        await self._send(level, message, payload if payload is not None else {})
        return True

    async def report_exception(self, error: object, context: dict[str, Any] | None = None) -> bool:
        """Report any raised value, deduplicated on message + stack."""

        described = describe_exception(error)
        message = described["message"] or "Unknown error"
        extra = truncate(described["stack"] or message, EXTRA_MAX_LEN)
        if not self._admit(make_fingerprint("error", message, extra)):
            return False
        payload = {
            "error": {
                "name": described["name"],
                "message": truncate(message, self.max_text_len),
                "stack": truncate(described["stack"], self.max_text_len) if described["stack"] else None,
            },
            "context": safe_json(context or {}),
        }
        await self._send("error", message, payload)
        return True

    # -- internals -----------------------------------------------------------

    def _admit(self, fingerprint: str) -> bool:
        if self.sink is None:
            return False
        return self.state.admit(fingerprint)

    async def _send(self, level: str, message: str, payload: Any) -> None:
        sink = self.sink
        if sink is None:
            return
        try:
            # The sink usually shares the transport of the failed call.
            await asyncio.wait_for(
                self._deliver(sink, level, message, payload),
                timeout=self.send_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.debug("Telemetry report dropped after %dms: %s", self.send_timeout_ms, message)
        except Exception as exc:  # best-effort: never surfaces
            logger.debug("Telemetry report dropped: %r", exc)

    async def _deliver(self, sink: TelemetrySink, level: str, message: str, payload: Any) -> None:
        context = self.context_provider() if self.context_provider else TelemetryContext()
        version_id = context.version_id or await sink.latest_version_id()
        report = TelemetryReport(
            version_id=version_id,
            actor=context.actor,
            level=level,
            message=truncate(message, self.max_text_len),
            payload_json={
                "route": context.route,
                "env": self.environment,
                "host": platform.node() or None,
                "pid": os.getpid(),
                "payload": safe_json(payload),
            },
        )
        await sink.send(report)
