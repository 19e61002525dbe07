"""Call gateway: the single public entry point to the backend.

Lifecycle of one call:

    Idle -> Attempting -> Success
                       -> Retrying -> Attempting
                       -> Failed

Each attempt is: deadline race (backend) -> response decoding -> contract
validation. Failures are normalized and classified; transient ones are
retried sequentially with backoff. On Failed the error is offered to the
stale-revision hook, then (when `show_error`) to telemetry and to the
presenter, and is finally raised to the caller. Side channels never mask the
original error.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Mapping

from core.config import GatewaySettings
from core.domain.errors import CanonicalError, IpcCallError
from core.domain.models import CallOptions, CallRequest
from core.interfaces.backend import Backend
from core.interfaces.sinks import ErrorPresenter
from core.interfaces.validator import Validator
from core.services.error_normalizer import normalize_error
from core.services.response_normalizer import normalize_response
from core.services.retry_policy import RetryPolicy, Sleep, sleep_ms
from core.services.schema_validator import ContractRegistry
from core.services.stale_revision import StaleRevisionHandler, StaleRevisionMeta
from core.services.telemetry import TelemetryReporter
from core.services.timeout_guard import TimeoutGuard

logger = logging.getLogger(__name__)


class IpcClient:
    """Contract-checked, retried, classified and observable backend calls."""

    def __init__(
        self,
        backend: Backend,
        *,
        settings: GatewaySettings | None = None,
        registry: ContractRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_guard: TimeoutGuard | None = None,
        telemetry: TelemetryReporter | None = None,
        presenter: ErrorPresenter | None = None,
        stale_revisions: StaleRevisionHandler | None = None,
        sleep: Sleep = sleep_ms,
    ) -> None:
        self._settings = settings or GatewaySettings()
        self._backend = backend
        self._registry = registry
        self._retry_policy = retry_policy or RetryPolicy(
            base_delay_ms=self._settings.retry_base_delay_ms,
            backoff=self._settings.retry_backoff,
        )
        self._timeout_guard = timeout_guard or TimeoutGuard(
            cancel_on_timeout=self._settings.cancel_on_timeout,
        )
        self._telemetry = telemetry
        self._presenter = presenter
        self._stale_revisions = stale_revisions
        self._sleep = sleep
        self._debug = self._settings.debug_ipc

    @property
    def registry(self) -> ContractRegistry | None:
        return self._registry

    @property
    def timeout_guard(self) -> TimeoutGuard:
        return self._timeout_guard

    async def drain(self) -> None:
        """Wait for scheduled telemetry reports to be sent."""

        if self._telemetry is not None:
            await self._telemetry.drain()

    def options(self, **overrides: Any) -> CallOptions[Any]:
        """Call options seeded with this client's default timeout."""

        overrides.setdefault("timeout_ms", self._settings.default_timeout_ms)
        return CallOptions(**overrides)

    async def call(
        self,
        command: str,
        params: Mapping[str, Any] | None = None,
        options: CallOptions[Any] | None = None,
    ) -> Any:
        """Invoke `command` with `params`. Raises `IpcCallError` on failure."""

        request = CallRequest(
            command=command,
            params=params if params is not None else {},
            options=options or self.options(),
        )
        return await self.execute(request)

    async def execute(self, request: CallRequest) -> Any:
        command = request.command
        options = request.options
        validate = self._validator_for(request)

        if self._debug:
            logger.debug(
                "IPC start: command=%s params=%s keys=%s",
                command,
                json.dumps(request.params, default=str, ensure_ascii=False),
                request.params_keys,
            )

        attempt = 0
        while True:
            try:
                raw = await self._timeout_guard.run(
                    self._backend.invoke(command, request.invoke_params),
                    timeout_ms=options.timeout_ms,
                    command=command,
                    cancel_on_timeout=options.cancel_on_timeout,
                )
                value = normalize_response(raw, command=command)
                result = validate(value) if validate is not None else value
                if self._debug:
                    logger.debug("IPC success: command=%s attempt=%d result=%r", command, attempt + 1, result)
                return result
            except Exception as exc:
                if self._debug:
                    logger.debug("IPC error: command=%s attempt=%d raw=%r", command, attempt + 1, exc)
                error = normalize_error(exc)
                if not self._retry_policy.should_retry(
                    error, attempt=attempt, max_attempts=options.max_attempts
                ):
                    break
                delay = self._retry_policy.delay_ms(attempt)
                logger.info(
                    "Retrying '%s' after %s (attempt %d/%d, wait %dms)",
                    command,
                    error.code,
                    attempt + 1,
                    options.max_attempts,
                    delay,
                )
            await self._sleep(delay)
            attempt += 1

        await self._surface(request, error)
        raise IpcCallError(error, command=command, attempts=attempt + 1)

    def _validator_for(self, request: CallRequest) -> Validator[Any] | None:
        if request.options.validate is not None:
            return request.options.validate
        if self._registry is not None:
            return self._registry.get(request.command)
        return None

    async def _surface(self, request: CallRequest, error: CanonicalError) -> None:
        logger.warning("IPC call '%s' failed: %s: %s", request.command, error.code, error.message)

        stale_handled = False
        if self._stale_revisions is not None:
            try:
                stale_handled = await self._stale_revisions.handle(
                    error, StaleRevisionMeta(source="ipc", command=request.command)
                )
            except Exception as exc:
                logger.warning("Stale revision hook failed: %r", exc)

        if not request.options.show_error or stale_handled:
            return

        if self._telemetry is not None:
            try:
                self._telemetry.submit_call_failure(
                    command=request.command,
                    error=error,
                    params_keys=request.params_keys,
                )
            except Exception as exc:
                logger.warning("Telemetry submission failed: %r", exc)

        if self._presenter is not None:
            try:
                outcome = self._presenter.present(error)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.warning("Error presenter failed: %r", exc)
