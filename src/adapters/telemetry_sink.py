"""Audit sink writing telemetry through the backend itself.

The backend persists reports in its action log via a dedicated
fire-and-forget command. The sink talks to the backend directly (not through
the gateway) so a failing report can never loop back into telemetry.
"""

from __future__ import annotations

import json
import logging

from core.domain.models import TelemetryReport
from core.interfaces.backend import Backend

logger = logging.getLogger(__name__)

REPORT_COMMAND = "report_frontend_event"
LATEST_VERSION_COMMAND = "get_latest_active_version_id"


class BackendTelemetrySink:
    def __init__(
        self,
        backend: Backend,
        *,
        command: str = REPORT_COMMAND,
        version_command: str | None = LATEST_VERSION_COMMAND,
    ) -> None:
        self._backend = backend
        self._command = command
        self._version_command = version_command

    async def send(self, report: TelemetryReport) -> None:
        await self._backend.invoke(self._command, report.model_dump(mode="json"))

    async def latest_version_id(self) -> str | None:
        if not self._version_command:
            return None
        try:
            parsed = await self._backend.invoke(self._version_command, {})
        except Exception as exc:
            logger.debug("Latest version lookup failed: %r", exc)
            return None
        if isinstance(parsed, str):
            # Either a JSON-encoded string or the bare id.
            try:
                parsed = json.loads(parsed)
            except json.JSONDecodeError:
                pass
        if isinstance(parsed, str) and parsed.strip():
            return parsed.strip()
        return None
