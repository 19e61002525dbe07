"""Call-level models.

Notes:
- These describe *what* a call is, not *how* it is executed.
- Request/options are dataclasses (ephemeral, built per invocation); payloads
  that cross the process boundary are pydantic models.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from core.config import IpcTimeout

if TYPE_CHECKING:
    from core.interfaces.validator import Validator

T = TypeVar("T")

FrontendLogLevel = Literal["error", "warn", "info", "debug"]


@dataclass(frozen=True)
class CallOptions(Generic[T]):
    """Per-call knobs.

    `retry` counts *additional* attempts. `cancel_on_timeout=None` defers to
    the process-wide setting.
    """

    retry: int = 0
    timeout_ms: int = IpcTimeout.NORMAL
    show_error: bool = True
    validate: "Validator[T] | None" = None
    cancel_on_timeout: bool | None = None

    def __post_init__(self) -> None:
        if self.retry < 0:
            raise ValueError(f"retry must be >= 0, got {self.retry}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")

    @property
    def max_attempts(self) -> int:
        return self.retry + 1


@dataclass
class CallRequest:
    """One invocation of the gateway."""

    command: str
    params: Mapping[str, Any] = field(default_factory=dict)
    options: CallOptions[Any] = field(default_factory=CallOptions)

    @property
    def invoke_params(self) -> dict[str, Any]:
        # The bridge only accepts named arguments.
        if isinstance(self.params, Mapping):
            return dict(self.params)
        return {}

    @property
    def params_keys(self) -> list[str]:
        if isinstance(self.params, Mapping):
            return [str(k) for k in self.params.keys()]
        return []


class TelemetryContext(BaseModel):
    """Who/where a telemetry report comes from."""

    actor: str = Field(default="unknown", description="Operator that triggered the failure.")
    version_id: str | None = Field(default=None, description="Active plan version, if known.")
    route: str | None = Field(default=None, description="UI location, if the embedder has one.")


class TelemetryReport(BaseModel):
    """Payload accepted by the backend audit command."""

    version_id: str | None = None
    actor: str | None = None
    level: str
    message: str
    payload_json: Any = Field(default_factory=dict)
