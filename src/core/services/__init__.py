"""Gateway services.

`IpcClient` is the public entry point; the other modules are the stages it
composes (normalizers, validator, deadline, retry, telemetry).
"""

from core.services.gateway import IpcClient
from core.services.retry_policy import RetryPolicy
from core.services.schema_validator import (
    ContractRegistry,
    ContractRegistryError,
    ContractValidator,
    build_default_registry,
    contract_validator,
)
from core.services.telemetry import TelemetryReporter, TelemetryState
from core.services.timeout_guard import TimeoutGuard

__all__ = [
    "ContractRegistry",
    "ContractRegistryError",
    "ContractValidator",
    "IpcClient",
    "RetryPolicy",
    "TelemetryReporter",
    "TelemetryState",
    "TimeoutGuard",
    "build_default_registry",
    "contract_validator",
]
