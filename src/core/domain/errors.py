"""Canonical error shape and taxonomy.

Why one shape:
- The backend fails with strings, JSON strings or structured values; the UI
  and the audit log only ever want `{code, message, details}`.
- Every stage after normalization (retry, telemetry, presentation) is keyed
  on `code`, so the shape is the contract between those stages.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode:
    """Codes produced by the gateway itself.

    Backend-declared business codes (NOT_FOUND, STALE_PLAN_REV, ...) are
    passed through verbatim and are not listed here.
    """

    TIMEOUT = "Timeout"
    NETWORK_ERROR = "NetworkError"
    SCHEMA_MISMATCH = "IPC_SCHEMA_MISMATCH"
    UNKNOWN = "Unknown"
    STALE_PLAN_REV = "STALE_PLAN_REV"


RETRYABLE_CODES: frozenset[str] = frozenset({ErrorCode.TIMEOUT, ErrorCode.NETWORK_ERROR})


class CanonicalError(BaseModel):
    """Normalized failure of a gateway call."""

    code: str = Field(
        default=ErrorCode.UNKNOWN,
        description="Discriminator: gateway code or backend-declared business code.",
    )
    message: str = Field(
        default="",
        description="Human readable message, shown to the operator.",
    )
    details: Any | None = Field(
        default=None,
        description="Structured context (issues, revisions, command, ...).",
    )

    def to_text(self) -> str:
        """Pretty JSON used for clipboard copies and logs."""

        payload = self.model_dump(mode="json", exclude_none=True)
        return json.dumps(payload, ensure_ascii=False, indent=2, default=str)


class IpcCallError(Exception):
    """Raised to the caller when a gateway call reaches its failed state."""

    def __init__(
        self,
        error: CanonicalError,
        *,
        command: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(f"{error.code}: {error.message}")
        self.error = error
        self.command = command
        self.attempts = attempts

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def details(self) -> Any | None:
        return self.error.details

    @classmethod
    def of(
        cls,
        code: str,
        message: str,
        details: Any | None = None,
        *,
        command: str | None = None,
    ) -> "IpcCallError":
        return cls(CanonicalError(code=code, message=message, details=details), command=command)
