"""Conversion of any raised value into a `CanonicalError`.

The backend serializes its errors as `{"code", "message", "details"}` JSON
strings; older commands raise plain strings; the transport and the event loop
raise Python exceptions. Everything ends up in the same shape.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from core.domain.errors import CanonicalError, ErrorCode, IpcCallError


def _details_of(value: Any) -> Any | None:
    if isinstance(value, (Mapping, list)):
        return value
    return None


def _from_fields(code: Any, message: Any, details: Any, *, fallback: str) -> CanonicalError:
    return CanonicalError(
        code=code if isinstance(code, str) else ErrorCode.UNKNOWN,
        message=message if isinstance(message, str) else fallback,
        details=_details_of(details),
    )


def _from_mapping(value: Mapping[str, Any]) -> CanonicalError:
    return _from_fields(
        value.get("code"),
        value.get("message"),
        value.get("details"),
        fallback=str(dict(value)),
    )


def _from_string(value: str) -> CanonicalError:
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return CanonicalError(code=ErrorCode.UNKNOWN, message=value)
    if isinstance(parsed, Mapping):
        return _from_mapping(parsed)
    return CanonicalError(code=ErrorCode.UNKNOWN, message=value)


def normalize_error(value: object) -> CanonicalError:
    """Return the canonical form of `value`. Never raises."""

    if isinstance(value, IpcCallError):
        return value.error
    if isinstance(value, CanonicalError):
        return value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return _from_string(value)
    if isinstance(value, Mapping):
        return _from_mapping(value)
    if isinstance(value, BaseException):
        code = getattr(value, "code", None)
        if isinstance(code, str):
            return _from_fields(
                code,
                getattr(value, "message", None),
                getattr(value, "details", None),
                fallback=str(value) or type(value).__name__,
            )
        text = str(value)
        if not text:
            return CanonicalError(code=ErrorCode.UNKNOWN, message=type(value).__name__)
        # A backend "throwing a string" raises it as the exception message.
        return _from_string(text)
    if value is not None and hasattr(value, "code"):
        return _from_fields(
            getattr(value, "code", None),
            getattr(value, "message", None),
            getattr(value, "details", None),
            fallback=str(value),
        )
    return CanonicalError(code=ErrorCode.UNKNOWN, message=str(value))
