"""Wire response decoding.

Older backend commands return JSON strings, newer ones return structured
values; both are accepted transparently.
"""

from __future__ import annotations

import json
from typing import Any

from core.domain.errors import ErrorCode, IpcCallError

_PREVIEW_CHARS = 200


def normalize_response(raw: Any, *, command: str | None = None) -> Any:
    """Decode `raw` into a plain value.

    Raises `IpcCallError` (code `Unknown`) on malformed JSON.
    """

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        preview = raw if len(raw) <= _PREVIEW_CHARS else raw[:_PREVIEW_CHARS] + "..."
        raise IpcCallError.of(
            ErrorCode.UNKNOWN,
            f"Malformed response: {exc.msg} (line {exc.lineno}, column {exc.colno})",
            {"command": command, "raw": preview},
            command=command,
        ) from exc
