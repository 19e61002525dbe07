"""Backend command executor contract.

Why Protocol:
- The native backend is opaque: a name plus named arguments in, a value (or a
  failure) out. HTTP bridges, in-process handlers and test fakes all fit.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable


@runtime_checkable
class Backend(Protocol):
    """Minimal contract of an asynchronous command executor.

    Design rules:
    - `invoke` may return a JSON string or an already structured value.
    - Failures may be raised as strings, mappings or exceptions; the gateway
      normalizes all of them.
    """

    async def invoke(self, command: str, params: Mapping[str, Any]) -> Any:
        """Run `command` with `params` and return its raw response."""

        ...
