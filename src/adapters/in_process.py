"""In-process backend: command name -> async handler.

Useful when the "native" side runs in the same interpreter (embedding, demos,
tests). Handlers follow the bridge conventions: they may return JSON strings
or structured values and fail with `BackendError` (or any exception whose
message is a serialized `{code, message, details}` object).
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Mapping

Handler = Callable[..., Awaitable[Any]]


class BackendError(Exception):
    """Business failure declared by a command handler."""

    def __init__(self, code: str, message: str, details: Any | None = None) -> None:
        super().__init__(json.dumps({"code": code, "message": message, "details": details}, ensure_ascii=False))
        self.code = code
        self.message = message
        self.details = details


class InProcessBackend:
    """`Backend` dispatching to registered coroutine functions.

    Handlers receive the params as keyword arguments.
    """

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = dict(handlers or {})

    def register(self, command: str, handler: Handler) -> None:
        self._handlers[command] = handler

    def command(self, name: str | None = None) -> Callable[[Handler], Handler]:
        """Decorator form of `register`."""

        def decorator(func: Handler) -> Handler:
            self.register(name or func.__name__, func)
            return func

        return decorator

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def invoke(self, command: str, params: Mapping[str, Any]) -> Any:
        handler = self._handlers.get(command)
        if handler is None:
            raise BackendError("NOT_FOUND", f"Command not found: {command}", {"command": command})
        return await handler(**dict(params))
