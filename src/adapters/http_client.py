"""httpx bridge to the native backend.

Why a wrapper:
- Standardizes timeouts, headers and the wire format of every command.
- Maps transport failures to `NetworkError` (retryable) while leaving
  backend-declared errors untouched for the error normalizer.
- Easy to test: any `httpx.AsyncClient` (e.g. with `httpx.MockTransport`)
  can be injected.
"""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

import httpx

from core.config import GatewaySettings
from core.domain.errors import ErrorCode, IpcCallError
from core.services.error_normalizer import normalize_error


def build_async_client(
    settings: GatewaySettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` pointed at the bridge.

    The read timeout is left unbounded: per-call deadlines belong to the
    gateway's timeout guard, not to the transport.
    """

    settings = settings or GatewaySettings()
    headers: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        base_url=settings.bridge_url,
        timeout=httpx.Timeout(None, connect=settings.bridge_connect_timeout_seconds),
        headers=headers,
        transport=transport,
    )


class HttpBridgeBackend:
    """`Backend` that posts commands to `{bridge_url}/invoke/{command}`.

    The command name is percent-encoded as a single path segment.

    Wire format:
    - request body: the named arguments as a JSON object
    - 2xx: the command result (JSON value, or a JSON-encoded string)
    - non-2xx: the backend error serialized as `{"code", "message", "details"}`
    """

    def __init__(
        self,
        settings: GatewaySettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or GatewaySettings()
        self._client = client or build_async_client(self._settings)

    async def __aenter__(self) -> "HttpBridgeBackend":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def invoke(self, command: str, params: Mapping[str, Any]) -> Any:
        try:
            response = await self._client.post(f"/invoke/{quote(command, safe='')}", json=dict(params))
        except httpx.TransportError as exc:
            raise IpcCallError.of(
                ErrorCode.NETWORK_ERROR,
                f"Bridge unreachable: {exc}" if str(exc) else "Bridge unreachable",
                {"command": command, "transport": type(exc).__name__},
                command=command,
            ) from exc

        if response.is_success:
            if not response.content:
                return None
            content_type = response.headers.get("content-type", "")
            if "application/json" in content_type:
                return response.json()
            return response.text

        # Backend errors travel as text; the normalizer parses JSON bodies.
        if response.status_code in (502, 503, 504) and not response.text:
            raise IpcCallError.of(
                ErrorCode.NETWORK_ERROR,
                f"Bridge returned HTTP {response.status_code}",
                {"command": command, "status_code": response.status_code},
                command=command,
            )
        raise IpcCallError(normalize_error(response.text or f"HTTP {response.status_code}"), command=command)

    async def ping(self) -> int:
        """HTTP status of the bridge root (diagnostics)."""

        response = await self._client.get("/")
        return response.status_code

