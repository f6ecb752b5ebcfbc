"""
Transport protocols for chain RPC and explorer HTTP calls.

Defines the seam where the concrete HTTP implementation plugs in. The
RPC client, destination readers and explorer client depend on these
protocols, not on httpx directly, so tests can hand in fakes.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - Fake transports in tests, returning canned responses
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async transport for JSON-RPC POST requests."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return the parsed response.

        Args:
            url: The JSON-RPC endpoint URL.
            payload: The JSON-RPC request body (jsonrpc, method, params, id).

        Returns:
            Parsed JSON response as a dict.

        Raises:
            Exception: On transport-level failures (connection refused,
                timeout, non-2xx status). Callers treat these as
                transient.
        """
        ...


@runtime_checkable
class HttpTransport(Protocol):
    """Async transport for plain JSON GET requests."""

    async def get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        """GET ``url`` with query ``params`` and return the parsed body."""
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    One short-lived client per request; the reconciler polls every few
    seconds, so connection reuse buys little.

    Args:
        timeout: Request timeout in seconds.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON-RPC request via httpx."""
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            result: dict[str, Any] = response.json()
            return result

    async def get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        """GET JSON via httpx."""
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return response.json()
