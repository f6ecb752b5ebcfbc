"""
Minimal EVM JSON-RPC client for read-only contract calls.

Uses an injectable transport (JsonRpcTransport) so the HTTP layer can be
swapped for test fakes without changing parsing logic.

No retry loops. No signing. Only ``eth_call`` and ``eth_chainId``.

Response conventions:
    - Success: {"jsonrpc": "2.0", "id": n, "result": "0x..."}
    - Error:   {"jsonrpc": "2.0", "id": n, "error": {"code": -32000, "message": "..."}}
"""

from __future__ import annotations

from typing import Any

from xchain_flows.errors import StatusCheckError
from xchain_flows.transport import HttpxTransport, JsonRpcTransport

# JSON-RPC request ID counter (simple, no thread-safety needed for async)
_REQUEST_ID = 0


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


class EthJsonRpcClient:
    """Read-only client bound to one chain's RPC endpoint.

    Args:
        url: The chain's JSON-RPC endpoint URL.
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport.
    """

    def __init__(self, url: str, transport: JsonRpcTransport | None = None) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()

    @property
    def url(self) -> str:
        return self._url

    async def eth_call(self, to: str, data: str) -> str:
        """Run a view call against the latest block.

        Returns:
            The 0x-prefixed hex return data.

        Raises:
            StatusCheckError: The node returned a JSON-RPC error or a
                malformed result. Transport exceptions propagate as-is.
        """
        payload = {
            "jsonrpc": "2.0",
            "method": "eth_call",
            "params": [{"to": to, "data": data}, "latest"],
            "id": _next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_hex_result(response, "eth_call")

    async def chain_id(self) -> int:
        payload = {
            "jsonrpc": "2.0",
            "method": "eth_chainId",
            "params": [],
            "id": _next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        return int(_parse_hex_result(response, "eth_chainId"), 16)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_hex_result(response: dict[str, Any], method: str) -> str:
    """Extract a hex ``result`` or raise StatusCheckError."""
    error = response.get("error")
    if error is not None:
        if isinstance(error, dict):
            detail = error.get("message") or str(error.get("code", "unknown error"))
        else:
            detail = str(error)
        raise StatusCheckError(
            f"{method} failed: {detail}",
            error_code="RPC_ERROR",
            details={"method": method, "error": error},
        )

    result = response.get("result")
    if not isinstance(result, str) or not result.startswith("0x"):
        raise StatusCheckError(
            f"{method} returned malformed result: {result!r}",
            error_code="RPC_MALFORMED",
            details={"method": method},
        )
    return result
