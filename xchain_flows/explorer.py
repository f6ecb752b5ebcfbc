"""
Hosted-mode delivery status via the Hyperlane explorer API.

Request:
    GET {base}?module=message&action=get-messages&id=<messageId>

Response (etherscan-style envelope):
    {"status": "1", "message": "OK", "result": [{
        "status": "delivered" | "failed" | "pending" | ...,
        "originTransaction": {"transactionHash": "0x..."},
        "destinationTransaction": {"transactionHash": "0x..."},
        "body": "0x..."
    }]}

Anything other than status "1" with a non-empty result reads as
pending, and so does any message status besides delivered/failed.
Transport exceptions propagate; the reconciler treats them as transient.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from xchain_flows.models import MessageStatus
from xchain_flows.transport import HttpTransport, HttpxTransport

DEFAULT_EXPLORER_API_URL = "https://explorer.hyperlane.xyz/api"
DEFAULT_EXPLORER_URL = "https://explorer.hyperlane.xyz"


@dataclass(frozen=True)
class StatusResult:
    """One explorer answer about one message.

    Attributes:
        status: PENDING, DELIVERED or FAILED.
        destination_tx_hash: Delivery transaction, when delivered.
        origin_tx_hash: Dispatch transaction, when the explorer knows it.
        body: Raw hex message body, undecoded.
    """

    status: MessageStatus
    destination_tx_hash: str | None = None
    origin_tx_hash: str | None = None
    body: str | None = None


PENDING_RESULT = StatusResult(status=MessageStatus.PENDING)


@runtime_checkable
class ExplorerStatusClient(Protocol):
    """Anything that can answer "what happened to this message?"."""

    async def get_status(self, message_id: str, origin_chain_id: int | None = None) -> StatusResult:
        ...


class HyperlaneExplorerClient:
    """ExplorerStatusClient backed by the public explorer API.

    Args:
        base_url: API endpoint (without query string).
        transport: Injectable GET transport. Defaults to HttpxTransport.
        explorer_url: Human-facing explorer root, for message links.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_EXPLORER_API_URL,
        transport: HttpTransport | None = None,
        explorer_url: str = DEFAULT_EXPLORER_URL,
    ) -> None:
        self._base_url = base_url
        self._transport = transport or HttpxTransport()
        self._explorer_url = explorer_url.rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    async def get_status(self, message_id: str, origin_chain_id: int | None = None) -> StatusResult:
        """Query the explorer for one message.

        ``origin_chain_id`` is accepted for disambiguation but the API
        keys messages by id alone, so it is not sent.
        """
        params = {"module": "message", "action": "get-messages", "id": message_id}
        response = await self._transport.get_json(self._base_url, params)
        return parse_status_response(response)

    def message_url(self, message_id: str) -> str:
        """Link to the message's page in the explorer UI."""
        return f"{self._explorer_url}/message/{message_id}"


# =====================================================================
# Response parsing (pure function, no I/O)
# =====================================================================


def _tx_hash(section: Any) -> str | None:
    if isinstance(section, dict):
        value = section.get("transactionHash")
        return str(value) if value else None
    return None


def parse_status_response(response: Any) -> StatusResult:
    """Map an explorer response body to a StatusResult."""
    if not isinstance(response, dict) or response.get("status") != "1":
        return PENDING_RESULT

    result = response.get("result")
    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        return PENDING_RESULT

    message = result[0]
    status = message.get("status")
    if status == "delivered":
        body = message.get("body")
        return StatusResult(
            status=MessageStatus.DELIVERED,
            destination_tx_hash=_tx_hash(message.get("destinationTransaction")),
            origin_tx_hash=_tx_hash(message.get("originTransaction")),
            body=str(body) if body else None,
        )
    if status == "failed":
        return StatusResult(status=MessageStatus.FAILED)
    return PENDING_RESULT
