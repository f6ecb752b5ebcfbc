"""
Tests for the hosted-mode explorer client.

HTTP is mocked with pytest-httpx; the real HttpxTransport is exercised.

Test plan:
- Request: GET with module/action/id query parameters
- Delivered: destination hash, origin hash, raw body
- Failed, pending, unknown status
- Empty result / status "0" / non-dict → pending
- HTTP error propagates (transient to the reconciler)
"""

from typing import Any

import httpx
import pytest
from pytest_httpx import HTTPXMock

from xchain_flows.explorer import (
    PENDING_RESULT,
    HyperlaneExplorerClient,
    parse_status_response,
)
from xchain_flows.models import MessageStatus
from xchain_flows.transport import HttpxTransport

API_URL = "http://explorer.test/api"
MESSAGE_ID = "0x" + "ab" * 32

DELIVERED = {
    "status": "1",
    "message": "OK",
    "result": [
        {
            "status": "delivered",
            "originTransaction": {"transactionHash": "0xabc"},
            "destinationTransaction": {"transactionHash": "0xdef"},
            "body": "0x" + b"hello".hex(),
        }
    ],
}


def _client() -> HyperlaneExplorerClient:
    return HyperlaneExplorerClient(API_URL, HttpxTransport(timeout=5.0))


class TestGetStatus:
    @pytest.mark.asyncio
    async def test_sends_query(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=DELIVERED)
        await _client().get_status(MESSAGE_ID, 11155111)
        request = httpx_mock.get_request()
        assert request is not None
        assert request.method == "GET"
        assert request.url.host == "explorer.test"
        assert request.url.params["module"] == "message"
        assert request.url.params["action"] == "get-messages"
        assert request.url.params["id"] == MESSAGE_ID

    @pytest.mark.asyncio
    async def test_delivered(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json=DELIVERED)
        result = await _client().get_status(MESSAGE_ID)
        assert result.status is MessageStatus.DELIVERED
        assert result.destination_tx_hash == "0xdef"
        assert result.origin_tx_hash == "0xabc"
        assert result.body == "0x68656c6c6f"

    @pytest.mark.asyncio
    async def test_empty_result_is_pending(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(json={"status": "0", "message": "No messages found", "result": []})
        assert await _client().get_status(MESSAGE_ID) == PENDING_RESULT

    @pytest.mark.asyncio
    async def test_http_error_propagates(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(status_code=503)
        with pytest.raises(httpx.HTTPStatusError):
            await _client().get_status(MESSAGE_ID)

    def test_message_url(self) -> None:
        client = HyperlaneExplorerClient(explorer_url="https://explorer.test/")
        assert client.message_url(MESSAGE_ID) == f"https://explorer.test/message/{MESSAGE_ID}"


class TestParse:
    def test_failed(self) -> None:
        result = parse_status_response({"status": "1", "result": [{"status": "failed"}]})
        assert result.status is MessageStatus.FAILED

    @pytest.mark.parametrize("status", ["pending", "processing", None])
    def test_non_terminal_is_pending(self, status: Any) -> None:
        assert parse_status_response({"status": "1", "result": [{"status": status}]}) == PENDING_RESULT

    @pytest.mark.parametrize(
        "response",
        [None, [], "oops", {"status": "1"}, {"status": "1", "result": []}, {"status": "1", "result": ["x"]}],
    )
    def test_malformed_is_pending(self, response: Any) -> None:
        assert parse_status_response(response) == PENDING_RESULT

    def test_delivered_without_destination(self) -> None:
        result = parse_status_response({"status": "1", "result": [{"status": "delivered"}]})
        assert result.status is MessageStatus.DELIVERED
        assert result.destination_tx_hash is None
        assert result.body is None
