"""
Tests for core records and EVM helpers.

Test plan:
- TrackedMessage: camelCase dict shape, optional keys omitted, from_dict
  inverse, legacy epoch-ms keys, missing createdAt
- Status monotonicity helper
- TxReceipt.from_dict: hex and int status, logs
- ChainCallRequest: selector, calldata layout, to_transaction
- evm: bytes32 padding, eth_abi call encoding (oversized inputs
  rejected), bool/uint256/address/bytes decoding, body decoding
"""

import pytest
from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError

from xchain_flows.evm import (
    address_to_bytes32,
    decode_bool,
    decode_message_body,
    decode_uint256,
    decode_address,
    decode_bytes,
    decode_bytes32,
    encode_call,
    function_selector,
)
from xchain_flows.models import (
    ChainCallRequest,
    MessageKind,
    MessageStatus,
    TrackedMessage,
    TxReceipt,
    can_transition,
)

MESSAGE_ID = "0x" + "ab" * 32


def _message(**overrides: object) -> TrackedMessage:
    kwargs: dict[str, object] = {
        "message_id": MESSAGE_ID,
        "origin_chain_id": 1315,
        "destination_chain_id": 43113,
        "kind": MessageKind.ICA,
        "status": MessageStatus.PENDING,
        "origin_tx_hash": "0xabc",
        "created_at": "2025-01-15T12:00:00+00:00",
    }
    kwargs.update(overrides)
    return TrackedMessage(**kwargs)  # type: ignore[arg-type]


class TestTrackedMessage:
    def test_to_dict_keys(self) -> None:
        d = _message().to_dict()
        assert d == {
            "messageId": MESSAGE_ID,
            "originChainId": 1315,
            "destinationChainId": 43113,
            "type": "ica",
            "status": "pending",
            "originTxHash": "0xabc",
            "createdAt": "2025-01-15T12:00:00+00:00",
            "description": "",
        }

    def test_from_dict_inverse(self) -> None:
        msg = _message(
            status=MessageStatus.DELIVERED,
            destination_tx_hash="0xdef",
            last_checked_at="2025-01-15T12:01:00+00:00",
            body="hello",
        )
        assert TrackedMessage.from_dict(msg.to_dict()) == msg

    def test_legacy_epoch_ms(self) -> None:
        d = _message().to_dict()
        del d["createdAt"]
        d["timestamp"] = 1736942400000
        d["lastChecked"] = 1736942460000
        msg = TrackedMessage.from_dict(d)
        assert msg.created_at == "2025-01-15T12:00:00+00:00"
        assert msg.last_checked_at == "2025-01-15T12:01:00+00:00"

    def test_missing_created_at(self) -> None:
        d = _message().to_dict()
        del d["createdAt"]
        with pytest.raises(KeyError):
            TrackedMessage.from_dict(d)

    def test_sentinel_id_is_not_known(self) -> None:
        assert _message(message_id="0x").has_message_id is False
        assert _message().has_message_id is True


class TestTransitions:
    def test_pending_to_terminal(self) -> None:
        assert can_transition(MessageStatus.PENDING, MessageStatus.DELIVERED)
        assert can_transition(MessageStatus.PENDING, MessageStatus.FAILED)

    def test_terminal_is_final(self) -> None:
        assert not can_transition(MessageStatus.DELIVERED, MessageStatus.PENDING)
        assert not can_transition(MessageStatus.FAILED, MessageStatus.DELIVERED)
        assert can_transition(MessageStatus.DELIVERED, MessageStatus.DELIVERED)


class TestTxReceipt:
    def test_from_rpc_dict(self) -> None:
        receipt = TxReceipt.from_dict(
            {
                "transactionHash": "0xabc",
                "status": "0x1",
                "logs": [{"topics": ["0x01", MESSAGE_ID], "address": "0xmailbox"}],
            }
        )
        assert receipt.succeeded is True
        assert receipt.logs[0].topics == ("0x01", MESSAGE_ID)

    def test_reverted(self) -> None:
        assert TxReceipt.from_dict({"transactionHash": "0xabc", "status": "0x0"}).succeeded is False
        assert TxReceipt.from_dict({"transactionHash": "0xabc", "status": 0}).succeeded is False


class TestChainCallRequest:
    def test_approve_selector(self) -> None:
        call = ChainCallRequest(
            chain_id=11155111,
            to="0x1c7d4b196cb0c7b01d743fbc6116a902379c7238",
            function="approve",
            arg_types=("address", "uint256"),
            args=("0x2f427125e2cc9fd050e46ba646b75490176fde27", 10**6),
        )
        assert call.signature == "approve(address,uint256)"
        assert call.selector == "0x095ea7b3"

    def test_calldata_layout(self) -> None:
        call = ChainCallRequest(
            chain_id=1,
            to="0x" + "00" * 20,
            function="quoteGasPayment",
            arg_types=("uint32",),
            args=(43113,),
        )
        assert call.calldata == function_selector("quoteGasPayment(uint32)") + abi_encode(["uint32"], [43113]).hex()

    def test_to_transaction(self) -> None:
        call = ChainCallRequest(1, "0xto", "f", (), (), value=5)
        tx = call.to_transaction()
        assert tx["chainId"] == 1
        assert tx["value"] == 5
        assert tx["data"] == function_selector("f()")


class TestEvmHelpers:
    def test_address_to_bytes32(self) -> None:
        padded = address_to_bytes32("0xAbCdEf0000000000000000000000000000000001")
        assert padded == "0x" + "0" * 24 + "abcdef0000000000000000000000000000000001"

    def test_encode_bytes32_call(self) -> None:
        data = encode_call("delivered", ("bytes32",), (bytes.fromhex("ab" * 32),))
        assert data == function_selector("delivered(bytes32)") + "ab" * 32

    def test_encode_address_pair(self) -> None:
        data = encode_call("allowance", ("address", "address"), ("0x" + "11" * 20, "0x" + "22" * 20))
        assert data == function_selector("allowance(address,address)") + ("0" * 24 + "11" * 20) + ("0" * 24 + "22" * 20)

    def test_encode_rejects_oversized_word(self) -> None:
        with pytest.raises(EncodingError):
            encode_call("delivered", ("bytes32",), (bytes(33),))

    def test_encode_rejects_malformed_address(self) -> None:
        with pytest.raises(EncodingError):
            encode_call("allowance", ("address", "address"), ("0x" + "11" * 21, "0x" + "22" * 20))

    def test_decode_views(self) -> None:
        owner = "0x" + "5e" * 20
        assert decode_address("0x" + abi_encode(["address"], [owner]).hex()) == owner
        assert decode_bytes32("0x" + "ab" * 32) == MESSAGE_ID
        assert decode_bytes("0x" + abi_encode(["bytes"], [b"hello"]).hex()) == b"hello"

    def test_decode_bool(self) -> None:
        assert decode_bool("0x" + "0" * 63 + "1") is True
        assert decode_bool("0x" + "0" * 64) is False

    def test_decode_uint256(self) -> None:
        assert decode_uint256("0x" + f"{12345:064x}") == 12345

    def test_decode_body(self) -> None:
        assert decode_message_body("0x" + b"hello".hex()) == "hello"
        assert decode_message_body("0x") is None
        assert decode_message_body(None) is None
        assert decode_message_body("0xff") == "0xff"
