"""
EVM encoding helpers: selectors, bytes32 padding and body decoding.

Pure functions over hex strings. Hashing is ``Web3.keccak``; ABI
encoding/decoding of call results is ``eth_abi``. Nothing here does I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from web3 import Web3


def event_topic(signature: str) -> str:
    """keccak256 of an event signature, 0x-prefixed lowercase hex."""
    return Web3.to_hex(Web3.keccak(text=signature)).lower()


def function_selector(signature: str) -> str:
    """First four bytes of keccak256(signature), 0x-prefixed."""
    return event_topic(signature)[:10]


def strip_0x(value: str) -> str:
    return value[2:] if value[:2].lower() == "0x" else value


def hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(strip_0x(value))


def address_to_bytes32(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte word (Hyperlane recipient form)."""
    return "0x" + strip_0x(address).lower().rjust(64, "0")


def encode_call(function: str, arg_types: Sequence[str], args: Sequence[Any]) -> str:
    """Selector plus ABI-encoded arguments, 0x-prefixed.

    Raises:
        eth_abi.exceptions.EncodingError: An argument does not fit its type.
    """
    signature = f"{function}({','.join(arg_types)})"
    return function_selector(signature) + abi_encode(list(arg_types), list(args)).hex()


def decode_bool(result: str) -> bool:
    """Decode an ``eth_call`` result holding a single ABI bool."""
    (value,) = abi_decode(["bool"], hex_to_bytes(result))
    return bool(value)


def decode_uint256(result: str) -> int:
    """Decode an ``eth_call`` result holding a single ABI uint256."""
    (value,) = abi_decode(["uint256"], hex_to_bytes(result))
    return int(value)


def decode_address(result: str) -> str:
    """Decode a single ABI address; lowercase 0x hex."""
    (value,) = abi_decode(["address"], hex_to_bytes(result))
    return str(value).lower()


def decode_bytes32(result: str) -> str:
    (value,) = abi_decode(["bytes32"], hex_to_bytes(result))
    return "0x" + bytes(value).hex()


def decode_bytes(result: str) -> bytes:
    """Decode a single dynamic ABI ``bytes`` value."""
    (value,) = abi_decode(["bytes"], hex_to_bytes(result))
    return bytes(value)


def decode_message_body(body: str | None) -> str | None:
    """Decode a hex message body to text.

    Returns None for empty bodies. Bodies that are not valid UTF-8 (or not
    valid hex) are returned unchanged.
    """
    if not body or body == "0x" or len(body) < 4:
        return None
    try:
        return hex_to_bytes(body).decode("utf-8")
    except ValueError:
        return body
