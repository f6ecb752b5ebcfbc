"""
Core records for cross-chain tracking.

TrackedMessage is the one durable record in the system. Everything else
here (EventRecord, TxReceipt, ChainCallRequest) describes what flows in
from or out to the chain-facing collaborators.

Persisted shape:
    TrackedMessage.to_dict() uses camelCase keys so history written by
    earlier releases (and other clients sharing the same storage key)
    loads without conversion.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Mapping

from xchain_flows.evm import encode_call, function_selector

# Sentinel for "no message identifier known".
NO_MESSAGE_ID = "0x"


def now_utc() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 timestamp written by now_utc()."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def from_epoch_ms(value: int | float) -> str:
    """RFC3339 UTC timestamp from epoch milliseconds (legacy history entries)."""
    moment = datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S+00:00")


def _timestamp(data: Mapping[str, Any], key: str, legacy_ms_key: str) -> str | None:
    if data.get(key):
        return str(data[key])
    if data.get(legacy_ms_key) is not None:
        return from_epoch_ms(data[legacy_ms_key])
    return None


# =========================================================================
# Enums
# =========================================================================


class MessageKind(StrEnum):
    """What kind of operation produced the message."""

    BRIDGE = "bridge"
    MESSAGE = "message"
    ICA = "ica"


class MessageStatus(StrEnum):
    """Delivery status. PENDING is the only non-terminal state."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


class DeliveryMode(StrEnum):
    """How delivery is learned: explorer API or direct destination reads."""

    HOSTED = "hosted"
    SELF_HOSTED = "self-hosted"


def can_transition(current: MessageStatus, new: MessageStatus) -> bool:
    """Whether a status change keeps the Pending → terminal invariant."""
    if current == new:
        return True
    return current is MessageStatus.PENDING


# =========================================================================
# TrackedMessage
# =========================================================================


@dataclass(frozen=True)
class TrackedMessage:
    """One cross-chain operation under observation.

    Attributes:
        message_id: Hex message identifier; the ledger's identity key.
            "0x" means not yet known and is never polled.
        origin_chain_id: Chain the message was dispatched from.
        destination_chain_id: Chain the message is delivered to.
        kind: Bridge, message or interchain account call.
        status: Pending, delivered or failed. Monotonic.
        origin_tx_hash: Dispatching transaction on the origin chain.
        created_at: RFC3339 UTC creation time.
        description: Human-readable label, not used for identity.
        destination_tx_hash: Delivery transaction, when known.
        last_checked_at: RFC3339 UTC time of the last poll attempt.
        body: Decoded payload, when a status backend returned one.
    """

    message_id: str
    origin_chain_id: int
    destination_chain_id: int
    kind: MessageKind
    status: MessageStatus
    origin_tx_hash: str
    created_at: str
    description: str = ""
    destination_tx_hash: str | None = None
    last_checked_at: str | None = None
    body: str | None = None

    @property
    def has_message_id(self) -> bool:
        return bool(self.message_id) and self.message_id != NO_MESSAGE_ID

    @property
    def is_pending(self) -> bool:
        return self.status is MessageStatus.PENDING

    def evolve(self, **changes: Any) -> TrackedMessage:
        """Return a copy with ``changes`` applied (no invariant checks)."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "messageId": self.message_id,
            "originChainId": self.origin_chain_id,
            "destinationChainId": self.destination_chain_id,
            "type": str(self.kind),
            "status": str(self.status),
            "originTxHash": self.origin_tx_hash,
            "createdAt": self.created_at,
            "description": self.description,
        }
        if self.destination_tx_hash is not None:
            d["destinationTxHash"] = self.destination_tx_hash
        if self.last_checked_at is not None:
            d["lastCheckedAt"] = self.last_checked_at
        if self.body is not None:
            d["body"] = self.body
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrackedMessage:
        """Inverse of to_dict().

        Entries written before timestamps were RFC3339 carry epoch
        milliseconds under ``timestamp`` / ``lastChecked``; those are
        converted.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If kind/status/chain ids are malformed.
        """
        created_at = _timestamp(data, "createdAt", "timestamp")
        if created_at is None:
            raise KeyError("createdAt")
        return cls(
            message_id=str(data["messageId"]),
            origin_chain_id=int(data["originChainId"]),
            destination_chain_id=int(data["destinationChainId"]),
            kind=MessageKind(data["type"]),
            status=MessageStatus(data["status"]),
            origin_tx_hash=str(data.get("originTxHash", "")),
            created_at=created_at,
            description=str(data.get("description", "")),
            destination_tx_hash=data.get("destinationTxHash"),
            last_checked_at=_timestamp(data, "lastCheckedAt", "lastChecked"),
            body=data.get("body"),
        )


# =========================================================================
# Chain-facing records
# =========================================================================


@dataclass(frozen=True)
class EventRecord:
    """One emitted log from a transaction receipt."""

    topics: tuple[str, ...]
    address: str = ""
    data: str = "0x"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EventRecord:
        return cls(
            topics=tuple(data.get("topics") or ()),
            address=str(data.get("address", "")),
            data=str(data.get("data", "0x")),
        )


@dataclass(frozen=True)
class TxReceipt:
    """A confirmed transaction receipt.

    Attributes:
        transaction_hash: Hash of the confirmed transaction.
        succeeded: False when the transaction reverted on-chain.
        logs: Emitted event records, in log-index order.
    """

    transaction_hash: str
    succeeded: bool = True
    logs: tuple[EventRecord, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TxReceipt:
        """Build from a JSON-RPC ``eth_getTransactionReceipt`` result."""
        status = data.get("status", "0x1")
        if isinstance(status, str):
            succeeded = int(status, 16) == 1
        else:
            succeeded = bool(status)
        return cls(
            transaction_hash=str(data["transactionHash"]),
            succeeded=succeeded,
            logs=tuple(EventRecord.from_dict(log) for log in data.get("logs") or ()),
        )


@dataclass(frozen=True)
class ChainCallRequest:
    """A contract call ready to hand to the signer.

    Attributes:
        chain_id: Chain the call must be sent on.
        to: Contract address.
        function: Function name (e.g. "transferRemote").
        arg_types: ABI types of the arguments, in order.
        args: Argument values, ABI-encodable by eth_abi.
        value: Native value to attach, in wei.
    """

    chain_id: int
    to: str
    function: str
    arg_types: tuple[str, ...]
    args: tuple[Any, ...]
    value: int = 0

    @property
    def signature(self) -> str:
        return f"{self.function}({','.join(self.arg_types)})"

    @property
    def selector(self) -> str:
        return function_selector(self.signature)

    @property
    def calldata(self) -> str:
        """0x-prefixed selector + ABI-encoded arguments."""
        return encode_call(self.function, self.arg_types, self.args)

    def to_transaction(self) -> dict[str, Any]:
        """Unsigned transaction fields for an EVM wallet."""
        return {
            "chainId": self.chain_id,
            "to": self.to,
            "data": self.calldata,
            "value": self.value,
        }
