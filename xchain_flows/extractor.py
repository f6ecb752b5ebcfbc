"""
Message identifier extraction from transaction receipts.

The mailbox emits ``DispatchId(bytes32 indexed messageId)`` alongside
every dispatch, so the identifier is topic[1] of that log.

Matching order:
    1. First log whose topic[0] equals the DispatchId signature.
    2. Otherwise, the first log with at least two topics (best-effort:
       some routers wrap the dispatch and the exact event may be missing
       from the receipt we are handed).
    3. Otherwise, the sentinel "0x".

Pure: no network, no state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from xchain_flows.evm import event_topic
from xchain_flows.models import NO_MESSAGE_ID, EventRecord

DISPATCH_ID_EVENT = "DispatchId(bytes32)"
DISPATCH_ID_EVENT_SIGNATURE = event_topic(DISPATCH_ID_EVENT)


def _topics(log: EventRecord | Mapping[str, Any]) -> tuple[str, ...]:
    if isinstance(log, EventRecord):
        return log.topics
    return tuple(log.get("topics") or ())


def extract_message_id(
    logs: Iterable[EventRecord | Mapping[str, Any]] | None,
    *,
    signature: str = DISPATCH_ID_EVENT_SIGNATURE,
) -> str:
    """Find the cross-chain message identifier in a receipt's logs.

    Args:
        logs: Receipt logs, as EventRecords or raw JSON-RPC log dicts.
        signature: topic[0] of the dispatch event. Defaults to DispatchId.

    Returns:
        The identifier (topic[1]) or NO_MESSAGE_ID ("0x").
    """
    if not logs:
        return NO_MESSAGE_ID

    topic_lists = [_topics(log) for log in logs]
    wanted = signature.lower()

    for topics in topic_lists:
        if topics and topics[0].lower() == wanted and len(topics) >= 2 and topics[1]:
            return topics[1]

    for topics in topic_lists:
        if len(topics) >= 2 and topics[1]:
            return topics[1]

    return NO_MESSAGE_ID


def is_known_message_id(message_id: str | None) -> bool:
    """True for anything other than the empty/"0x" placeholder."""
    return bool(message_id) and message_id != NO_MESSAGE_ID
