"""
Durable, bounded history of tracked cross-chain messages.

The ledger is the single owner of TrackedMessage lifetime. Flow
controllers and the reconciler refer to entries by message id only.

Invariants:
    - message_id is the identity key. Appending an id that is already
      present merges into the existing entry and moves it to the front;
      it never creates a second entry.
    - Status is monotonic: PENDING → DELIVERED or PENDING → FAILED.
      Patches that would leave a terminal state are ignored.
    - At most ``limit`` entries are kept, most recently appended first.
    - The in-memory list is authoritative. save() runs after every
      mutation and never raises; a failed write is logged.

Persisted envelope (canonical JSON under one key)::

    {"history": [...], "schemaVersion": 1}

load() also accepts the unversioned shapes written by earlier clients
(a bare list, or ``{"history": [...]}``); they are rewritten in the
current envelope on the next save.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import jsonschema  # type: ignore[import-untyped]

from xchain_flows.models import (
    MessageKind,
    MessageStatus,
    TrackedMessage,
    can_transition,
    now_utc,
)
from xchain_flows.schema import validate_history_entry
from xchain_flows.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "hyperlane-history"
HISTORY_LIMIT = 50
SCHEMA_VERSION = 1

LedgerListener = Callable[["MessageLedger"], None]


def _canonical_dumps(obj: Any) -> str:
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def _same_id(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def merge_messages(existing: TrackedMessage, incoming: TrackedMessage) -> TrackedMessage:
    """Merge a re-tracked message into the stored one.

    Fields from ``incoming`` win, except that a terminal status is never
    downgraded and known hashes, body and check time are never cleared.
    """
    status = incoming.status if can_transition(existing.status, incoming.status) else existing.status
    return incoming.evolve(
        status=status,
        destination_tx_hash=incoming.destination_tx_hash or existing.destination_tx_hash,
        body=incoming.body or existing.body,
        last_checked_at=incoming.last_checked_at or existing.last_checked_at,
        origin_tx_hash=incoming.origin_tx_hash or existing.origin_tx_hash,
    )


class MessageLedger:
    """Bounded keyed store of TrackedMessages backed by a KeyValueStore.

    Args:
        store: Persistence boundary.
        storage_key: Key the whole history is written under.
        limit: Maximum number of entries retained.
        now_fn: Clock returning RFC3339 UTC strings (injectable for tests).
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        storage_key: str = DEFAULT_STORAGE_KEY,
        limit: int = HISTORY_LIMIT,
        now_fn: Callable[[], str] = now_utc,
    ) -> None:
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self._store = store
        self._storage_key = storage_key
        self._limit = limit
        self._now = now_fn
        self._messages: list[TrackedMessage] = []
        self._listeners: list[LedgerListener] = []

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def storage_key(self) -> str:
        return self._storage_key

    def messages(self) -> tuple[TrackedMessage, ...]:
        """Snapshot of all entries, most recent first."""
        return tuple(self._messages)

    def get(self, message_id: str) -> TrackedMessage | None:
        index = self._index(message_id)
        return None if index is None else self._messages[index]

    def pending_ids(self) -> tuple[str, ...]:
        """Ids of PENDING entries with a known message id, in ledger order.

        Stable across calls while no mutation happens, so callers can use
        it as a change-detection key.
        """
        return tuple(m.message_id for m in self._messages if m.is_pending and m.has_message_id)

    def pending(self) -> tuple[TrackedMessage, ...]:
        return tuple(m for m in self._messages if m.is_pending and m.has_message_id)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return isinstance(message_id, str) and self._index(message_id) is not None

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def append(self, message: TrackedMessage) -> TrackedMessage:
        """Insert ``message`` at the front, merging with any same-id entry.

        Returns:
            The stored entry (merged when the id was already present).
        """
        stored = message
        if message.has_message_id:
            index = self._index(message.message_id)
            if index is not None:
                stored = merge_messages(self._messages.pop(index), message)

        self._messages.insert(0, stored)
        evicted = self._messages[self._limit :]
        del self._messages[self._limit :]
        if evicted:
            logger.debug("Evicted %d message(s) beyond history limit %d", len(evicted), self._limit)

        logger.info(
            "Tracking %s message %s (%d → %d)",
            stored.kind,
            stored.message_id,
            stored.origin_chain_id,
            stored.destination_chain_id,
        )
        self._changed()
        return stored

    def update_by_id(self, message_id: str, **patch: Any) -> TrackedMessage | None:
        """Merge ``patch`` (TrackedMessage field names) into one entry.

        A status patch that would leave a terminal state is dropped; the
        rest of the patch still applies.

        Returns:
            The updated entry, or None if no entry has that id.

        Raises:
            TypeError: If ``patch`` names a field TrackedMessage lacks.
        """
        index = self._index(message_id)
        if index is None:
            return None

        current = self._messages[index]
        if "status" in patch:
            new_status = MessageStatus(patch["status"])
            if can_transition(current.status, new_status):
                patch["status"] = new_status
            else:
                logger.debug(
                    "Ignoring status %s for %s: already %s",
                    new_status,
                    message_id,
                    current.status,
                )
                del patch["status"]

        updated = current.evolve(**patch)
        if updated == current:
            return current

        self._messages[index] = updated
        if updated.status is not current.status:
            logger.info("Message %s is now %s", message_id, updated.status)
        self._changed()
        return updated

    def remove_by_id(self, message_id: str) -> bool:
        """Remove one entry. Returns False if it was not present."""
        index = self._index(message_id)
        if index is None:
            return False
        del self._messages[index]
        self._changed()
        return True

    def clear(self) -> None:
        """Drop every entry and the persisted blob."""
        self._messages.clear()
        try:
            self._store.remove_item(self._storage_key)
        except Exception:
            logger.warning("Failed to remove persisted history %r", self._storage_key, exc_info=True)
        self._notify()

    def track_manual(self, message_id: str, *, description: str = "Manually tracked message") -> bool:
        """Track a user-entered message id with unknown chains.

        Returns:
            False (and tracks nothing) unless ``message_id`` is a 0x-prefixed
            id other than the bare "0x" placeholder.
        """
        message_id = message_id.strip()
        if not message_id.startswith("0x") or len(message_id) <= 2:
            return False
        now = self._now()
        self.append(
            TrackedMessage(
                message_id=message_id,
                origin_chain_id=0,
                destination_chain_id=0,
                kind=MessageKind.MESSAGE,
                status=MessageStatus.PENDING,
                origin_tx_hash="",
                created_at=now,
                description=description,
                last_checked_at=now,
            )
        )
        return True

    # -----------------------------------------------------------------
    # Change notification
    # -----------------------------------------------------------------

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """Call ``listener(ledger)`` after every mutation.

        Returns:
            A callable that unsubscribes the listener. Safe to call twice.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Ledger listener %r failed", listener)

    def _changed(self) -> None:
        self.save()
        self._notify()

    # -----------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------

    def save(self) -> bool:
        """Write the full history. Returns False if the store failed."""
        envelope = {
            "schemaVersion": SCHEMA_VERSION,
            "history": [m.to_dict() for m in self._messages],
        }
        try:
            self._store.set_item(self._storage_key, _canonical_dumps(envelope))
        except Exception:
            logger.warning("Failed to persist history under %r", self._storage_key, exc_info=True)
            return False
        return True

    def load(self) -> int:
        """Replace the in-memory history with the persisted one.

        Unparseable blobs and unknown schema versions are logged and
        treated as empty. Malformed entries are skipped individually.

        Returns:
            Number of entries loaded.
        """
        raw = self._store.get_item(self._storage_key)
        entries = self._decode(raw) if raw else []

        loaded: list[TrackedMessage] = []
        for entry in entries:
            try:
                validate_history_entry(entry)
                message = TrackedMessage.from_dict(entry)
            except jsonschema.ValidationError as exc:
                logger.warning("Skipping malformed history entry: %s", exc.message)
                continue
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping malformed history entry: %s", exc)
                continue
            if message.has_message_id and any(_same_id(m.message_id, message.message_id) for m in loaded):
                continue
            loaded.append(message)

        self._messages = loaded[: self._limit]
        self._notify()
        return len(self._messages)

    def _decode(self, raw: str) -> list[Any]:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unparseable history under %r", self._storage_key)
            return []

        if isinstance(data, list):
            return data
        if not isinstance(data, dict):
            logger.warning("Ignoring history of type %s", type(data).__name__)
            return []

        version = data.get("schemaVersion", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            logger.warning("Ignoring history with unsupported schemaVersion %r", version)
            return []

        history = data.get("history")
        return history if isinstance(history, list) else []

    def _index(self, message_id: str) -> int | None:
        for i, message in enumerate(self._messages):
            if _same_id(message.message_id, message_id):
                return i
        return None
