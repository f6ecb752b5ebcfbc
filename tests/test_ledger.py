"""
Tests for the message ledger.

Test plan:
- Append: front insertion, same-id merge (case-insensitive), retention limit
- Update: patch applies, monotonic status, no-op patch does not notify
- Remove / clear
- track_manual: accepts 0x ids, rejects everything else
- Persistence: versioned envelope, reload, legacy list/{history} blobs,
  epoch-ms timestamps, malformed entries skipped, bad JSON ignored,
  failing store swallowed
- Listeners: notified per mutation, unsubscribe, failing listener isolated
"""

import json

import pytest

from xchain_flows.ledger import (
    DEFAULT_STORAGE_KEY,
    HISTORY_LIMIT,
    SCHEMA_VERSION,
    MessageLedger,
)
from xchain_flows.models import MessageKind, MessageStatus, TrackedMessage
from xchain_flows.storage import MemoryKeyValueStore, SqliteKeyValueStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SAMPLE_CREATED_AT = "2025-01-15T12:00:00+00:00"


def _id(n: int) -> str:
    return "0x" + f"{n:064x}"


def _make_message(n: int = 1, **overrides: object) -> TrackedMessage:
    kwargs: dict[str, object] = {
        "message_id": _id(n),
        "origin_chain_id": 11155111,
        "destination_chain_id": 43113,
        "kind": MessageKind.BRIDGE,
        "status": MessageStatus.PENDING,
        "origin_tx_hash": "0x" + "aa" * 32,
        "created_at": SAMPLE_CREATED_AT,
        "description": f"message {n}",
    }
    kwargs.update(overrides)
    return TrackedMessage(**kwargs)  # type: ignore[arg-type]


class FailingStore:
    """KeyValueStore whose writes always fail."""

    def get_item(self, key: str) -> str | None:
        return None

    def set_item(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")

    def remove_item(self, key: str) -> None:
        raise OSError("quota exceeded")


def _ledger(store: MemoryKeyValueStore | None = None, **kwargs: object) -> MessageLedger:
    return MessageLedger(store or MemoryKeyValueStore(), **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------


class TestAppend:
    def test_newest_first(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        ledger.append(_make_message(2))
        assert [m.message_id for m in ledger.messages()] == [_id(2), _id(1)]

    def test_same_id_replaces_and_moves_to_front(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        ledger.append(_make_message(2))
        ledger.append(_make_message(1, description="again"))
        assert len(ledger) == 2
        assert ledger.messages()[0].message_id == _id(1)
        assert ledger.messages()[0].description == "again"

    def test_same_id_is_case_insensitive(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1, message_id="0x" + "ab" * 32))
        ledger.append(_make_message(1, message_id="0x" + "AB" * 32))
        assert len(ledger) == 1

    def test_append_is_idempotent(self) -> None:
        ledger = _ledger()
        msg = _make_message(1)
        ledger.append(msg)
        ledger.append(msg)
        assert ledger.messages() == (msg,)

    def test_merge_never_downgrades_terminal_status(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1, status=MessageStatus.DELIVERED, destination_tx_hash="0xdef"))
        stored = ledger.append(_make_message(1))
        assert stored.status is MessageStatus.DELIVERED
        assert stored.destination_tx_hash == "0xdef"

    def test_retention_keeps_most_recent(self) -> None:
        ledger = _ledger()
        for n in range(60):
            ledger.append(_make_message(n))
        assert len(ledger) == HISTORY_LIMIT == 50
        ids = [m.message_id for m in ledger.messages()]
        assert ids[0] == _id(59)
        assert ids[-1] == _id(10)

    def test_custom_limit(self) -> None:
        ledger = _ledger(limit=3)
        for n in range(5):
            ledger.append(_make_message(n))
        assert len(ledger) == 3

    def test_invalid_limit(self) -> None:
        with pytest.raises(ValueError):
            _ledger(limit=0)

    def test_pending_ids_skip_unknown_and_terminal(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        ledger.append(_make_message(2, status=MessageStatus.DELIVERED))
        ledger.append(_make_message(3, message_id="0x"))
        assert ledger.pending_ids() == (_id(1),)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_patch_applies(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        updated = ledger.update_by_id(_id(1), status=MessageStatus.DELIVERED, destination_tx_hash="0xdef")
        assert updated is not None
        assert updated.status is MessageStatus.DELIVERED
        assert ledger.get(_id(1)) == updated

    def test_unknown_id_returns_none(self) -> None:
        assert _ledger().update_by_id(_id(9), status=MessageStatus.DELIVERED) is None

    def test_status_string_accepted(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        updated = ledger.update_by_id(_id(1), status="failed")
        assert updated is not None
        assert updated.status is MessageStatus.FAILED

    def test_delivered_never_returns_to_pending(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        ledger.update_by_id(_id(1), status=MessageStatus.DELIVERED)
        ledger.update_by_id(_id(1), status=MessageStatus.PENDING, last_checked_at="2025-01-16T00:00:00+00:00")
        stored = ledger.get(_id(1))
        assert stored is not None
        assert stored.status is MessageStatus.DELIVERED
        assert stored.last_checked_at == "2025-01-16T00:00:00+00:00"

    def test_failed_never_becomes_delivered(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        ledger.update_by_id(_id(1), status=MessageStatus.FAILED)
        ledger.update_by_id(_id(1), status=MessageStatus.DELIVERED)
        assert ledger.get(_id(1)).status is MessageStatus.FAILED  # type: ignore[union-attr]

    def test_unchanged_patch_does_not_notify(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        calls: list[int] = []
        ledger.subscribe(lambda _: calls.append(1))
        ledger.update_by_id(_id(1), status=MessageStatus.PENDING)
        assert calls == []

    def test_unknown_field_raises(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        with pytest.raises(TypeError):
            ledger.update_by_id(_id(1), colour="blue")


class TestRemoveAndClear:
    def test_remove(self) -> None:
        ledger = _ledger()
        ledger.append(_make_message(1))
        assert ledger.remove_by_id(_id(1)) is True
        assert ledger.remove_by_id(_id(1)) is False
        assert len(ledger) == 0

    def test_clear_removes_persisted_blob(self) -> None:
        store = MemoryKeyValueStore()
        ledger = _ledger(store)
        ledger.append(_make_message(1))
        assert DEFAULT_STORAGE_KEY in store
        ledger.clear()
        assert len(ledger) == 0
        assert DEFAULT_STORAGE_KEY not in store

    def test_clear_survives_store_failure(self) -> None:
        ledger = MessageLedger(FailingStore())
        ledger.append(_make_message(1))
        ledger.clear()
        assert len(ledger) == 0


# ---------------------------------------------------------------------------
# Manual tracking
# ---------------------------------------------------------------------------


class TestTrackManual:
    def test_tracks_pending_with_unknown_chains(self) -> None:
        ledger = _ledger(now_fn=lambda: SAMPLE_CREATED_AT)
        assert ledger.track_manual(_id(7)) is True
        msg = ledger.get(_id(7))
        assert msg is not None
        assert msg.status is MessageStatus.PENDING
        assert msg.origin_chain_id == 0
        assert msg.destination_chain_id == 0
        assert msg.description == "Manually tracked message"
        assert msg.created_at == SAMPLE_CREATED_AT

    @pytest.mark.parametrize("bad", ["", "0x", "abc123", "  ", "1x1234"])
    def test_rejects_invalid(self, bad: str) -> None:
        ledger = _ledger()
        assert ledger.track_manual(bad) is False
        assert len(ledger) == 0


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_saves_versioned_envelope(self) -> None:
        store = MemoryKeyValueStore()
        ledger = _ledger(store)
        ledger.append(_make_message(1))
        data = json.loads(store.get_item(DEFAULT_STORAGE_KEY) or "")
        assert data["schemaVersion"] == SCHEMA_VERSION
        assert data["history"][0]["messageId"] == _id(1)
        assert data["history"][0]["type"] == "bridge"

    def test_reload_round_trip(self) -> None:
        store = SqliteKeyValueStore()
        first = _ledger(store)
        first.append(_make_message(1))
        first.append(_make_message(2, status=MessageStatus.DELIVERED, body="hi"))

        second = _ledger(store)
        assert second.load() == 2
        assert second.messages() == first.messages()

    def test_custom_storage_key(self) -> None:
        store = MemoryKeyValueStore()
        _ledger(store, storage_key="other").append(_make_message(1))
        assert "other" in store
        assert DEFAULT_STORAGE_KEY not in store

    def test_legacy_bare_list(self) -> None:
        legacy = [
            {
                "messageId": _id(1),
                "originChainId": 11155111,
                "destinationChainId": 43113,
                "type": "message",
                "status": "pending",
                "originTxHash": "0xabc",
                "timestamp": 1736942400000,
                "description": "old",
            }
        ]
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps(legacy)})
        ledger = _ledger(store)
        assert ledger.load() == 1
        msg = ledger.get(_id(1))
        assert msg is not None
        assert msg.created_at == "2025-01-15T12:00:00+00:00"
        assert msg.kind is MessageKind.MESSAGE

    def test_legacy_history_object_rewritten_on_save(self) -> None:
        blob = {"history": [_make_message(1).to_dict()]}
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps(blob)})
        ledger = _ledger(store)
        ledger.load()
        assert ledger.save() is True
        data = json.loads(store.get_item(DEFAULT_STORAGE_KEY) or "")
        assert data["schemaVersion"] == SCHEMA_VERSION

    def test_malformed_entries_skipped(self) -> None:
        blob = {
            "schemaVersion": 1,
            "history": [
                {"messageId": _id(1)},
                "not a dict",
                _make_message(2).to_dict(),
                {**_make_message(3).to_dict(), "status": "exploded"},
            ],
        }
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps(blob)})
        ledger = _ledger(store)
        assert ledger.load() == 1
        assert ledger.get(_id(2)) is not None

    def test_schema_rejects_wrong_types(self) -> None:
        bad_chain = {**_make_message(1).to_dict(), "originChainId": "sepolia"}
        bad_id = {**_make_message(2).to_dict(), "messageId": "not-hex"}
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps([bad_chain, bad_id, _make_message(3).to_dict()])})
        ledger = _ledger(store)
        assert ledger.load() == 1
        assert ledger.get(_id(3)) is not None

    def test_duplicates_in_blob_collapse(self) -> None:
        entry = _make_message(1).to_dict()
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps([entry, entry])})
        ledger = _ledger(store)
        assert ledger.load() == 1

    def test_unparseable_blob_is_empty(self) -> None:
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: "{not json"})
        assert _ledger(store).load() == 0

    def test_unknown_schema_version_is_empty(self) -> None:
        blob = {"schemaVersion": 99, "history": [_make_message(1).to_dict()]}
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps(blob)})
        assert _ledger(store).load() == 0

    def test_load_truncates_to_limit(self) -> None:
        blob = [_make_message(n).to_dict() for n in range(10)]
        store = MemoryKeyValueStore({DEFAULT_STORAGE_KEY: json.dumps(blob)})
        ledger = _ledger(store, limit=4)
        assert ledger.load() == 4

    def test_save_failure_is_swallowed(self) -> None:
        ledger = MessageLedger(FailingStore())
        stored = ledger.append(_make_message(1))
        assert ledger.messages() == (stored,)
        assert ledger.save() is False


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------


class TestListeners:
    def test_notified_on_each_mutation(self) -> None:
        ledger = _ledger()
        seen: list[int] = []
        ledger.subscribe(lambda lg: seen.append(len(lg)))
        ledger.append(_make_message(1))
        ledger.update_by_id(_id(1), status=MessageStatus.DELIVERED)
        ledger.remove_by_id(_id(1))
        assert seen == [1, 1, 0]

    def test_unsubscribe(self) -> None:
        ledger = _ledger()
        seen: list[int] = []
        unsubscribe = ledger.subscribe(lambda _: seen.append(1))
        unsubscribe()
        unsubscribe()
        ledger.append(_make_message(1))
        assert seen == []

    def test_failing_listener_does_not_block_others(self) -> None:
        ledger = _ledger()
        seen: list[int] = []

        def boom(_: MessageLedger) -> None:
            raise RuntimeError("listener bug")

        ledger.subscribe(boom)
        ledger.subscribe(lambda _: seen.append(1))
        ledger.append(_make_message(1))
        assert seen == [1]
        assert len(ledger) == 1
