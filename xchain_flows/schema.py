from __future__ import annotations

from typing import Any, Dict

import jsonschema  # type: ignore[import-untyped]

# One persisted history entry. Entries from older clients carry epoch-ms
# ``timestamp`` instead of ``createdAt``; either satisfies the schema.
HISTORY_ENTRY_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["messageId", "originChainId", "destinationChainId", "type", "status"],
    "properties": {
        "messageId": {"type": "string", "pattern": "^(0x[0-9a-fA-F]*)?$"},
        "originChainId": {"type": "integer", "minimum": 0},
        "destinationChainId": {"type": "integer", "minimum": 0},
        "type": {"enum": ["bridge", "message", "ica"]},
        "status": {"enum": ["pending", "delivered", "failed"]},
        "originTxHash": {"type": "string"},
        "destinationTxHash": {"type": ["string", "null"]},
        "createdAt": {"type": "string", "minLength": 1},
        "timestamp": {"type": "number"},
        "lastCheckedAt": {"type": ["string", "null"]},
        "lastChecked": {"type": ["number", "null"]},
        "description": {"type": "string"},
        "body": {"type": ["string", "null"]},
    },
    "anyOf": [{"required": ["createdAt"]}, {"required": ["timestamp"]}],
}


def validate(instance: Any, schema: Dict[str, Any]) -> None:
    jsonschema.validate(instance=instance, schema=schema)


def validate_history_entry(entry: Any) -> None:
    """Raise jsonschema.ValidationError unless ``entry`` is a loadable history entry."""
    validate(entry, HISTORY_ENTRY_SCHEMA)
