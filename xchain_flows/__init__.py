"""
xchain-flows: cross-chain bridge, message and interchain-account flows
with durable delivery tracking.

The pieces:
    - extractor: message id from a dispatching receipt
    - ledger: bounded, persisted history of tracked messages
    - reconciler: polls pending messages until they settle
    - flows: step machines for the three user operations
"""

from xchain_flows.config import Settings, load_settings
from xchain_flows.deployments import DeploymentRegistry
from xchain_flows.errors import (
    DeploymentNotFound,
    RouteErrorCode,
    RouteUnavailable,
    StatusCheckError,
    SubmissionError,
    SubmissionErrorCode,
    XChainError,
)
from xchain_flows.extractor import extract_message_id
from xchain_flows.ledger import MessageLedger
from xchain_flows.models import (
    DeliveryMode,
    EventRecord,
    MessageKind,
    MessageStatus,
    TrackedMessage,
    TxReceipt,
)
from xchain_flows.reconciler import DeliveryStatusReconciler
from xchain_flows.storage import MemoryKeyValueStore, SqliteKeyValueStore

__version__ = "0.1.0"

__all__ = [
    "DeliveryMode",
    "DeliveryStatusReconciler",
    "DeploymentNotFound",
    "DeploymentRegistry",
    "EventRecord",
    "MemoryKeyValueStore",
    "MessageKind",
    "MessageLedger",
    "MessageStatus",
    "RouteErrorCode",
    "RouteUnavailable",
    "Settings",
    "SqliteKeyValueStore",
    "StatusCheckError",
    "SubmissionError",
    "SubmissionErrorCode",
    "TrackedMessage",
    "TxReceipt",
    "XChainError",
    "extract_message_id",
    "load_settings",
]
