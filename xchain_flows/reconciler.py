"""
Delivery status reconciliation: poll pending messages until they settle.

One asyncio task polls while the ledger holds pollable messages: pending,
with a known id, and not stale. The task is keyed on that id tuple. When
the tuple changes between cycles the task is replaced by a fresh one,
which checks immediately and then every ``interval_s``. A change during a
cycle lets the cycle finish and apply its results, then the loop checks
again at once. When nothing is pollable no task exists.

Backends, selected once by DeliveryMode:
    - HOSTED: ExplorerStatusClient.get_status(id, origin_chain_id).
      Delivered carries the destination tx hash and the decoded body.
    - SELF_HOSTED: a DestinationChainReader bound to the message's
      DESTINATION chain (never the wallet's chain). ``delivered(id)``
      true means Delivered; no destination hash is available this way.

Cycle semantics:
    - All eligible messages are checked concurrently.
    - A failure for one message is logged and counts as "checked,
      unchanged"; it never affects the others.
    - Results are applied after the whole cycle; every attempt refreshes
      last_checked_at, success or failure.
    - Status only moves Pending → Delivered/Failed (the ledger enforces
      it), so a settled message leaves the pending set for good.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence

from xchain_flows.destination import DestinationReaderSource
from xchain_flows.evm import decode_message_body
from xchain_flows.explorer import PENDING_RESULT, ExplorerStatusClient, StatusResult
from xchain_flows.ledger import MessageLedger
from xchain_flows.models import (
    DeliveryMode,
    MessageStatus,
    TrackedMessage,
    now_utc,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

POLLING_INTERVAL_S = 3.0

DELIVERED_RESULT = StatusResult(status=MessageStatus.DELIVERED)


class DeliveryStatusReconciler:
    """Keeps pending ledger entries in sync with their delivery status.

    Args:
        ledger: The ledger to read pending messages from and write
            results to.
        mode: Which status backend to use.
        destination_readers: Source of per-chain readers (self-hosted).
        explorer: Explorer client (hosted).
        interval_s: Seconds between poll cycles.
        stale_after_s: When set, pending messages older than this are no
            longer polled. They stay PENDING and are listed by stale_ids().
        now_fn: Clock returning RFC3339 UTC strings.

    Raises:
        ValueError: The backend the mode needs was not supplied, or the
            interval is not positive.
    """

    def __init__(
        self,
        ledger: MessageLedger,
        mode: DeliveryMode,
        *,
        destination_readers: DestinationReaderSource | None = None,
        explorer: ExplorerStatusClient | None = None,
        interval_s: float = POLLING_INTERVAL_S,
        stale_after_s: float | None = None,
        now_fn: Callable[[], str] = now_utc,
    ) -> None:
        mode = DeliveryMode(mode)
        if mode is DeliveryMode.HOSTED and explorer is None:
            raise ValueError("hosted mode requires an explorer client")
        if mode is DeliveryMode.SELF_HOSTED and destination_readers is None:
            raise ValueError("self-hosted mode requires destination readers")
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")

        self._ledger = ledger
        self._mode = mode
        self._readers = destination_readers
        self._explorer = explorer
        self._interval_s = interval_s
        self._stale_after_s = stale_after_s
        self._now = now_fn

        self._task: asyncio.Task[None] | None = None
        self._pending_key: tuple[str, ...] = ()
        self._unsubscribe: Callable[[], None] | None = None
        self._applying = False
        self._dirty = False
        self._in_cycle = False
        self._restart = False

    @property
    def mode(self) -> DeliveryMode:
        return self._mode

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_started(self) -> bool:
        return self._unsubscribe is not None

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def start(self) -> None:
        """Begin watching the ledger. Must be called inside a running loop.

        Raises:
            RuntimeError: No running event loop.
        """
        asyncio.get_running_loop()
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._ledger.subscribe(self._on_ledger_change)
        self._pending_key = ()
        self._reevaluate()

    async def stop(self) -> None:
        """Stop watching and cancel any running poll task."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._pending_key = ()
        await self._cancel_task()

    async def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _on_ledger_change(self, ledger: MessageLedger) -> None:
        if self._applying:
            self._dirty = True
            return
        self._reevaluate()

    def _reevaluate(self) -> None:
        key = self._pollable_ids()
        if key == self._pending_key and (self.is_polling or not key):
            return

        self._pending_key = key
        if self.is_polling and self._in_cycle:
            # The running cycle applies its results first, then restarts.
            self._restart = True
            return

        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

        if key:
            logger.debug("Pending set changed (%d id(s)); restarting poll loop", len(key))
            self._task = asyncio.get_running_loop().create_task(self._run(), name="xchain-reconciler")
        else:
            logger.debug("Nothing pending; poll loop stopped")

    async def _run(self) -> None:
        while True:
            self._restart = False
            self._in_cycle = True
            try:
                await self.check_once()
            except Exception:
                logger.exception("Poll cycle failed")
            finally:
                self._in_cycle = False
            self._pending_key = self._pollable_ids()
            if not self._pending_key:
                logger.debug("Nothing pending; poll loop stopped")
                return
            if self._restart:
                logger.debug("Pending set changed (%d id(s)); restarting poll loop", len(self._pending_key))
                continue
            await asyncio.sleep(self._interval_s)

    def _pollable_ids(self) -> tuple[str, ...]:
        return tuple(m.message_id for m in self._ledger.pending() if not self._is_stale(m))

    # -----------------------------------------------------------------
    # Polling
    # -----------------------------------------------------------------

    def stale_ids(self) -> tuple[str, ...]:
        """Pending ids no longer polled because they exceeded stale_after_s."""
        return tuple(m.message_id for m in self._ledger.pending() if self._is_stale(m))

    async def check_once(self) -> int:
        """Run one poll cycle over the eligible pending messages.

        Returns:
            Number of messages checked.
        """
        eligible = [m for m in self._ledger.pending() if not self._is_stale(m)]
        if not eligible:
            return 0
        logger.debug("Checking %d pending message(s) via %s", len(eligible), self._mode)
        await self._check_and_apply(eligible)
        return len(eligible)

    async def refresh_all(self) -> int:
        """Re-check every entry with a known id, settled ones included.

        Settled entries can only gain data (hashes, body, check time);
        their status never changes.

        Returns:
            Number of messages checked.
        """
        targets = [m for m in self._ledger.messages() if m.has_message_id]
        if targets:
            await self._check_and_apply(targets)
        return len(targets)

    async def _check_and_apply(self, messages: Sequence[TrackedMessage]) -> None:
        results = await asyncio.gather(*(self._check(m) for m in messages))

        self._applying = True
        self._dirty = False
        try:
            for message, result in zip(messages, results):
                self._apply(message, result)
        finally:
            self._applying = False

        if self._dirty and self.is_started:
            self._dirty = False
            self._reevaluate()

    async def _check(self, message: TrackedMessage) -> StatusResult | None:
        """One isolated status check. None means the check failed."""
        try:
            if self._mode is DeliveryMode.SELF_HOSTED:
                assert self._readers is not None
                reader = self._readers.for_chain(message.destination_chain_id)
                delivered = await reader.delivered(message.message_id)
                return DELIVERED_RESULT if delivered else PENDING_RESULT

            assert self._explorer is not None
            return await self._explorer.get_status(message.message_id, message.origin_chain_id or None)
        except Exception as exc:
            logger.warning("Status check failed for %s: %s", message.message_id, exc)
            return None

    def _apply(self, message: TrackedMessage, result: StatusResult | None) -> None:
        patch: dict[str, object] = {"last_checked_at": self._now()}
        if result is not None and result.status is not MessageStatus.PENDING:
            patch["status"] = result.status
            if result.destination_tx_hash:
                patch["destination_tx_hash"] = result.destination_tx_hash
            body = decode_message_body(result.body)
            if body is not None:
                patch["body"] = body
        self._ledger.update_by_id(message.message_id, **patch)

    def _is_stale(self, message: TrackedMessage) -> bool:
        if self._stale_after_s is None:
            return False
        try:
            age = parse_timestamp(self._now()) - parse_timestamp(message.created_at)
        except ValueError:
            return False
        return age.total_seconds() > self._stale_after_s
