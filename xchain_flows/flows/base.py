"""
Shared step machine for the three cross-chain flows.

A FlowController owns one user-initiated operation at a time:

    start() ──► build_step_call(first) ──► [signer] ──► on_step_submitted
                                                   ──► on_step_success ──► next call | None
                                                   ──► on_step_failure ──► retry()

Invariants:
    - Steps run strictly in order. A step's call is only built after the
      previous step's receipt is confirmed; ProgressState rejects any
      out-of-order transition.
    - Only the dispatching step's receipt creates a TrackedMessage, and
      only when a message id can be extracted from it. Nothing is
      tracked optimistically.
    - A failed step stays on the form: no ledger entry, no tracking view.
    - dismiss() clears the visual session only. The ledger entry, if
      any, lives on and keeps being polled.

While a message is tracked the controller listens to the ledger and
mirrors the entry's status into its own steps and the tracking view.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from xchain_flows.deployments import DeploymentRegistry
from xchain_flows.errors import SubmissionError, SubmissionErrorCode, classify_submission_error
from xchain_flows.extractor import extract_message_id, is_known_message_id
from xchain_flows.ledger import MessageLedger
from xchain_flows.models import (
    ChainCallRequest,
    DeliveryMode,
    MessageKind,
    MessageStatus,
    TrackedMessage,
    TxReceipt,
    now_utc,
)
from xchain_flows.progress import CONFIRM, RELAY, SUBMIT, ProgressState, StepStatus

logger = logging.getLogger(__name__)

NOTICE_NO_MESSAGE_ID = "dispatched-without-message-id"


class FlowView(StrEnum):
    FORM = "form"
    PROGRESS = "progress"


@dataclass
class FlowSession:
    """Ephemeral state of one in-progress operation. Never persisted."""

    view: FlowView = FlowView.FORM
    awaiting_step: str | None = None
    pending_call: ChainCallRequest | None = None
    message_id: str | None = None
    origin_tx_hash: str | None = None
    error: str | None = None
    error_code: SubmissionErrorCode | None = None
    notice: str | None = None


class FlowController:
    """Base class for Bridge, Message and InterchainAccountCall flows.

    Subclasses define the step list, which step dispatches the message,
    how each step's call is built and how the tracked message is
    described.

    Args:
        ledger: Where dispatched messages are tracked.
        registry: Deployments for the controller's mode.
        now_fn: Clock returning RFC3339 UTC strings.
    """

    kind: MessageKind
    dispatch_step: str
    relay_step: str = RELAY

    def __init__(
        self,
        ledger: MessageLedger,
        registry: DeploymentRegistry,
        *,
        now_fn: Callable[[], str] = now_utc,
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self._now = now_fn
        self.session = FlowSession()
        self.steps = ProgressState.create(self.step_definitions())
        self.progress: ProgressState | None = None
        self._unsubscribe: Callable[[], None] | None = ledger.subscribe(self._on_ledger_change)

    @property
    def mode(self) -> DeliveryMode:
        return self.registry.mode

    # -----------------------------------------------------------------
    # Subclass hooks
    # -----------------------------------------------------------------

    def step_definitions(self) -> Sequence[tuple[str, str]]:
        """(id, label) pairs for this flow's own step list."""
        raise NotImplementedError

    def first_step(self) -> str:
        return self.dispatch_step

    def build_step_call(self, step: str) -> ChainCallRequest | None:
        """Contract call for ``step``, or None if inputs are missing."""
        raise NotImplementedError

    def next_step_after(self, step: str) -> str | None:
        """Step to auto-advance to after ``step`` succeeds (non-dispatch steps)."""
        return None

    def describe(self) -> str:
        """Human label for the tracked message."""
        raise NotImplementedError

    @property
    def origin_chain_id(self) -> int | None:
        raise NotImplementedError

    @property
    def destination_chain_id(self) -> int | None:
        raise NotImplementedError

    # -----------------------------------------------------------------
    # Step machine
    # -----------------------------------------------------------------

    def start(self) -> ChainCallRequest | None:
        """Reset the session and build the first step's call.

        Returns:
            The call to sign, or None when the flow cannot proceed yet.
        """
        self.session = FlowSession()
        self.progress = None
        self.reset_steps()
        return self._present(self.first_step())

    def reset_steps(self) -> None:
        """Rebuild this flow's own step list, all PENDING."""
        self.steps = ProgressState.create(self.step_definitions())

    def _present(self, step: str) -> ChainCallRequest | None:
        call = self.build_step_call(step)
        if call is None:
            return None
        self.steps.activate(step)
        self.session.awaiting_step = step
        self.session.pending_call = call
        return call

    def _expect(self, step: str) -> None:
        if step != self.session.awaiting_step:
            raise ValueError(f"step {step!r} is not awaiting a signature (awaiting {self.session.awaiting_step!r})")

    def on_step_submitted(self, step: str, tx_hash: str) -> None:
        """The signer broadcast ``step``'s transaction; not yet confirmed."""
        self._expect(step)
        self.steps.set_status(step, StepStatus.ACTIVE, tx_hash=tx_hash)

    def on_step_success(self, step: str, receipt: TxReceipt) -> ChainCallRequest | None:
        """Advance after ``step``'s receipt is confirmed.

        Returns:
            The next step's call when the machine auto-advances
            (approve → transfer), otherwise None.
        """
        self._expect(step)
        self.session.pending_call = None
        self.session.awaiting_step = None

        if step != self.dispatch_step:
            self.steps.complete(step, receipt.transaction_hash)
            following = self.next_step_after(step)
            return self._present(following) if following is not None else None

        self._on_dispatched(receipt)
        return None

    def _on_dispatched(self, receipt: TxReceipt) -> None:
        tx_hash = receipt.transaction_hash
        self.session.origin_tx_hash = tx_hash

        for own in self.steps.steps:
            if own.id == self.relay_step:
                break
            if own.status is not StepStatus.COMPLETE:
                self.steps.complete(own.id, tx_hash)

        message_id = extract_message_id(receipt.logs)
        if not is_known_message_id(message_id):
            logger.warning("No message id in receipt %s; %s not tracked", tx_hash, self.kind)
            self.session.notice = NOTICE_NO_MESSAGE_ID
            return

        self.steps.activate(self.relay_step)
        progress = ProgressState.tracking()
        progress.complete(SUBMIT, tx_hash)
        progress.complete(CONFIRM, tx_hash)
        progress.activate(RELAY)
        self.progress = progress
        self.session.message_id = message_id
        self.session.view = FlowView.PROGRESS

        now = self._now()
        stored = self.ledger.append(
            TrackedMessage(
                message_id=message_id,
                origin_chain_id=self.origin_chain_id or 0,
                destination_chain_id=self.destination_chain_id or 0,
                kind=self.kind,
                status=MessageStatus.PENDING,
                origin_tx_hash=tx_hash,
                created_at=now,
                description=self.describe(),
                last_checked_at=now,
            )
        )
        self._mirror(stored)

    def on_step_failure(self, step: str, error: BaseException) -> SubmissionError:
        """Mark the failing step as errored and halt on the form.

        The ledger is never touched.

        Returns:
            The classified error.
        """
        self._expect(step)
        classified = classify_submission_error(error)

        target = step
        if self.steps.get(step).status is StepStatus.COMPLETE:
            active = self.steps.active_step
            target = active.id if active is not None else step
        self.steps.fail(target, str(classified))

        self.session.pending_call = None
        self.session.error = str(classified)
        self.session.error_code = classified.code
        self.session.view = FlowView.FORM
        logger.info("%s step %s failed (%s): %s", self.kind, step, classified.code, classified)
        return classified

    def retry(self) -> ChainCallRequest | None:
        """Rebuild the call for the step that failed."""
        step = self.session.awaiting_step
        if step is None or not self.steps.has_error:
            return None
        self.steps.reset_from(step)
        self.session.error = None
        self.session.error_code = None
        return self._present(step)

    def dismiss(self) -> None:
        """Close the progress view. The ledger entry is left alone."""
        self.session = FlowSession()
        self.progress = None
        self.reset_steps()

    def close(self) -> None:
        """Stop listening to the ledger."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -----------------------------------------------------------------
    # Ledger mirroring
    # -----------------------------------------------------------------

    def _on_ledger_change(self, ledger: MessageLedger) -> None:
        message_id = self.session.message_id
        if message_id is None:
            return
        entry = ledger.get(message_id)
        if entry is not None:
            self._mirror(entry)

    def _mirror(self, entry: TrackedMessage) -> None:
        self.steps.apply_message(entry)
        if self.progress is not None:
            self.progress.apply_message(entry)
