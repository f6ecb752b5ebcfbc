"""
Drive a FlowController against a signer until it settles on a view.

The signer is any object with ``submit`` and ``await_receipt``; wallets,
test fakes and scripted backends all fit. execute_flow never retries:
a failure is recorded on the controller and returned in the outcome so
the caller can offer retry().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from xchain_flows.errors import SubmissionError, SubmissionErrorCode
from xchain_flows.flows.base import FlowController, FlowView
from xchain_flows.models import ChainCallRequest, TxReceipt

logger = logging.getLogger(__name__)


@runtime_checkable
class Submitter(Protocol):
    """Signs and broadcasts calls, then waits for their receipts."""

    async def submit(self, call: ChainCallRequest) -> str:
        """Broadcast ``call``; return the transaction hash."""
        ...

    async def await_receipt(self, chain_id: int, tx_hash: str) -> TxReceipt:
        ...


@dataclass(frozen=True)
class FlowOutcome:
    """Where execute_flow stopped.

    Attributes:
        completed: The dispatching step confirmed.
        message_id: Tracked id, or None if nothing was tracked.
        origin_tx_hash: Dispatching transaction, when it confirmed.
        error: The classified failure, when a step failed.
        steps_submitted: Transactions broadcast during this run.
    """

    completed: bool
    message_id: str | None = None
    origin_tx_hash: str | None = None
    error: SubmissionError | None = None
    steps_submitted: int = 0

    @property
    def tracked(self) -> bool:
        return self.message_id is not None


async def execute_flow(
    controller: FlowController,
    submitter: Submitter,
    *,
    call: ChainCallRequest | None = None,
) -> FlowOutcome:
    """Run ``controller`` from its first (or given) call to completion or failure.

    Args:
        controller: A prepared flow controller.
        submitter: Signing backend.
        call: Resume from this call (e.g. the result of retry()) instead
            of calling start().

    Returns:
        A FlowOutcome. Nothing is raised for step failures.
    """
    if call is None:
        call = controller.start()
    submitted = 0

    while call is not None:
        step = controller.session.awaiting_step
        assert step is not None
        try:
            tx_hash = await submitter.submit(call)
            submitted += 1
            controller.on_step_submitted(step, tx_hash)
            receipt = await submitter.await_receipt(call.chain_id, tx_hash)
            if not receipt.succeeded:
                raise SubmissionError(
                    f"transaction {receipt.transaction_hash} reverted",
                    code=SubmissionErrorCode.REVERTED,
                    details={"tx_hash": receipt.transaction_hash, "step": step},
                )
        except Exception as exc:
            error = controller.on_step_failure(step, exc)
            return FlowOutcome(completed=False, error=error, steps_submitted=submitted)

        call = controller.on_step_success(step, receipt)

    session = controller.session
    completed = session.origin_tx_hash is not None
    if completed and session.view is not FlowView.PROGRESS:
        logger.info("%s confirmed as %s but no message id was found", controller.kind, session.origin_tx_hash)
    return FlowOutcome(
        completed=completed,
        message_id=session.message_id,
        origin_tx_hash=session.origin_tx_hash,
        steps_submitted=submitted,
    )
