"""
Message flow: send an arbitrary UTF-8 payload through the mailbox.

``Mailbox.dispatch(uint32 destinationDomain, bytes32 recipient, bytes body)``
on the origin chain, addressed to the destination's test recipient. The
step list is the tracking view itself: submitting, confirming, relaying,
delivering.

``last_received()`` reads what the destination test recipient last got,
so a form can show that a previous message arrived.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from xchain_flows.deployments import DeploymentRegistry
from xchain_flows.destination import TestRecipientReader, TestRecipientState
from xchain_flows.evm import address_to_bytes32, hex_to_bytes
from xchain_flows.flows.base import FlowController
from xchain_flows.ledger import MessageLedger
from xchain_flows.models import ChainCallRequest, DeliveryMode, MessageKind, now_utc
from xchain_flows.progress import CONFIRM, SUBMIT, TRACKING_STEPS, StepStatus
from xchain_flows.quotes import MESSAGE_FEE_FALLBACK_WEI, QuoteService

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_CHARS = 30


@dataclass(frozen=True)
class MessageRequest:
    origin_chain_id: int
    destination_chain_id: int
    body: str


class MessageFlowController(FlowController):
    """Single-transaction dispatch of a text message.

    Args:
        ledger: Where the dispatched message is tracked.
        registry: Mailboxes and test recipients for the active mode.
        quotes: Prices the dispatch.
        recipients: Reads the destination test recipient's last message.
    """

    kind = MessageKind.MESSAGE
    dispatch_step = SUBMIT

    def __init__(
        self,
        ledger: MessageLedger,
        registry: DeploymentRegistry,
        quotes: QuoteService,
        recipients: TestRecipientReader | None = None,
        *,
        now_fn: Callable[[], str] = now_utc,
    ) -> None:
        self.request: MessageRequest | None = None
        self.fee: int | None = None
        self._quotes = quotes
        self._recipients = recipients
        super().__init__(ledger, registry, now_fn=now_fn)

    def set_request(self, request: MessageRequest) -> None:
        self.request = request
        self.fee = None

    def recipient(self) -> str | None:
        if self.request is None:
            return None
        deployment = self.registry.deployment(self.request.destination_chain_id)
        return deployment.test_recipient if deployment else None

    async def last_received(self) -> TestRecipientState | None:
        if self.request is None or self._recipients is None:
            return None
        return await self._recipients.read_test_recipient(self.request.destination_chain_id)

    async def refresh_fee(self) -> int | None:
        """Quote the dispatch fee for the current request.

        On a failed quote, self-hosted deployments fall back to zero and
        hosted ones to a fixed estimate.
        """
        request, recipient = self.request, self.recipient()
        if request is None or recipient is None:
            self.fee = None
            return None
        try:
            self.fee = await self._quotes.quote_dispatch(
                request.origin_chain_id,
                request.destination_chain_id,
                recipient,
                request.body.encode("utf-8"),
            )
        except Exception as exc:
            fallback = 0 if self.mode is DeliveryMode.SELF_HOSTED else MESSAGE_FEE_FALLBACK_WEI
            logger.warning("Dispatch quote failed, using %d wei: %s", fallback, exc)
            self.fee = fallback
        return self.fee

    @property
    def origin_chain_id(self) -> int | None:
        return self.request.origin_chain_id if self.request else None

    @property
    def destination_chain_id(self) -> int | None:
        return self.request.destination_chain_id if self.request else None

    def step_definitions(self) -> Sequence[tuple[str, str]]:
        return TRACKING_STEPS

    def build_step_call(self, step: str) -> ChainCallRequest | None:
        if step != SUBMIT or self.request is None or not self.request.body:
            return None
        origin = self.registry.deployment(self.request.origin_chain_id)
        domain = self.registry.domain_id(self.request.destination_chain_id)
        recipient = self.recipient()
        if origin is None or domain is None or recipient is None:
            return None
        return ChainCallRequest(
            chain_id=origin.chain_id,
            to=origin.mailbox,
            function="dispatch",
            arg_types=("uint32", "bytes32", "bytes"),
            args=(domain, hex_to_bytes(address_to_bytes32(recipient)), self.request.body.encode("utf-8")),
            value=self.fee or 0,
        )

    def on_step_submitted(self, step: str, tx_hash: str) -> None:
        """Broadcast counts as submitted; confirmation is what we wait on."""
        self._expect(step)
        self.steps.complete(SUBMIT, tx_hash)
        if self.steps.get(CONFIRM).status is StepStatus.PENDING:
            self.steps.activate(CONFIRM)

    def describe(self) -> str:
        body = self.request.body if self.request else ""
        if len(body) > DESCRIPTION_PREVIEW_CHARS:
            body = body[:DESCRIPTION_PREVIEW_CHARS] + "..."
        return f'Message: "{body}"'
