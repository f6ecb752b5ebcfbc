"""
Interchain account flow: execute calls on the destination chain from the
sender's interchain account.

``InterchainAccountRouter.callRemote(uint32 destination, (bytes32,uint256,bytes)[] calls)``
on the origin chain. Chains without an ICA router in the active
registry cannot start this flow.

Before submitting, a form can show where the calls will run from:
``remote_account(owner)`` reads the sender's interchain account address
on the destination chain.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from xchain_flows.deployments import DeploymentRegistry
from xchain_flows.destination import InterchainAccountReader
from xchain_flows.evm import address_to_bytes32, hex_to_bytes
from xchain_flows.flows.base import FlowController
from xchain_flows.ledger import MessageLedger
from xchain_flows.models import ChainCallRequest, DeliveryMode, MessageKind, now_utc
from xchain_flows.progress import DELIVER, RELAY, SUBMIT
from xchain_flows.quotes import ICA_FEE_FALLBACK_WEI, QuoteService

logger = logging.getLogger(__name__)

ICA_STEPS: tuple[tuple[str, str], ...] = (
    (SUBMIT, "Submit ICA call"),
    (RELAY, "Relaying cross-chain"),
    (DELIVER, "Execute on destination"),
)


@dataclass(frozen=True)
class IcaCall:
    """One call the interchain account will make on the destination."""

    to: str
    value: int = 0
    data: str = "0x"

    def as_abi_tuple(self) -> tuple[bytes, int, bytes]:
        return (hex_to_bytes(address_to_bytes32(self.to)), self.value, hex_to_bytes(self.data))


@dataclass(frozen=True)
class IcaRequest:
    origin_chain_id: int
    destination_chain_id: int
    calls: tuple[IcaCall, ...]


class IcaFlowController(FlowController):
    """Submit → relay → execute.

    Args:
        ledger: Where the call is tracked.
        registry: ICA routers for the active mode.
        quotes: Prices callRemote.
        accounts: Resolves remote interchain account addresses.
    """

    kind = MessageKind.ICA
    dispatch_step = SUBMIT

    def __init__(
        self,
        ledger: MessageLedger,
        registry: DeploymentRegistry,
        quotes: QuoteService,
        accounts: InterchainAccountReader | None = None,
        *,
        now_fn: Callable[[], str] = now_utc,
    ) -> None:
        self.request: IcaRequest | None = None
        self.fee: int | None = None
        self._quotes = quotes
        self._accounts = accounts
        super().__init__(ledger, registry, now_fn=now_fn)

    def set_request(self, request: IcaRequest) -> None:
        self.request = request
        self.fee = None

    def router(self) -> str | None:
        if self.request is None:
            return None
        deployment = self.registry.deployment(self.request.origin_chain_id)
        return deployment.interchain_account_router if deployment else None

    async def remote_account(self, owner: str) -> str | None:
        """``owner``'s interchain account on the destination, if resolvable."""
        if self.request is None or self._accounts is None or self.router() is None:
            return None
        return await self._accounts.remote_interchain_account(
            self.request.origin_chain_id, self.request.destination_chain_id, owner
        )

    async def refresh_fee(self) -> int | None:
        """Quote the callRemote gas payment, falling back like the message flow."""
        if self.request is None or self.router() is None:
            self.fee = None
            return None
        try:
            self.fee = await self._quotes.quote_ica(self.request.origin_chain_id, self.request.destination_chain_id)
        except Exception as exc:
            fallback = 0 if self.mode is DeliveryMode.SELF_HOSTED else ICA_FEE_FALLBACK_WEI
            logger.warning("ICA quote failed, using %d wei: %s", fallback, exc)
            self.fee = fallback
        return self.fee

    @property
    def origin_chain_id(self) -> int | None:
        return self.request.origin_chain_id if self.request else None

    @property
    def destination_chain_id(self) -> int | None:
        return self.request.destination_chain_id if self.request else None

    def step_definitions(self) -> Sequence[tuple[str, str]]:
        return ICA_STEPS

    def build_step_call(self, step: str) -> ChainCallRequest | None:
        request, router = self.request, self.router()
        if step != SUBMIT or request is None or router is None or self.fee is None:
            return None
        if not request.calls:
            return None
        domain = self.registry.domain_id(request.destination_chain_id)
        if domain is None:
            return None
        return ChainCallRequest(
            chain_id=request.origin_chain_id,
            to=router,
            function="callRemote",
            arg_types=("uint32", "(bytes32,uint256,bytes)[]"),
            args=(domain, tuple(call.as_abi_tuple() for call in request.calls)),
            value=self.fee,
        )

    def describe(self) -> str:
        target = self.request.calls[0].to if self.request and self.request.calls else ""
        return f"ICA call to {target[:10]}..."
