"""
Bridge flow: move a warp-route token from one chain to another.

Steps:
    [approve]  "Approve Token"           collateral tokens with short allowance
    transfer   "Bridge from {origin}"    transferRemote, dispatches the message
    relay      "Deliver to {destination}"

Native routers take the amount as call value on top of the gas fee.
Synthetic and native routers never need an approval.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from xchain_flows.deployments import DeploymentRegistry, TokenType, format_units
from xchain_flows.destination import AllowanceReader
from xchain_flows.errors import RouteErrorCode, RouteUnavailable
from xchain_flows.evm import address_to_bytes32, hex_to_bytes
from xchain_flows.flows.base import FlowController
from xchain_flows.ledger import MessageLedger
from xchain_flows.models import ChainCallRequest, MessageKind, now_utc
from xchain_flows.quotes import BridgeRoute, Quote, QuoteService

logger = logging.getLogger(__name__)

APPROVE = "approve"
TRANSFER = "transfer"
RELAY = "relay"


@dataclass(frozen=True)
class BridgeRequest:
    """What the user filled in on the bridge form.

    ``amount`` is in the token's base units. The recipient defaults to
    the sender's own address on the destination chain.
    """

    origin_chain_id: int
    destination_chain_id: int
    token_symbol: str
    amount: int
    sender: str
    recipient: str | None = None


class BridgeFlowController(FlowController):
    """Approve (if needed) → transferRemote → relay.

    Args:
        ledger: Where the dispatched transfer is tracked.
        registry: Chains and warp routes for the active mode.
        quotes: Prices the transfer.
        allowances: Reads the current ERC-20 allowance. Without one,
            collateral tokens always get an approval step.
    """

    kind = MessageKind.BRIDGE
    dispatch_step = TRANSFER
    relay_step = RELAY

    def __init__(
        self,
        ledger: MessageLedger,
        registry: DeploymentRegistry,
        quotes: QuoteService,
        allowances: AllowanceReader | None = None,
        *,
        now_fn: Callable[[], str] = now_utc,
    ) -> None:
        self.request: BridgeRequest | None = None
        self.quote: Quote | None = None
        self.route_error: RouteUnavailable | None = None
        self.needs_approval = False
        self._quotes = quotes
        self._allowances = allowances
        super().__init__(ledger, registry, now_fn=now_fn)

    # -----------------------------------------------------------------
    # Form
    # -----------------------------------------------------------------

    def set_request(self, request: BridgeRequest) -> RouteUnavailable | None:
        """Replace the form inputs. Drops any previous quote."""
        self.request = request
        self.quote = None
        self.needs_approval = False
        self.route_error = self.check_route(request)
        self.reset_steps()
        return self.route_error

    def check_route(self, request: BridgeRequest) -> RouteUnavailable | None:
        """Whether the token can move between the two chains at all."""
        details = {
            "origin_chain_id": request.origin_chain_id,
            "destination_chain_id": request.destination_chain_id,
            "token": request.token_symbol,
        }
        for chain_id in (request.origin_chain_id, request.destination_chain_id):
            if not self.registry.is_deployed(chain_id):
                return RouteUnavailable(
                    RouteErrorCode.UNKNOWN_CHAIN,
                    f"{self.registry.chain_name(chain_id)} is not supported",
                    details,
                )
        warp = self.registry.warp_route(request.token_symbol)
        if warp is None:
            return RouteUnavailable(
                RouteErrorCode.UNKNOWN_TOKEN,
                f"{request.token_symbol} has no warp route",
                details,
            )
        if request.destination_chain_id not in warp.destinations_from(request.origin_chain_id):
            return RouteUnavailable(
                RouteErrorCode.NOT_BRIDGEABLE,
                f"{request.token_symbol} cannot be bridged to "
                f"{self.registry.chain_name(request.destination_chain_id)}",
                details,
            )
        return None

    async def prepare(self) -> Quote | RouteUnavailable:
        """Quote the current request and work out whether approval is needed.

        Returns:
            The quote, or a RouteUnavailable for the form to show.
        """
        if self.request is None:
            raise ValueError("set_request() must be called before prepare()")
        if self.route_error is not None:
            return self.route_error

        request = self.request
        route = BridgeRoute(request.origin_chain_id, request.destination_chain_id, request.token_symbol)
        try:
            quote = await self._quotes.get_quote(route, request.amount)
        except Exception as exc:
            logger.warning("Bridge quote failed for %s: %s", route, exc)
            self.route_error = RouteUnavailable(
                RouteErrorCode.NO_QUOTE,
                "Could not get a quote for this transfer",
                {"token": request.token_symbol, "reason": str(exc)},
            )
            return self.route_error

        self.quote = quote
        self.needs_approval = await self._needs_approval(quote, request.sender)
        self.reset_steps()
        return quote

    async def _needs_approval(self, quote: Quote, owner: str) -> bool:
        if quote.token_type is not TokenType.COLLATERAL:
            return False
        if self._allowances is None:
            return True
        try:
            current = await self._allowances.allowance(
                quote.route.origin_chain_id, quote.token_address, owner, quote.router_address
            )
        except Exception as exc:
            logger.info("Allowance read failed, asking for approval: %s", exc)
            return True
        return current < quote.required_allowance

    # -----------------------------------------------------------------
    # FlowController hooks
    # -----------------------------------------------------------------

    @property
    def origin_chain_id(self) -> int | None:
        return self.request.origin_chain_id if self.request else None

    @property
    def destination_chain_id(self) -> int | None:
        return self.request.destination_chain_id if self.request else None

    def step_definitions(self) -> Sequence[tuple[str, str]]:
        origin = self.registry.chain_name(self.origin_chain_id) if self.request else "origin"
        destination = self.registry.chain_name(self.destination_chain_id) if self.request else "destination"
        steps = [
            (TRANSFER, f"Bridge from {origin}"),
            (RELAY, f"Deliver to {destination}"),
        ]
        if self.needs_approval:
            steps.insert(0, (APPROVE, "Approve Token"))
        return steps

    def first_step(self) -> str:
        return APPROVE if self.needs_approval else TRANSFER

    def next_step_after(self, step: str) -> str | None:
        return TRANSFER if step == APPROVE else None

    def build_step_call(self, step: str) -> ChainCallRequest | None:
        request, quote = self.request, self.quote
        if request is None or quote is None or self.route_error is not None:
            return None
        if request.amount <= 0:
            return None

        if step == APPROVE:
            return ChainCallRequest(
                chain_id=request.origin_chain_id,
                to=quote.token_address,
                function="approve",
                arg_types=("address", "uint256"),
                args=(quote.router_address.lower(), quote.required_allowance),
            )

        if step == TRANSFER:
            domain = self.registry.domain_id(request.destination_chain_id)
            if domain is None:
                return None
            recipient = request.recipient or request.sender
            value = quote.interchain_gas_fee
            if quote.token_type is TokenType.NATIVE:
                value += request.amount
            return ChainCallRequest(
                chain_id=request.origin_chain_id,
                to=quote.router_address,
                function="transferRemote",
                arg_types=("uint32", "bytes32", "uint256"),
                args=(domain, hex_to_bytes(address_to_bytes32(recipient)), request.amount),
                value=value,
            )

        return None

    def describe(self) -> str:
        if self.request is None:
            return "Bridge"
        warp = self.registry.warp_route(self.request.token_symbol)
        amount = format_units(self.request.amount, warp.decimals) if warp else str(self.request.amount)
        destination = self.registry.chain_name(self.request.destination_chain_id)
        return f"Bridge {amount} {self.request.token_symbol} to {destination}"
