"""
Quote and fee interfaces consumed by the flow controllers.

The controllers only need a quote's output amount, required allowance,
interchain gas fee and router address to build calls. How those numbers
are produced is the QuoteService's business.

OnChainQuoteService reads them from the deployed contracts
(``quoteGasPayment`` / ``quoteDispatch``) through ``eth_call``. Warp
routes transfer 1:1, so output equals input and the required allowance
is the input amount.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from xchain_flows.deployments import DeploymentRegistry, TokenType
from xchain_flows.errors import DeploymentNotFound
from xchain_flows.evm import address_to_bytes32, decode_uint256, hex_to_bytes
from xchain_flows.models import ChainCallRequest
from xchain_flows.rpc import EthJsonRpcClient
from xchain_flows.transport import JsonRpcTransport

logger = logging.getLogger(__name__)

# Gas estimates used when a hosted deployment cannot quote. Self-hosted
# deployments use a MerkleTreeHook that rejects any payment, so their
# fallback is always zero.
BRIDGE_GAS_FALLBACK_WEI = 10**15
MESSAGE_FEE_FALLBACK_WEI = 10**15
ICA_FEE_FALLBACK_WEI = 2 * 10**15

ESTIMATED_DELIVERY_S = 60


@dataclass(frozen=True)
class BridgeRoute:
    """Which token moves where."""

    origin_chain_id: int
    destination_chain_id: int
    token_symbol: str


@dataclass(frozen=True)
class Quote:
    """What a bridge transfer will cost and move.

    Attributes:
        route: The quoted route.
        token_type: How the origin side holds the token.
        token_address: ERC-20 on the origin chain (zero address for native).
        router_address: Origin warp router (transferRemote target and
            approval spender).
        input_amount: Amount sent, in token base units.
        output_amount: Amount received on the destination.
        required_allowance: Allowance the router needs from the sender.
        interchain_gas_fee: Native value paid to relay the message, in wei.
        destination_router_address: Destination warp router.
        estimated_time_s: Rough delivery estimate.
    """

    route: BridgeRoute
    token_type: TokenType
    token_address: str
    router_address: str
    input_amount: int
    output_amount: int
    required_allowance: int
    interchain_gas_fee: int
    destination_router_address: str = ""
    estimated_time_s: int = ESTIMATED_DELIVERY_S


@runtime_checkable
class QuoteService(Protocol):
    """Prices the three kinds of cross-chain operation."""

    async def get_quote(self, route: BridgeRoute, amount: int) -> Quote:
        """Quote a warp transfer of ``amount`` base units."""
        ...

    async def quote_dispatch(
        self,
        origin_chain_id: int,
        destination_chain_id: int,
        recipient: str,
        body: bytes,
    ) -> int:
        """Native fee for ``Mailbox.dispatch``, in wei."""
        ...

    async def quote_ica(self, origin_chain_id: int, destination_chain_id: int) -> int:
        """Native fee for ``InterchainAccountRouter.callRemote``, in wei."""
        ...


class OnChainQuoteService:
    """QuoteService backed by contract view calls on the origin chain.

    Args:
        registry: Supplies routes, routers and RPC endpoints.
        transport: Shared JSON-RPC transport (defaults per client).
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport

    def _client(self, chain_id: int) -> EthJsonRpcClient:
        return EthJsonRpcClient(self._registry.require(chain_id).rpc_url, self._transport)

    def _destination_domain(self, chain_id: int) -> int:
        domain = self._registry.domain_id(chain_id)
        if domain is None:
            raise DeploymentNotFound(chain_id, "domain")
        return domain

    async def _read_uint(self, chain_id: int, call: ChainCallRequest) -> int:
        result = await self._client(chain_id).eth_call(call.to, call.calldata)
        return decode_uint256(result)

    async def get_quote(self, route: BridgeRoute, amount: int) -> Quote:
        """Quote a warp transfer.

        Raises:
            ValueError: The token has no route between the two chains.
            DeploymentNotFound: A chain is not configured.
        """
        warp = self._registry.warp_route(route.token_symbol)
        if warp is None:
            raise ValueError(f"no warp route for {route.token_symbol}")
        origin = warp.token_on(route.origin_chain_id)
        destination = warp.token_on(route.destination_chain_id)
        if origin is None or destination is None:
            raise ValueError("invalid origin or destination chain for this token")

        domain = self._destination_domain(route.destination_chain_id)
        call = ChainCallRequest(
            chain_id=route.origin_chain_id,
            to=origin.router_address,
            function="quoteGasPayment",
            arg_types=("uint32",),
            args=(domain,),
        )
        try:
            gas_fee = await self._read_uint(route.origin_chain_id, call)
        except Exception as exc:
            logger.warning("Gas quote failed on %s, using estimate: %s", origin.router_address, exc)
            gas_fee = BRIDGE_GAS_FALLBACK_WEI

        return Quote(
            route=route,
            token_type=origin.type,
            token_address=origin.token_address,
            router_address=origin.router_address,
            input_amount=amount,
            output_amount=amount,
            required_allowance=amount,
            interchain_gas_fee=gas_fee,
            destination_router_address=destination.router_address,
        )

    async def quote_dispatch(
        self,
        origin_chain_id: int,
        destination_chain_id: int,
        recipient: str,
        body: bytes,
    ) -> int:
        mailbox = self._registry.require(origin_chain_id).mailbox
        call = ChainCallRequest(
            chain_id=origin_chain_id,
            to=mailbox,
            function="quoteDispatch",
            arg_types=("uint32", "bytes32", "bytes"),
            args=(
                self._destination_domain(destination_chain_id),
                hex_to_bytes(address_to_bytes32(recipient)),
                body,
            ),
        )
        return await self._read_uint(origin_chain_id, call)

    async def quote_ica(self, origin_chain_id: int, destination_chain_id: int) -> int:
        router = self._registry.require(origin_chain_id).interchain_account_router
        if router is None:
            raise DeploymentNotFound(origin_chain_id, "interchain account router")
        call = ChainCallRequest(
            chain_id=origin_chain_id,
            to=router,
            function="quoteGasPayment",
            arg_types=("uint32",),
            args=(self._destination_domain(destination_chain_id),),
        )
        return await self._read_uint(origin_chain_id, call)
