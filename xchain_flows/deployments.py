"""
Deployment registry: chains, mailboxes, routers and warp routes per mode.

Two static tables exist, one per DeliveryMode:

    - SELF_HOSTED: our own mailbox/ICA/test-recipient deployments on four
      testnets, plus the USDC and IP warp routes between them.
    - HOSTED: official Hyperlane mailboxes, ICA routers and test
      recipients on seven mainnets and three testnets, plus the DAI warp
      route between Arbitrum, BNB Chain and Polygon.

A DeploymentRegistry is bound to exactly one mode at construction time.
Nothing reads a global "current mode"; callers pass the registry they
want. RPC endpoints can be overridden per chain (see config).

For every chain here the Hyperlane domain id equals the chain id.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import StrEnum

from xchain_flows.errors import DeploymentNotFound
from xchain_flows.models import DeliveryMode


class TokenType(StrEnum):
    """How a warp route holds the token on one chain."""

    COLLATERAL = "collateral"
    SYNTHETIC = "synthetic"
    NATIVE = "native"


@dataclass(frozen=True)
class ChainDeployment:
    """Hyperlane contracts and endpoints for one chain.

    Attributes:
        chain_id: EVM chain id.
        name: Display name.
        domain_id: Hyperlane domain id used in dispatch/transferRemote.
        mailbox: Mailbox contract address.
        rpc_url: Read-only JSON-RPC endpoint.
        explorer_url: Block explorer root.
        interchain_account_router: ICA router, when deployed.
        test_recipient: Recipient contract for test messages, when deployed.
        native_symbol: Symbol of the chain's gas token.
        is_testnet: Whether the chain is a testnet.
    """

    chain_id: int
    name: str
    domain_id: int
    mailbox: str
    rpc_url: str
    explorer_url: str = ""
    interchain_account_router: str | None = None
    test_recipient: str | None = None
    native_symbol: str = "ETH"
    is_testnet: bool = True

    def tx_url(self, tx_hash: str) -> str | None:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


@dataclass(frozen=True)
class WarpToken:
    """One chain's side of a warp route."""

    chain_id: int
    router_address: str
    token_address: str
    type: TokenType

    @property
    def needs_approval(self) -> bool:
        """Only collateral routers pull an ERC-20 via transferFrom."""
        return self.type is TokenType.COLLATERAL


@dataclass(frozen=True)
class WarpRoute:
    """A token bridgeable between a fixed set of chains."""

    symbol: str
    name: str
    decimals: int
    chains: tuple[WarpToken, ...]

    @property
    def chain_ids(self) -> tuple[int, ...]:
        return tuple(c.chain_id for c in self.chains)

    def token_on(self, chain_id: int) -> WarpToken | None:
        for token in self.chains:
            if token.chain_id == chain_id:
                return token
        return None

    def destinations_from(self, origin_chain_id: int) -> tuple[int, ...]:
        """Chains this route reaches from ``origin_chain_id`` (empty if not on it)."""
        if self.token_on(origin_chain_id) is None:
            return ()
        return tuple(c for c in self.chain_ids if c != origin_chain_id)


def format_units(amount: int, decimals: int) -> str:
    """Render a base-unit integer amount as a decimal string."""
    value = Decimal(amount).scaleb(-decimals)
    return format(value.normalize(), "f")


# =========================================================================
# Static deployment tables
# =========================================================================

_ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Official Hyperlane deployments. Interchain account routers are only
# published for mainnets; the testnets here can message but not run
# ICA calls.
HOSTED_DEPLOYMENTS: dict[int, ChainDeployment] = {
    1: ChainDeployment(
        chain_id=1,
        name="Ethereum",
        domain_id=1,
        mailbox="0xc005dc82818d67AF737725bD4bf75435d065D239",
        rpc_url="https://ethereum-rpc.publicnode.com",
        explorer_url="https://etherscan.io",
        interchain_account_router="0xC00b94c115742f711a6F9EA90373c33e9B72A4A9",
        test_recipient="0x36FdA966CfffF8a9Cdc814f546db0e6378bFef35",
        is_testnet=False,
    ),
    10: ChainDeployment(
        chain_id=10,
        name="Optimism",
        domain_id=10,
        mailbox="0xd4C1905BB1D26BC93DAC913e13CaCC278CdCC80D",
        rpc_url="https://mainnet.optimism.io",
        explorer_url="https://optimistic.etherscan.io",
        interchain_account_router="0x3E343D07D024E657ECF1f8Ae8bb7a12f08652E75",
        test_recipient="0x36FdA966CfffF8a9Cdc814f546db0e6378bFef35",
        is_testnet=False,
    ),
    56: ChainDeployment(
        chain_id=56,
        name="BNB Chain",
        domain_id=56,
        mailbox="0x2971b9Aec44bE4eb673DF1B88cDB57b96eefe8a4",
        rpc_url="https://bsc-dataseed.binance.org",
        explorer_url="https://bscscan.com",
        interchain_account_router="0xf453B589F0166b90e050691EAc281C01a8959897",
        test_recipient="0x36FdA966CfffF8a9Cdc814f546db0e6378bFef35",
        native_symbol="BNB",
        is_testnet=False,
    ),
    137: ChainDeployment(
        chain_id=137,
        name="Polygon",
        domain_id=137,
        mailbox="0x5d934f4e2f797775e53561bB72aca21ba36B96BB",
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
        interchain_account_router="0xd8B641FEb587844854aeC97544ccEA426DFF04a3",
        test_recipient="0x36FdA966CfffF8a9Cdc814f546db0e6378bFef35",
        native_symbol="POL",
        is_testnet=False,
    ),
    8453: ChainDeployment(
        chain_id=8453,
        name="Base",
        domain_id=8453,
        mailbox="0xeA87ae93Fa0019a82A727bfd3eBd1cFCa8f64f1D",
        rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
        interchain_account_router="0x44647Cd983E80558793780f9a0c7C2aa9F384D07",
        test_recipient="0xb7C9307fE90B9AB093c6D3EdeE3259f5378D5f03",
        is_testnet=False,
    ),
    42161: ChainDeployment(
        chain_id=42161,
        name="Arbitrum",
        domain_id=42161,
        mailbox="0x979Ca5202784112f4738403dBec5D0F3B9daabB9",
        rpc_url="https://arb1.arbitrum.io/rpc",
        explorer_url="https://arbiscan.io",
        interchain_account_router="0xF90A3d406C6F8321fe118861A357F4D7107760D7",
        test_recipient="0x36FdA966CfffF8a9Cdc814f546db0e6378bFef35",
        is_testnet=False,
    ),
    43114: ChainDeployment(
        chain_id=43114,
        name="Avalanche",
        domain_id=43114,
        mailbox="0xFf06aFcaABaDDd1fb08371f9ccA15D73D51FeBD6",
        rpc_url="https://api.avax.network/ext/bc/C/rpc",
        explorer_url="https://snowtrace.io",
        interchain_account_router="0x2c58687fFfCD5b7043a5bF256B196216a98a6587",
        test_recipient="0x36FdA966CfffF8a9Cdc814f546db0e6378bFef35",
        native_symbol="AVAX",
        is_testnet=False,
    ),
    11155111: ChainDeployment(
        chain_id=11155111,
        name="Sepolia",
        domain_id=11155111,
        mailbox="0xfFAEF09B3cd11D9b20d1a19bECca54EEC2884766",
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        explorer_url="https://sepolia.etherscan.io",
        test_recipient="0xeDc1A3EDf87187085A3ABb7A9a65E1e7aE370C07",
    ),
    421614: ChainDeployment(
        chain_id=421614,
        name="Arbitrum Sepolia",
        domain_id=421614,
        mailbox="0x598facE78a4302f11E3de0bee1894Da0b2Cb71F8",
        rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
        explorer_url="https://sepolia.arbiscan.io",
        test_recipient="0x6c13643B3927C57DB92c790E4E3E7Ee81e13f78C",
    ),
    84532: ChainDeployment(
        chain_id=84532,
        name="Base Sepolia",
        domain_id=84532,
        mailbox="0x6966b0E55883d49BFB24539356a2f8A673E02039",
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        test_recipient="0x783c4a0bB6663359281aD4a637D5af68F83ae213",
    ),
}

HOSTED_WARP_ROUTES: tuple[WarpRoute, ...] = (
    # Collateral on every side: each chain locks its native DAI.
    WarpRoute(
        symbol="DAI",
        name="Dai Stablecoin",
        decimals=18,
        chains=(
            WarpToken(
                42161,
                "0x1e59F72de6c00c456f7F42708FE8b6b0782E84C6",
                "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
                TokenType.COLLATERAL,
            ),
            WarpToken(
                56,
                "0x7379A18963039eA1284050b585f422e8156c9eC0",
                "0x1AF3F329e8BE154074D8769D1FFa4eE058B1DBc3",
                TokenType.COLLATERAL,
            ),
            WarpToken(
                137,
                "0x1E71a8d870F0C491d4fCC965A59493b8B7564949",
                "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063",
                TokenType.COLLATERAL,
            ),
        ),
    ),
)


# =========================================================================
# Registry
# =========================================================================


class DeploymentRegistry:
    """Mode-bound view over the deployment tables.

    Args:
        mode: Which table to use.
        deployments: Override the chain table (tests, custom networks).
        warp_routes: Override the warp route table.
        rpc_overrides: chain id → RPC URL, applied on top of the table.
    """

    def __init__(
        self,
        mode: DeliveryMode,
        *,
        deployments: Mapping[int, ChainDeployment] | None = None,
        warp_routes: Iterable[WarpRoute] | None = None,
        rpc_overrides: Mapping[int, str] | None = None,
    ) -> None:
        self._mode = DeliveryMode(mode)
        if deployments is None:
            deployments = HOSTED_DEPLOYMENTS if self._mode is DeliveryMode.HOSTED else SELF_HOSTED_DEPLOYMENTS
        if warp_routes is None:
            warp_routes = HOSTED_WARP_ROUTES if self._mode is DeliveryMode.HOSTED else SELF_HOSTED_WARP_ROUTES

        table = dict(deployments)
        for chain_id, url in (rpc_overrides or {}).items():
            if chain_id in table:
                table[chain_id] = replace(table[chain_id], rpc_url=url)
        self._deployments = table
        self._warp_routes = tuple(warp_routes)

    @property
    def mode(self) -> DeliveryMode:
        return self._mode

    # -----------------------------------------------------------------
    # Chains
    # -----------------------------------------------------------------

    def chain_ids(self) -> tuple[int, ...]:
        return tuple(self._deployments)

    def deployment(self, chain_id: int) -> ChainDeployment | None:
        return self._deployments.get(chain_id)

    def require(self, chain_id: int) -> ChainDeployment:
        """Like deployment(), but raises DeploymentNotFound."""
        found = self._deployments.get(chain_id)
        if found is None:
            raise DeploymentNotFound(chain_id)
        return found

    def is_deployed(self, chain_id: int) -> bool:
        return chain_id in self._deployments

    def chain_name(self, chain_id: int) -> str:
        found = self._deployments.get(chain_id)
        return found.name if found else f"Chain {chain_id}"

    def domain_id(self, chain_id: int) -> int | None:
        found = self._deployments.get(chain_id)
        return found.domain_id if found else None

    # -----------------------------------------------------------------
    # Warp routes
    # -----------------------------------------------------------------

    def warp_routes(self) -> tuple[WarpRoute, ...]:
        return self._warp_routes

    def warp_route(self, symbol: str) -> WarpRoute | None:
        for route in self._warp_routes:
            if route.symbol == symbol:
                return route
        return None

    def routes_for_chain(self, chain_id: int) -> tuple[WarpRoute, ...]:
        return tuple(r for r in self._warp_routes if r.token_on(chain_id) is not None)

    def destination_chains(self, symbol: str, origin_chain_id: int) -> tuple[int, ...]:
        """Chains ``symbol`` can be bridged to from ``origin_chain_id``."""
        route = self.warp_route(symbol)
        if route is None:
            return ()
        return route.destinations_from(origin_chain_id)
