"""
Self-hosted delivery status and ERC-20 allowance via direct contract reads.

In self-hosted mode delivery is learned by calling the destination
mailbox's ``delivered(bytes32) -> bool`` view. The read must go to the
DESTINATION chain's RPC endpoint. The wallet is usually still connected
to the origin chain, so its provider is never used here.

DestinationReaderFactory caches one reader per destination chain id.
Readers are cheap, but reusing them keeps request ids and endpoints
stable across poll cycles.

JsonRpcHyperlaneReader covers the remaining contract views the flows show
alongside a form: the sender's remote interchain account (read on the
origin router) and the last message a test recipient received.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from xchain_flows.deployments import DeploymentRegistry
from xchain_flows.evm import (
    decode_address,
    decode_bool,
    decode_bytes,
    decode_bytes32,
    decode_uint256,
    encode_call,
    hex_to_bytes,
)
from xchain_flows.rpc import EthJsonRpcClient
from xchain_flows.transport import JsonRpcTransport

logger = logging.getLogger(__name__)



@runtime_checkable
class DestinationChainReader(Protocol):
    """Read-only view of one destination chain's mailbox."""

    @property
    def chain_id(self) -> int:
        ...

    async def delivered(self, message_id: str) -> bool:
        ...


@runtime_checkable
class DestinationReaderSource(Protocol):
    """Hands out a reader bound to a given destination chain."""

    def for_chain(self, chain_id: int) -> DestinationChainReader:
        ...


@runtime_checkable
class AllowanceReader(Protocol):
    """Reads ERC-20 allowances on any configured chain."""

    async def allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        ...


class JsonRpcDestinationReader:
    """DestinationChainReader over ``eth_call``.

    Args:
        chain_id: Chain the reader is bound to.
        mailbox: Mailbox contract address on that chain.
        client: JSON-RPC client for that chain's endpoint.
    """

    def __init__(self, chain_id: int, mailbox: str, client: EthJsonRpcClient) -> None:
        self._chain_id = chain_id
        self._mailbox = mailbox
        self._client = client

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def mailbox(self) -> str:
        return self._mailbox

    async def delivered(self, message_id: str) -> bool:
        """Whether the mailbox has processed ``message_id``.

        Raises:
            StatusCheckError: The node answered with an error.
            Exception: Transport failures propagate unchanged.
        """
        data = encode_call("delivered", ("bytes32",), (hex_to_bytes(message_id),))
        result = await self._client.eth_call(self._mailbox, data)
        return decode_bool(result)


class DestinationReaderFactory:
    """Builds and caches one DestinationChainReader per chain.

    Args:
        registry: Supplies each chain's RPC URL and mailbox.
        transport: Shared JSON-RPC transport (defaults per client).
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._readers: dict[int, JsonRpcDestinationReader] = {}

    def for_chain(self, chain_id: int) -> JsonRpcDestinationReader:
        """Reader bound to ``chain_id``'s RPC endpoint and mailbox.

        Raises:
            DeploymentNotFound: The registry has no deployment for the chain.
        """
        reader = self._readers.get(chain_id)
        if reader is None:
            deployment = self._registry.require(chain_id)
            client = EthJsonRpcClient(deployment.rpc_url, self._transport)
            reader = JsonRpcDestinationReader(chain_id, deployment.mailbox, client)
            self._readers[chain_id] = reader
            logger.debug("Created destination reader for chain %d at %s", chain_id, deployment.rpc_url)
        return reader

    def __len__(self) -> int:
        return len(self._readers)


class JsonRpcAllowanceReader:
    """AllowanceReader over ``eth_call`` on the token's own chain."""

    def __init__(
        self,
        registry: DeploymentRegistry,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport

    async def allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        """``token.allowance(owner, spender)`` on ``chain_id``.

        Raises:
            DeploymentNotFound: No RPC endpoint for the chain.
            StatusCheckError: The node answered with an error.
        """
        deployment = self._registry.require(chain_id)
        client = EthJsonRpcClient(deployment.rpc_url, self._transport)
        data = encode_call("allowance", ("address", "address"), (owner.lower(), spender.lower()))
        return decode_uint256(await client.eth_call(token, data))


# =====================================================================
# Interchain account and test recipient views
# =====================================================================

ICA_NOT_ENROLLED = "no router specified for destination"


@dataclass(frozen=True)
class TestRecipientState:
    """What a TestRecipient contract last received.

    Attributes:
        sender: ``lastSender`` as a bytes32 word.
        data: ``lastData`` decoded as UTF-8.
    """

    __test__ = False

    sender: str
    data: str

    @property
    def sender_address(self) -> str:
        """The 20-byte address packed into ``sender``."""
        return "0x" + self.sender[-40:]


@runtime_checkable
class InterchainAccountReader(Protocol):
    async def remote_interchain_account(self, origin_chain_id: int, destination_chain_id: int, owner: str) -> str | None:
        ...


@runtime_checkable
class TestRecipientReader(Protocol):
    async def read_test_recipient(self, chain_id: int) -> TestRecipientState | None:
        ...


class JsonRpcHyperlaneReader:
    """InterchainAccountReader and TestRecipientReader over ``eth_call``.

    Both reads return None instead of raising: a missing deployment, an
    unenrolled route or a failed call all mean "nothing to show".
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

    async def remote_interchain_account(self, origin_chain_id: int, destination_chain_id: int, owner: str) -> str | None:
        """``owner``'s interchain account on the destination chain.

        Read from the ORIGIN chain's router via
        ``getRemoteInterchainAccount(uint32,address)``.
        """
        deployment = self._registry.deployment(origin_chain_id)
        if deployment is None or deployment.interchain_account_router is None:
            logger.warning("No ICA router for chain %d", origin_chain_id)
            return None
        domain = self._registry.domain_id(destination_chain_id)
        if domain is None:
            return None

        data = encode_call("getRemoteInterchainAccount", ("uint32", "address"), (domain, owner.lower()))
        try:
            result = await self._client(origin_chain_id).eth_call(deployment.interchain_account_router, data)
            return decode_address(result)
        except Exception as exc:
            if ICA_NOT_ENROLLED in str(exc):
                logger.warning(
                    "ICA route not available: %d -> %d. Routers need to be enrolled.",
                    origin_chain_id,
                    destination_chain_id,
                )
            else:
                logger.warning("Failed to get remote ICA: %s", exc)
            return None

    async def read_test_recipient(self, chain_id: int) -> TestRecipientState | None:
        """``lastSender`` and ``lastData`` of ``chain_id``'s test recipient."""
        deployment = self._registry.deployment(chain_id)
        if deployment is None or deployment.test_recipient is None:
            return None

        client = self._client(chain_id)
        recipient = deployment.test_recipient
        try:
            sender_word, data_word = await asyncio.gather(
                client.eth_call(recipient, encode_call("lastSender", (), ())),
                client.eth_call(recipient, encode_call("lastData", (), ())),
            )
            return TestRecipientState(
                sender=decode_bytes32(sender_word),
                data=decode_bytes(data_word).decode("utf-8", errors="replace"),
            )
        except Exception as exc:
            logger.error("Failed to read TestRecipient on chain %d: %s", chain_id, exc)
            return None
