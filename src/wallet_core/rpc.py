"""
JSON-RPC access for the wallet core.

The core only ever needs read-only ``eth_call`` simulations: ERC-1271 and
sapient signature recovery, usage-limit lookups for explicit sessions and
the ``acceptImplicitRequest`` check for implicit sessions. Any object with
an async ``request(method, params)`` method satisfies ``Provider``;
``AsyncWeb3Provider`` adapts a web3.py ``AsyncWeb3`` instance to it.
"""

import logging
from typing import Any, List, Optional, Union

from eth_utils import to_bytes, to_hex
from typing_extensions import Protocol
from web3 import AsyncWeb3

from .engine.exceptions import BlockchainInteractionError

logger = logging.getLogger(__name__)

BlockTag = Union[int, str]


class Provider(Protocol):
    """Minimal EIP-1193 style provider."""

    async def request(self, method: str, params: List[Any]) -> Any:
        ...


class AsyncWeb3Provider:
    """
    ``Provider`` backed by a web3.py ``AsyncWeb3`` instance.

    Args:
        web3: Connected ``AsyncWeb3`` instance.

    Example:
        provider = AsyncWeb3Provider.from_rpc_url("https://rpc.example.org")
        result = await provider.request("eth_call", [{"to": "0x...", "data": "0x..."}, "latest"])
    """

    def __init__(self, web3: AsyncWeb3):
        self.web3 = web3

    @classmethod
    def from_rpc_url(cls, rpc_url: str, timeout: float = 30.0) -> "AsyncWeb3Provider":
        return cls(AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})))

    @classmethod
    def from_settings(cls, settings=None) -> "AsyncWeb3Provider":
        """
        Build a provider from ``WALLET_CORE_RPC_URL``.

        Raises:
            ValueError: No RPC URL is configured.
        """
        if settings is None:
            from .config import get_settings

            settings = get_settings()
        if not settings.rpc_url:
            raise ValueError("WALLET_CORE_RPC_URL is not configured")
        return cls.from_rpc_url(settings.rpc_url)

    async def request(self, method: str, params: List[Any]) -> Any:
        response = await self.web3.provider.make_request(method, params)
        if response.get("error"):
            raise BlockchainInteractionError(str(response["error"]), rpc_method=method)
        return response.get("result")


def _block_param(block: Optional[BlockTag]) -> str:
    if block is None:
        return "latest"
    if isinstance(block, int):
        return hex(block)
    return block


async def eth_call(
    provider: Provider,
    to: str,
    data: bytes,
    sender: Optional[str] = None,
    block: Optional[BlockTag] = None,
) -> bytes:
    """
    Run a read-only call and return the raw return data.

    Raises:
        BlockchainInteractionError: The provider failed or the call reverted.
    """
    call = {"to": to, "data": to_hex(bytes(data))}
    if sender is not None:
        call["from"] = sender

    try:
        result = await provider.request("eth_call", [call, _block_param(block)])
    except BlockchainInteractionError:
        raise
    except Exception as e:
        logger.debug(f"eth_call to {to} failed: {e}")
        raise BlockchainInteractionError(f"eth_call to {to} failed: {e}") from e

    if isinstance(result, (bytes, bytearray)):
        return bytes(result)
    if not result or result == "0x":
        return b""
    return to_bytes(hexstr=result)
