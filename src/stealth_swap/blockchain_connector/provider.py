"""web3.py backed chain reader."""
import asyncio
import logging
from typing import Any, Awaitable, Optional

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    ProviderConnectionError,
    Web3Exception,
)
from web3.providers import AsyncHTTPProvider

from ..execution.exceptions import ChainReadError, ConfigurationError, TransportFailure
from ..execution.models import PoolState
from .contracts import ERC20_ABI, UNISWAP_V3_POOL_ABI, UNISWAP_V3_QUOTER_ABI
from .interfaces import ChainReader

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    ProviderConnectionError,
)


def create_async_web3(rpc_url: str, timeout_seconds: float = 30.0) -> AsyncWeb3:
    """Create an AsyncWeb3 instance for an HTTP endpoint."""
    provider = AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds})
    return AsyncWeb3(provider)


class Web3ChainReader(ChainReader):
    """Chain reads over a single AsyncWeb3 connection."""

    def __init__(self, w3: AsyncWeb3, endpoint: Optional[str] = None):
        """
        Initialize chain reader.

        Args:
            w3: Connected AsyncWeb3 instance
            endpoint: Endpoint identifier used in error reports
        """
        self.w3 = w3
        self.endpoint = endpoint

    async def _guarded(self, description: str, call: Awaitable[Any]) -> Any:
        """Await a web3 call, mapping failures onto the read error taxonomy."""
        try:
            return await call
        except TRANSPORT_ERRORS as e:
            raise TransportFailure(
                f"Transport error during {description}: {e}", endpoint=self.endpoint, cause=e
            ) from e
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise ChainReadError(f"{description} reverted or returned no data: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise ChainReadError(f"{description} failed: {e}") from e

    def _checksum(self, address: str) -> str:
        try:
            return self.w3.to_checksum_address(address)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid address {address!r}: {e}") from e

    def _contract(self, address: str, abi):
        return self.w3.eth.contract(address=self._checksum(address), abi=abi)

    async def get_chain_id(self) -> int:
        return await self._guarded("eth_chainId", self.w3.eth.chain_id)

    async def get_pool_state(self, pool_address: str) -> PoolState:
        pool = self._contract(pool_address, UNISWAP_V3_POOL_ABI)
        slot0 = await self._guarded(f"slot0() on {pool_address}", pool.functions.slot0().call())
        token0 = await self._guarded(f"token0() on {pool_address}", pool.functions.token0().call())
        token1 = await self._guarded(f"token1() on {pool_address}", pool.functions.token1().call())
        return PoolState(sqrt_price_x96=int(slot0[0]), token0=token0, token1=token1)

    async def quote_exact_input_single(
        self,
        quoter_address: str,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int
    ) -> int:
        quoter = self._contract(quoter_address, UNISWAP_V3_QUOTER_ABI)
        quote_result = await self._guarded(
            "quoteExactInputSingle",
            quoter.functions.quoteExactInputSingle(
                self._checksum(token_in),
                self._checksum(token_out),
                fee,
                amount_in,
                0  # sqrtPriceLimitX96 (0 = no limit)
            ).call()
        )
        # QuoterV2 deployments return (amountOut, sqrtPriceX96After, ticksCrossed, gas)
        return int(quote_result if isinstance(quote_result, int) else quote_result[0])

    async def get_native_balance(self, address: str) -> int:
        return await self._guarded(
            f"balance of {address}",
            self.w3.eth.get_balance(self._checksum(address))
        )

    async def get_token_balance(self, token_address: str, holder: str) -> int:
        token = self._contract(token_address, ERC20_ABI)
        return await self._guarded(
            f"balanceOf({holder}) on {token_address}",
            token.functions.balanceOf(self._checksum(holder)).call()
        )

    async def close(self) -> None:
        """Close the underlying provider session if it has one."""
        provider = self.w3.provider
        if hasattr(provider, "disconnect"):
            await provider.disconnect()
