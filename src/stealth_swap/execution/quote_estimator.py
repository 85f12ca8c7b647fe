"""
Expected-output estimation for a prospective swap.

Price sources are tried in order. The quoter contract is authoritative; the
pool-state approximation is a fallback that ignores fees and liquidity depth
and must only be used as a soft floor basis.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..blockchain_connector.interfaces import ChainReader
from .exceptions import ChainReadError, TransportFailure
from .models import PoolState, Quote, SwapRequest

logger = logging.getLogger(__name__)

Q96 = 2 ** 96
Q192 = 2 ** 192


def approximate_output(pool_state: PoolState, token_in: str, amount_in: int) -> Optional[int]:
    """
    Spot-price output estimate from a pool's sqrt price.

    price = (sqrtPriceX96 / 2^96)^2 is token1 per token0. Swapping token0 in
    gives amount_in * price, swapping token1 in gives amount_in / price. Integer
    arithmetic, floored. Returns None for a zero sqrt price.
    """
    sqrt_price = pool_state.sqrt_price_x96
    if sqrt_price <= 0:
        return None

    zero_for_one = token_in.lower() == pool_state.token0.lower()
    if zero_for_one:
        return amount_in * sqrt_price * sqrt_price // Q192
    return amount_in * Q192 // (sqrt_price * sqrt_price)


class PriceSource(ABC):
    """A single way of estimating swap output."""

    name: str = "price_source"

    @abstractmethod
    async def quote(self, request: SwapRequest) -> Optional[int]:
        """
        Expected output for request, or None.

        Raises:
            ChainReadError: contract-level failure (revert, bad output)
            TransportFailure: network failure
        """
        pass


class QuoterPriceSource(PriceSource):
    """Static call to a QuoterV2 contract."""

    name = "quoter"

    def __init__(self, reader: ChainReader, quoter_address: str):
        self.reader = reader
        self.quoter_address = quoter_address

    async def quote(self, request: SwapRequest) -> Optional[int]:
        amount_out = await self.reader.quote_exact_input_single(
            self.quoter_address,
            request.token_in,
            request.token_out,
            request.fee,
            request.amount_in
        )
        return amount_out or None


class PoolStatePriceSource(PriceSource):
    """Approximation from slot0().sqrtPriceX96 and token0()."""

    name = "pool_state"

    def __init__(self, reader: ChainReader):
        self.reader = reader

    async def quote(self, request: SwapRequest) -> Optional[int]:
        pool_state = await self.reader.get_pool_state(request.pool)
        amount_out = approximate_output(pool_state, request.token_in, request.amount_in)
        if amount_out is None:
            logger.info(f"Pool {request.pool} reports a zero sqrt price")
        return amount_out or None


class QuoteEstimator:
    """Walks price sources in order and returns the first usable quote."""

    def __init__(self, sources: Sequence[PriceSource]):
        if not sources:
            raise ValueError("QuoteEstimator needs at least one price source")
        self.sources: List[PriceSource] = list(sources)

    @classmethod
    def for_reader(cls, reader: ChainReader, quoter_address: Optional[str] = None) -> "QuoteEstimator":
        """Quoter first when an address is configured, pool state always last."""
        sources: List[PriceSource] = []
        if quoter_address:
            sources.append(QuoterPriceSource(reader, quoter_address))
        sources.append(PoolStatePriceSource(reader))
        return cls(sources)

    async def estimate(self, request: SwapRequest) -> Quote:
        """
        Estimate the output of request.

        Returns an absent Quote when every source comes back empty. A transport
        failure in the last source propagates as TransportFailure.
        """
        last_index = len(self.sources) - 1

        for index, source in enumerate(self.sources):
            try:
                amount = await source.quote(request)
            except ChainReadError as e:
                logger.info(f"Price source {source.name} unavailable: {e}")
                continue
            except TransportFailure as e:
                if index == last_index:
                    raise
                logger.warning(f"Price source {source.name} unreachable, trying next: {e}")
                continue

            if amount:
                logger.info(f"Quote {amount} for {request.amount_in} in from {source.name}")
                return Quote(amount=amount, source=source.name)

            logger.info(f"Price source {source.name} returned no quote")

        return Quote.absent()
