"""Chain read and write capabilities consumed by the orchestration core."""
from abc import ABC, abstractmethod

from ..execution.models import (
    ConfirmationRecord,
    ExecutionUnit,
    PoolState,
    PreparedSubmission,
)


class ChainReader(ABC):
    """
    Read-only access to chain state.

    Implementations raise TransportFailure for network level problems and
    ChainReadError for everything else (reverts, undecodable output).
    """

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Chain ID reported by the connected node."""
        pass

    @abstractmethod
    async def get_pool_state(self, pool_address: str) -> PoolState:
        """Current sqrt price and token ordering of a pool."""
        pass

    @abstractmethod
    async def quote_exact_input_single(
        self,
        quoter_address: str,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int
    ) -> int:
        """Simulate-only call to the quoter with a zero price limit."""
        pass

    @abstractmethod
    async def get_native_balance(self, address: str) -> int:
        """Native balance in wei."""
        pass

    @abstractmethod
    async def get_token_balance(self, token_address: str, holder: str) -> int:
        """ERC20 balance in token-native units."""
        pass


class ChainWriter(ABC):
    """Signs, submits and confirms execution units."""

    @abstractmethod
    async def prepare(self, unit: ExecutionUnit) -> PreparedSubmission:
        """Build and sign the bundler call for an execution unit."""
        pass

    @abstractmethod
    async def send(self, prepared: PreparedSubmission, endpoint: str) -> str:
        """Send a signed submission to an endpoint and return its tx hash."""
        pass

    @abstractmethod
    async def wait_for_confirmation(self, tx_hash: str) -> ConfirmationRecord:
        """Wait for inclusion and return the confirmation record."""
        pass


class DownstreamRouter(ABC):
    """
    Router capability invoked by the bundler.

    Wraps the native value, swaps through the pool and credits the output to
    leg.recipient. Treated as a correct black box by the orchestration core.
    """

    @abstractmethod
    def swap(self, pool: str, wrapping_asset: str, leg, value: int) -> int:
        """Execute one leg and return the output amount."""
        pass
