"""Value types shared by the quote, routing and bundling stages."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from .exceptions import MalformedLeg


class OrchestrationStage(str, Enum):
    """Stages of a single orchestration run, in execution order."""
    VALIDATION = "validation"
    QUOTE = "quote"
    SLIPPAGE = "slippage"
    ROUTE = "route"
    SUBMISSION = "submission"
    CONFIRMATION = "confirmation"
    REPORT = "report"


class RouteKind(str, Enum):
    """How a signed execution unit reaches the chain."""
    PRIVATE = "private"
    STANDARD_WITH_BUNDLER_PROTECTION = "standard_with_bundler_protection"


class NetworkClass(str, Enum):
    """Network classification used for routing policy."""
    PRODUCTION = "production"
    TEST = "test"


class ExecutionMode(str, Enum):
    """Shape of the execution unit sent to the bundler."""
    SINGLE = "single"
    BATCH = "batch"
    OBFUSCATED = "obfuscated"


@dataclass(frozen=True)
class NetworkProfile:
    """A named network with its chain ID and classification."""
    name: str
    chain_id: int
    network_class: NetworkClass

    @property
    def is_production(self) -> bool:
        return self.network_class == NetworkClass.PRODUCTION


@dataclass(frozen=True)
class SwapRequest:
    """Caller-owned description of one exact-input swap."""
    token_in: str
    token_out: str
    pool: str
    fee: int
    amount_in: int
    recipient: str
    deadline: int


@dataclass(frozen=True)
class Quote:
    """Expected output for a prospective swap, or absent."""
    amount: Optional[int] = None
    source: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.amount is not None and self.amount > 0

    @classmethod
    def absent(cls) -> "Quote":
        return cls()


@dataclass(frozen=True)
class MinimumOutput:
    """Binding output floor derived from a quote and a tolerance."""
    amount: int
    protected: bool


@dataclass(frozen=True)
class PoolState:
    """Current price representation of a concentrated-liquidity pool."""
    sqrt_price_x96: int
    token0: str
    token1: Optional[str] = None


@dataclass(frozen=True)
class EndpointConfig:
    """Submission endpoints configured for one orchestration."""
    rpc_url: Optional[str]
    private_rpc_url: Optional[str] = None
    use_private_rpc: bool = False


@dataclass(frozen=True)
class RouteDecision:
    """Selected submission channel for one request."""
    kind: RouteKind
    endpoint: str
    network: NetworkProfile
    fallback_endpoint: Optional[str] = None
    warning: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.kind == RouteKind.PRIVATE


@dataclass(frozen=True)
class SwapLeg:
    """One swap inside an execution unit, mirroring the router's swap params."""
    token_in: str
    token_out: str
    fee: int
    recipient: str
    deadline: int
    amount_in: int
    amount_out_minimum: int
    sqrt_price_limit_x96: int = 0

    def validate(self) -> None:
        """Reject legs the bundler would revert on before anything is sent."""
        if self.amount_in <= 0:
            raise MalformedLeg(f"Leg amount_in must be positive, got {self.amount_in}")
        if self.amount_out_minimum < 0:
            raise MalformedLeg("Leg amount_out_minimum cannot be negative")
        if not self.recipient:
            raise MalformedLeg("Leg recipient is required")
        if not self.token_in or not self.token_out:
            raise MalformedLeg("Leg tokens are required")

    def as_abi_tuple(self) -> Tuple:
        """Tuple in the order of the on-chain SwapParams struct."""
        return (
            to_checksum_address(self.token_in),
            to_checksum_address(self.token_out),
            self.fee,
            to_checksum_address(self.recipient),
            self.deadline,
            self.amount_in,
            self.amount_out_minimum,
            self.sqrt_price_limit_x96,
        )

    @classmethod
    def from_request(cls, request: SwapRequest, amount_out_minimum: int) -> "SwapLeg":
        return cls(
            token_in=request.token_in,
            token_out=request.token_out,
            fee=request.fee,
            recipient=request.recipient,
            deadline=request.deadline,
            amount_in=request.amount_in,
            amount_out_minimum=amount_out_minimum,
        )


@dataclass(frozen=True)
class ExecutionUnit:
    """Everything the bundler contract receives in one transaction."""
    mode: ExecutionMode
    pool: str
    wrapping_asset: str
    legs: Tuple[SwapLeg, ...]
    value: int
    dummy_ops: int = 0

    @property
    def committed_amount(self) -> int:
        return sum(leg.amount_in for leg in self.legs)

    @property
    def refund(self) -> int:
        return self.value - self.committed_amount


@dataclass(frozen=True)
class PreparedSubmission:
    """Signed execution request, ready to be sent to any endpoint."""
    unit: ExecutionUnit
    raw_transaction: bytes
    tx_hash: str
    sender: str


@dataclass(frozen=True)
class BundleRecord:
    """Decoded SwapBundled event emitted by the bundler."""
    bundle_id: str
    sender: str
    amount_in: int
    amount_out: int
    timestamp: int


@dataclass(frozen=True)
class ConfirmationRecord:
    """Inclusion data returned by the chain for a submitted transaction."""
    tx_hash: str
    block_number: int
    gas_used: int
    success: bool
    records: Tuple[BundleRecord, ...] = ()
    revert_reason: Optional[str] = None


@dataclass(frozen=True)
class BundleResult:
    """Immutable result of a confirmed execution unit."""
    mode: ExecutionMode
    tx_hash: str
    block_number: int
    gas_used: int
    refund: int
    leg_outputs: Tuple[Optional[int], ...]
    endpoint: str
    route_kind: RouteKind
    downgraded: bool = False
    bundle_id: Optional[str] = None
    padding_ops: int = 0

    @property
    def total_output(self) -> Optional[int]:
        if any(output is None for output in self.leg_outputs):
            return None
        return sum(self.leg_outputs)


@dataclass
class SwapOutcome:
    """Everything produced by one orchestration run."""
    mode: ExecutionMode
    requests: List[SwapRequest]
    quotes: List[Quote]
    minimum_outputs: List[MinimumOutput]
    route: RouteDecision
    result: BundleResult
    received: Optional[Dict[Tuple[str, str], int]] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def protected(self) -> bool:
        return all(minimum.protected for minimum in self.minimum_outputs)

    @property
    def received_amount(self) -> Optional[int]:
        """Measured balance gain, falling back to bundler-reported leg outputs."""
        if self.received is not None:
            return sum(self.received.values())
        return self.result.total_output


def derive_bundle_id(timestamp: int, sender: str, aggregate_amount_in: int) -> str:
    """
    Recompute the bundler's correlation ID.

    keccak256(abi.encodePacked(timestamp, sender, amountIn)). Two bundles in the
    same block from the same sender with the same amount share an ID, so this is
    only suitable for correlating with block data, never for deduplication.
    """
    packed = encode_packed(
        ["uint256", "address", "uint256"],
        [timestamp, to_checksum_address(sender), aggregate_amount_in]
    )
    return "0x" + keccak(packed).hex()
