"""
Swap execution package.

Only the value types, errors and slippage guard are re-exported here; the
orchestrator, executor and estimator import the blockchain connector and are
imported from their own modules.
"""
from .exceptions import (
    ChainReadError,
    ConfigurationError,
    DeadlineExpired,
    ExecutionRevert,
    InsufficientBalance,
    InsufficientValue,
    MalformedLeg,
    QuoteUnavailable,
    RouteRefusal,
    SubmissionRejected,
    SwapError,
    TransportFailure,
)
from .models import (
    BundleResult,
    EndpointConfig,
    ExecutionMode,
    MinimumOutput,
    NetworkClass,
    NetworkProfile,
    OrchestrationStage,
    Quote,
    RouteDecision,
    RouteKind,
    SwapLeg,
    SwapOutcome,
    SwapRequest,
    derive_bundle_id,
)
from .slippage_guard import SlippagePolicy, compute_minimum_output

__all__ = [
    # Errors
    "ChainReadError",
    "ConfigurationError",
    "DeadlineExpired",
    "ExecutionRevert",
    "InsufficientBalance",
    "InsufficientValue",
    "MalformedLeg",
    "QuoteUnavailable",
    "RouteRefusal",
    "SubmissionRejected",
    "SwapError",
    "TransportFailure",
    # Models
    "BundleResult",
    "EndpointConfig",
    "ExecutionMode",
    "MinimumOutput",
    "NetworkClass",
    "NetworkProfile",
    "OrchestrationStage",
    "Quote",
    "RouteDecision",
    "RouteKind",
    "SwapLeg",
    "SwapOutcome",
    "SwapRequest",
    "derive_bundle_id",
    # Slippage
    "SlippagePolicy",
    "compute_minimum_output",
]
