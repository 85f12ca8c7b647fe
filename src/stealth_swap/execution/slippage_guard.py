"""Slippage floor computation."""
import logging
from dataclasses import dataclass

from .exceptions import ConfigurationError
from .models import MinimumOutput, Quote

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class SlippagePolicy:
    """Tolerance in basis points (100 = 1%)."""
    tolerance_bps: int = 200

    def __post_init__(self):
        validate_tolerance(self.tolerance_bps)

    @property
    def tolerance_percent(self) -> float:
        return self.tolerance_bps / 100

    def minimum_output(self, quote: Quote) -> MinimumOutput:
        return compute_minimum_output(quote, self.tolerance_bps)


def validate_tolerance(tolerance_bps: int) -> None:
    """Raise ConfigurationError unless tolerance_bps is an int in [0, 10000]."""
    if isinstance(tolerance_bps, bool) or not isinstance(tolerance_bps, int):
        raise ConfigurationError(
            f"Slippage tolerance must be an integer number of basis points, got {tolerance_bps!r}"
        )
    if not 0 <= tolerance_bps <= BPS_DENOMINATOR:
        raise ConfigurationError(
            f"Slippage tolerance must be within [0, {BPS_DENOMINATOR}] bps, got {tolerance_bps}"
        )


def compute_minimum_output(quote: Quote, tolerance_bps: int) -> MinimumOutput:
    """
    Convert an expected output and a tolerance into a binding floor.

    floor(quote * (10000 - bps) / 10000). An absent (or zero) quote yields a
    floor of 0 with protected=False; the swap then runs without price protection
    and the operator is warned.
    """
    validate_tolerance(tolerance_bps)

    if not quote.is_available:
        logger.warning(
            "No quote available: minimum output set to 0, "
            "NO slippage protection is active for this execution"
        )
        return MinimumOutput(amount=0, protected=False)

    amount = quote.amount * (BPS_DENOMINATOR - tolerance_bps) // BPS_DENOMINATOR
    logger.debug(
        f"Minimum output {amount} from quote {quote.amount} at {tolerance_bps} bps"
    )
    return MinimumOutput(amount=amount, protected=True)
