"""
Swap orchestration.

One run moves through VALIDATION, QUOTE, SLIPPAGE, ROUTE, SUBMISSION,
CONFIRMATION and REPORT. Collaborators are shared and immutable; everything a
run produces lives in locals, so concurrent runs do not interfere.
"""
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..blockchain_connector.interfaces import ChainReader
from ..config.networks import network_for_chain_id
from ..mev_protection.route_selector import RouteSelector
from .bundle_executor import BundleExecutor, SubmissionListener
from .exceptions import (
    ChainReadError,
    ConfigurationError,
    DeadlineExpired,
    InsufficientBalance,
    MalformedLeg,
    QuoteUnavailable,
    SwapError,
)
from .models import (
    BundleResult,
    EndpointConfig,
    ExecutionMode,
    MinimumOutput,
    NetworkProfile,
    OrchestrationStage,
    Quote,
    RouteDecision,
    SwapLeg,
    SwapOutcome,
    SwapRequest,
)
from .quote_estimator import QuoteEstimator
from .reporting import ExecutionReporter, SwapEventType
from .slippage_guard import SlippagePolicy

logger = logging.getLogger(__name__)

BalanceKey = Tuple[str, str]


class SwapOrchestrator:
    """Runs quote, slippage, routing and bundling for swap requests."""

    def __init__(
        self,
        reader: ChainReader,
        estimator: QuoteEstimator,
        route_selector: RouteSelector,
        executor: BundleExecutor,
        network: NetworkProfile,
        endpoints: EndpointConfig,
        slippage: SlippagePolicy,
        sender: str,
        wrapping_asset: str,
        reporter: Optional[ExecutionReporter] = None,
        clock: Callable[[], float] = time.time,
        gas_reserve: int = 0,
        verify_balances: bool = True
    ):
        """
        Initialize orchestrator.

        Args:
            reader: Chain reads (chain id, balances)
            estimator: Expected-output estimation
            route_selector: Private/standard route selection
            executor: Bundle submission and confirmation
            network: Configured network profile
            endpoints: Configured submission endpoints
            slippage: Slippage tolerance policy
            sender: Address that signs and pays for bundles
            wrapping_asset: Wrapped native token the bundler wraps into
            reporter: Event sink; a log-only reporter when omitted
            clock: Unix time source used for deadline checks
            gas_reserve: Native amount that must remain available for gas
            verify_balances: Pre-check the native balance and measure output deltas
        """
        self.reader = reader
        self.estimator = estimator
        self.route_selector = route_selector
        self.executor = executor
        self.network = network
        self.endpoints = endpoints
        self.slippage = slippage
        self.sender = sender
        self.wrapping_asset = wrapping_asset
        self.reporter = reporter or ExecutionReporter()
        self.clock = clock
        self.gas_reserve = gas_reserve
        self.verify_balances = verify_balances

    async def execute_swap(self, request: SwapRequest) -> SwapOutcome:
        """Single exact-input swap."""
        return await self._run(ExecutionMode.SINGLE, [request], request.amount_in)

    async def execute_obfuscated_swap(self, request: SwapRequest, dummy_ops: int) -> SwapOutcome:
        """Single swap padded with up to the bundler's maximum of dummy operations."""
        return await self._run(ExecutionMode.OBFUSCATED, [request], request.amount_in, dummy_ops)

    async def execute_batch(self, requests: Sequence[SwapRequest], value: int) -> SwapOutcome:
        """Several swaps on one pool in a single transaction; the excess value is refunded."""
        return await self._run(ExecutionMode.BATCH, list(requests), value)

    async def _run(
        self,
        mode: ExecutionMode,
        requests: List[SwapRequest],
        value: int,
        dummy_ops: int = 0
    ) -> SwapOutcome:
        run_id = uuid.uuid4().hex[:12]
        stage = OrchestrationStage.VALIDATION
        warnings: List[str] = []

        try:
            self._validate_requests(mode, requests, dummy_ops)
            balances_before = None
            if self.verify_balances:
                await self._check_native_balance(value)
                balances_before = await self._read_output_balances(requests)

            stage = OrchestrationStage.QUOTE
            quotes = await self._quote(run_id, requests)

            stage = OrchestrationStage.SLIPPAGE
            minimum_outputs = self._minimum_outputs(run_id, requests, quotes, warnings)

            stage = OrchestrationStage.ROUTE
            network = await self._resolve_network(warnings)
            decision = self.route_selector.select(network, self.endpoints)
            self.reporter.emit(
                SwapEventType.ROUTE_SELECTED, run_id,
                f"{decision.kind.value} via {network.name}",
                stage=stage.value, route=decision.kind.value, network=network.name
            )
            if decision.warning:
                warnings.append(decision.warning)
                self.reporter.emit(
                    SwapEventType.PUBLIC_ROUTE, run_id, decision.warning,
                    stage=stage.value, endpoint=decision.endpoint
                )

            stage = OrchestrationStage.SUBMISSION
            self._check_deadlines(requests)
            legs = [
                SwapLeg.from_request(request, minimum.amount)
                for request, minimum in zip(requests, minimum_outputs)
            ]

            def on_submitted(tx_hash: str, endpoint: str) -> None:
                self.reporter.emit(
                    SwapEventType.SUBMITTED, run_id,
                    f"{mode.value} bundle with {len(legs)} leg(s), value {value}, "
                    f"sent as {tx_hash} to {endpoint}",
                    stage=OrchestrationStage.SUBMISSION.value, mode=mode.value, value=value,
                    tx_hash=tx_hash, endpoint=endpoint
                )

            result = await self._dispatch(
                mode, decision, requests[0].pool, legs, value, dummy_ops, on_submitted
            )

            stage = OrchestrationStage.CONFIRMATION
            if result.downgraded:
                message = f"Private submission failed, sent through {result.endpoint}"
                warnings.append(message)
                self.reporter.emit(
                    SwapEventType.DOWNGRADED, run_id, message, stage=stage.value,
                    endpoint=result.endpoint
                )
            self.reporter.emit(
                SwapEventType.CONFIRMED, run_id,
                f"{result.tx_hash} in block {result.block_number}, gas {result.gas_used}",
                stage=stage.value, tx_hash=result.tx_hash, block_number=result.block_number,
                gas_used=result.gas_used, bundle_id=result.bundle_id
            )

            stage = OrchestrationStage.REPORT
            received = None
            if balances_before is not None:
                received = await self._measure_received(requests, balances_before, warnings)

            outcome = SwapOutcome(
                mode=mode,
                requests=requests,
                quotes=quotes,
                minimum_outputs=minimum_outputs,
                route=decision,
                result=result,
                received=received,
                warnings=warnings
            )
            self.reporter.emit(
                SwapEventType.COMPLETED, run_id,
                f"received {outcome.received_amount}, refund {result.refund}",
                stage=stage.value, received=outcome.received_amount, refund=result.refund,
                protected=outcome.protected
            )
            return outcome

        except SwapError as e:
            if e.stage is None:
                e.stage = stage.value
            self.reporter.emit(
                SwapEventType.FAILED, run_id, str(e), stage=e.stage,
                error=type(e).__name__, retryable=e.retryable
            )
            raise
        except Exception as e:
            self.reporter.emit(
                SwapEventType.FAILED, run_id, f"Unexpected error: {e}", stage=stage.value,
                error=type(e).__name__
            )
            raise

    def _validate_requests(
        self,
        mode: ExecutionMode,
        requests: List[SwapRequest],
        dummy_ops: int = 0
    ) -> None:
        if dummy_ops < 0:
            raise ConfigurationError(f"Dummy operation count cannot be negative, got {dummy_ops}")
        if not requests:
            raise MalformedLeg("At least one swap request is required")

        for request in requests:
            if request.amount_in <= 0:
                raise MalformedLeg(f"amount_in must be positive, got {request.amount_in}")
            if not request.recipient:
                raise MalformedLeg("Swap recipient is required")

        if mode == ExecutionMode.BATCH and len({r.pool.lower() for r in requests}) > 1:
            raise MalformedLeg("All swaps in a batch must use the same pool")

        self._check_deadlines(requests)

    def _check_deadlines(self, requests: List[SwapRequest]) -> None:
        now = self.clock()
        for request in requests:
            if request.deadline <= now:
                raise DeadlineExpired(
                    f"Deadline {request.deadline} is not in the future (now {int(now)})"
                )

    async def _check_native_balance(self, value: int) -> None:
        balance = await self.reader.get_native_balance(self.sender)
        required = value + self.gas_reserve
        if balance < required:
            raise InsufficientBalance(
                f"Balance {balance} wei is below value {value} plus gas reserve {self.gas_reserve}"
            )

    async def _quote(self, run_id: str, requests: List[SwapRequest]) -> List[Quote]:
        quotes = []
        for request in requests:
            quote = await self.estimator.estimate(request)
            if quote.is_available:
                self.reporter.emit(
                    SwapEventType.QUOTE_OBTAINED, run_id,
                    f"{quote.amount} from {quote.source}",
                    stage=OrchestrationStage.QUOTE.value, amount=quote.amount, source=quote.source
                )
            quotes.append(quote)
        return quotes

    def _minimum_outputs(
        self,
        run_id: str,
        requests: List[SwapRequest],
        quotes: List[Quote],
        warnings: List[str]
    ) -> List[MinimumOutput]:
        minimum_outputs = []
        for request, quote in zip(requests, quotes):
            minimum = self.slippage.minimum_output(quote)
            if not minimum.protected:
                unavailable = QuoteUnavailable(
                    f"No quote for {request.amount_in} of {request.token_in}: swap is unprotected",
                    stage=OrchestrationStage.SLIPPAGE.value
                )
                warnings.append(unavailable.message)
                self.reporter.emit(
                    SwapEventType.QUOTE_UNAVAILABLE, run_id, unavailable.message,
                    stage=unavailable.stage, error=type(unavailable).__name__
                )
            minimum_outputs.append(minimum)
        return minimum_outputs

    async def _resolve_network(self, warnings: List[str]) -> NetworkProfile:
        """Network profile to route for, checked against the node's chain id."""
        chain_id = await self.reader.get_chain_id()
        if chain_id == self.network.chain_id:
            return self.network

        message = (
            f"Connected chain id {chain_id} does not match configured "
            f"{self.network.name} ({self.network.chain_id})"
        )
        logger.warning(message)
        warnings.append(message)

        observed = network_for_chain_id(chain_id)
        if observed is not None and observed.is_production:
            return observed
        if self.network.is_production:
            return self.network
        return observed or self.network

    async def _dispatch(
        self,
        mode: ExecutionMode,
        decision: RouteDecision,
        pool: str,
        legs: List[SwapLeg],
        value: int,
        dummy_ops: int,
        on_submitted: SubmissionListener
    ) -> BundleResult:
        if mode == ExecutionMode.BATCH:
            return await self.executor.execute_batch(
                decision, pool, self.wrapping_asset, legs, value, on_submitted=on_submitted
            )
        if mode == ExecutionMode.OBFUSCATED:
            return await self.executor.execute_obfuscated(
                decision, pool, self.wrapping_asset, legs[0], dummy_ops, on_submitted=on_submitted
            )
        return await self.executor.execute_single(
            decision, pool, self.wrapping_asset, legs[0], on_submitted=on_submitted
        )

    async def _read_output_balances(self, requests: List[SwapRequest]) -> Dict[BalanceKey, int]:
        balances = {}
        for request in requests:
            key = (request.token_out.lower(), request.recipient.lower())
            if key not in balances:
                balances[key] = await self.reader.get_token_balance(request.token_out, request.recipient)
        return balances

    async def _measure_received(
        self,
        requests: List[SwapRequest],
        before: Dict[BalanceKey, int],
        warnings: List[str]
    ) -> Optional[Dict[BalanceKey, int]]:
        try:
            after = await self._read_output_balances(requests)
        except (SwapError, ChainReadError) as e:
            message = f"Swap confirmed but output balances could not be read: {e}"
            logger.warning(message)
            warnings.append(message)
            return None
        return {key: after[key] - before[key] for key in before}
