"""
Bundle execution.

Turns swap legs into a single bundler call, submits it along the selected
route and converts the confirmation into an immutable BundleResult.
"""
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from ..blockchain_connector.interfaces import ChainWriter
from .exceptions import (
    ConfigurationError,
    ExecutionRevert,
    InsufficientValue,
    MalformedLeg,
    SwapError,
    TransportFailure,
)
from .models import (
    BundleRecord,
    BundleResult,
    ConfirmationRecord,
    ExecutionMode,
    ExecutionUnit,
    OrchestrationStage,
    PreparedSubmission,
    RouteDecision,
    SwapLeg,
    derive_bundle_id,
)

logger = logging.getLogger(__name__)

# Upper bound enforced by the bundler contract
MAX_DUMMY_OPS = 10

# Called with (tx_hash, endpoint) once an endpoint has accepted the transaction
SubmissionListener = Callable[[str, str], None]


class BundleExecutor:
    """Executes single, batch and obfuscated bundles through a ChainWriter."""

    def __init__(self, writer: ChainWriter, max_dummy_ops: int = MAX_DUMMY_OPS):
        self.writer = writer
        self.max_dummy_ops = max_dummy_ops

    async def execute_single(
        self,
        decision: RouteDecision,
        pool: str,
        wrapping_asset: str,
        leg: SwapLeg,
        on_submitted: Optional[SubmissionListener] = None
    ) -> BundleResult:
        """One leg, value equal to its amount_in; the router pays the recipient directly."""
        leg.validate()
        unit = ExecutionUnit(
            mode=ExecutionMode.SINGLE,
            pool=pool,
            wrapping_asset=wrapping_asset,
            legs=(leg,),
            value=leg.amount_in
        )
        return await self._execute(unit, decision, on_submitted)

    async def execute_batch(
        self,
        decision: RouteDecision,
        pool: str,
        wrapping_asset: str,
        legs: Sequence[SwapLeg],
        value: int,
        on_submitted: Optional[SubmissionListener] = None
    ) -> BundleResult:
        """
        Several legs in one transaction, in the given order.

        The bundler collects each leg's output and forwards it to that leg's
        recipient, then refunds value - sum(amount_in) to the sender.

        Raises:
            MalformedLeg: empty batch or an invalid leg
            InsufficientValue: value below the committed total, before anything is signed
        """
        if not legs:
            raise MalformedLeg("Batch requires at least one leg")
        for leg in legs:
            leg.validate()

        committed = sum(leg.amount_in for leg in legs)
        if value < committed:
            raise InsufficientValue(
                f"Batch value {value} is below the committed amount {committed}"
            )

        unit = ExecutionUnit(
            mode=ExecutionMode.BATCH,
            pool=pool,
            wrapping_asset=wrapping_asset,
            legs=tuple(legs),
            value=value
        )
        return await self._execute(unit, decision, on_submitted)

    async def execute_obfuscated(
        self,
        decision: RouteDecision,
        pool: str,
        wrapping_asset: str,
        leg: SwapLeg,
        dummy_ops: int,
        on_submitted: Optional[SubmissionListener] = None
    ) -> BundleResult:
        """Single leg padded with dummy operations, clamped to max_dummy_ops."""
        if dummy_ops < 0:
            raise ConfigurationError(f"Dummy operation count cannot be negative, got {dummy_ops}")
        leg.validate()

        padding = min(dummy_ops, self.max_dummy_ops)
        if padding != dummy_ops:
            logger.debug(f"Clamped dummy operations from {dummy_ops} to {padding}")

        unit = ExecutionUnit(
            mode=ExecutionMode.OBFUSCATED,
            pool=pool,
            wrapping_asset=wrapping_asset,
            legs=(leg,),
            value=leg.amount_in,
            dummy_ops=padding
        )
        return await self._execute(unit, decision, on_submitted)

    async def _execute(
        self,
        unit: ExecutionUnit,
        decision: RouteDecision,
        on_submitted: Optional[SubmissionListener] = None
    ) -> BundleResult:
        prepared = await self.writer.prepare(unit)
        tx_hash, endpoint, downgraded = await self._submit(prepared, decision)
        if on_submitted:
            on_submitted(tx_hash, endpoint)

        try:
            confirmation = await self.writer.wait_for_confirmation(tx_hash)
        except SwapError as e:
            if e.stage is None:
                e.stage = OrchestrationStage.CONFIRMATION.value
            raise

        if not confirmation.success:
            raise ExecutionRevert(
                f"Bundle {tx_hash} reverted in block {confirmation.block_number}",
                revert_reason=confirmation.revert_reason,
                stage=OrchestrationStage.CONFIRMATION.value
            )

        return self._build_result(unit, prepared, confirmation, endpoint, decision, downgraded)

    async def _submit(
        self,
        prepared: PreparedSubmission,
        decision: RouteDecision
    ) -> Tuple[str, str, bool]:
        """Send once along the route; a failed private send falls back once."""
        try:
            tx_hash = await self.writer.send(prepared, decision.endpoint)
            return tx_hash, decision.endpoint, False
        except TransportFailure as e:
            if not decision.is_private or not decision.fallback_endpoint:
                raise
            logger.warning(
                f"Private submission failed ({e}); sending the same signed "
                f"transaction once to the standard endpoint"
            )

        tx_hash = await self.writer.send(prepared, decision.fallback_endpoint)
        return tx_hash, decision.fallback_endpoint, True

    def _build_result(
        self,
        unit: ExecutionUnit,
        prepared: PreparedSubmission,
        confirmation: ConfirmationRecord,
        endpoint: str,
        decision: RouteDecision,
        downgraded: bool
    ) -> BundleResult:
        records = [
            record for record in confirmation.records
            if record.sender.lower() == prepared.sender.lower()
        ]
        if not records:
            logger.info(f"No SwapBundled record for {prepared.sender} in {confirmation.tx_hash}")

        bundle_id = records[0].bundle_id if records else None
        if bundle_id:
            expected = derive_bundle_id(records[0].timestamp, prepared.sender, unit.committed_amount)
            if expected != bundle_id:
                logger.warning(f"Bundle id {bundle_id} differs from locally derived {expected}")

        return BundleResult(
            mode=unit.mode,
            tx_hash=confirmation.tx_hash,
            block_number=confirmation.block_number,
            gas_used=confirmation.gas_used,
            refund=unit.refund,
            leg_outputs=self._leg_outputs(unit, records),
            endpoint=endpoint,
            route_kind=decision.kind,
            downgraded=downgraded,
            bundle_id=bundle_id,
            padding_ops=unit.dummy_ops
        )

    @staticmethod
    def _leg_outputs(unit: ExecutionUnit, records: List[BundleRecord]) -> Tuple[Optional[int], ...]:
        # One record per leg, in leg order; anything else leaves outputs unknown
        if len(records) == len(unit.legs):
            return tuple(record.amount_out for record in records)
        return tuple(None for _ in unit.legs)
