"""
In-process bundler simulation for dry runs and tests.

PoolPriceRouter prices swaps from a pool snapshot, SimulatedBundler reproduces
the bundler contract's value accounting, forwarding and atomicity, and
SimulatedChainWriter exposes both through the ChainWriter interface so the
orchestrator runs unchanged.
"""
import dataclasses
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from eth_utils import keccak

from ..blockchain_connector.interfaces import ChainWriter, DownstreamRouter
from .bundle_executor import MAX_DUMMY_OPS
from .exceptions import (
    DeadlineExpired,
    ExecutionRevert,
    InsufficientValue,
    MalformedLeg,
    TransportFailure,
)
from .models import (
    BundleRecord,
    ConfirmationRecord,
    ExecutionMode,
    ExecutionUnit,
    PoolState,
    PreparedSubmission,
    SwapLeg,
    derive_bundle_id,
)
from .quote_estimator import approximate_output

logger = logging.getLogger(__name__)

SIMULATED_BUNDLER_ADDRESS = "0x000000000000000000000000000000000000bd1e"

# Synthetic gas schedule
BASE_GAS = 60_000
SWAP_GAS = 110_000
FORWARD_GAS = 30_000
DUMMY_OP_GAS = 5_000

TokenLedger = Dict[Tuple[str, str], int]


def simulated_gas(unit: ExecutionUnit) -> int:
    """Deterministic gas figure for a unit; padding is charged after clamping."""
    gas = BASE_GAS + SWAP_GAS * len(unit.legs)
    if unit.mode == ExecutionMode.BATCH:
        gas += FORWARD_GAS * len(unit.legs)
    if unit.mode == ExecutionMode.OBFUSCATED:
        gas += DUMMY_OP_GAS * min(unit.dummy_ops, MAX_DUMMY_OPS)
    return gas


class PoolPriceRouter(DownstreamRouter):
    """Router that fills every swap at the snapshot spot price."""

    def __init__(
        self,
        pool_state: PoolState,
        clock: Callable[[], float] = time.time,
        ledger: Optional[TokenLedger] = None
    ):
        self.pool_state = pool_state
        self.clock = clock
        self.ledger: TokenLedger = ledger if ledger is not None else {}
        self.swap_calls = 0

    def balance_of(self, token: str, holder: str) -> int:
        return self.ledger.get((token.lower(), holder.lower()), 0)

    def credit(self, token: str, holder: str, amount: int) -> None:
        key = (token.lower(), holder.lower())
        self.ledger[key] = self.ledger.get(key, 0) + amount

    def debit(self, token: str, holder: str, amount: int) -> None:
        key = (token.lower(), holder.lower())
        if self.ledger.get(key, 0) < amount:
            raise ExecutionRevert("Transfer amount exceeds balance", revert_reason="STF")
        self.ledger[key] -= amount

    def swap(self, pool: str, wrapping_asset: str, leg: SwapLeg, value: int) -> int:
        if value < leg.amount_in:
            raise InsufficientValue(f"Router received {value}, leg needs {leg.amount_in}")
        if leg.token_in.lower() != wrapping_asset.lower():
            raise MalformedLeg(f"Router only wraps into {wrapping_asset}, got {leg.token_in}")
        if leg.deadline < self.clock():
            raise DeadlineExpired("Transaction too old", revert_reason="Transaction too old")

        amount_out = approximate_output(self.pool_state, leg.token_in, leg.amount_in) or 0
        if amount_out < leg.amount_out_minimum:
            raise ExecutionRevert(
                f"Output {amount_out} below minimum {leg.amount_out_minimum}",
                revert_reason="Too little received"
            )

        self.swap_calls += 1
        self.credit(leg.token_out, leg.recipient, amount_out)
        return amount_out


class SimulatedBundler:
    """
    Mirror of the bundler contract.

    A unit either applies completely or not at all: any revert restores the
    ledger and counters to their state before the call.
    """

    def __init__(
        self,
        router: PoolPriceRouter,
        address: str = SIMULATED_BUNDLER_ADDRESS,
        clock: Optional[Callable[[], float]] = None
    ):
        self.router = router
        self.address = address
        self.clock = clock or router.clock
        self.forward_count = 0
        self.padding_ops_executed = 0
        self.refunds: Dict[str, int] = {}

    def execute(self, unit: ExecutionUnit, sender: str) -> Tuple[Tuple[BundleRecord, ...], int]:
        """Apply a unit and return its SwapBundled records and gas used."""
        snapshot = (
            dict(self.router.ledger),
            self.router.swap_calls,
            self.forward_count,
            self.padding_ops_executed,
            dict(self.refunds),
        )
        try:
            return self._apply(unit, sender)
        except ExecutionRevert:
            ledger, swap_calls, forwards, padding, refunds = snapshot
            self.router.ledger.clear()
            self.router.ledger.update(ledger)
            self.router.swap_calls = swap_calls
            self.forward_count = forwards
            self.padding_ops_executed = padding
            self.refunds = refunds
            raise

    def _apply(self, unit: ExecutionUnit, sender: str) -> Tuple[Tuple[BundleRecord, ...], int]:
        if not unit.legs:
            raise MalformedLeg("No swaps in bundle")
        if unit.value < unit.committed_amount:
            raise InsufficientValue(
                f"Value {unit.value} below committed {unit.committed_amount}",
                revert_reason="Insufficient ETH"
            )

        timestamp = int(self.clock())
        bundle_id = derive_bundle_id(timestamp, sender, unit.committed_amount)
        records: List[BundleRecord] = []

        for leg in unit.legs:
            leg.validate()
            if unit.mode == ExecutionMode.BATCH:
                # Output lands on the bundler, which forwards it to the leg recipient
                routed = dataclasses.replace(leg, recipient=self.address)
                amount_out = self.router.swap(unit.pool, unit.wrapping_asset, routed, leg.amount_in)
                self._forward(leg.token_out, leg.recipient, amount_out)
            else:
                amount_out = self.router.swap(unit.pool, unit.wrapping_asset, leg, unit.value)

            records.append(BundleRecord(
                bundle_id=bundle_id,
                sender=sender,
                amount_in=leg.amount_in,
                amount_out=amount_out,
                timestamp=timestamp
            ))

        if unit.mode == ExecutionMode.OBFUSCATED:
            self.padding_ops_executed += min(unit.dummy_ops, MAX_DUMMY_OPS)

        if unit.refund:
            key = sender.lower()
            self.refunds[key] = self.refunds.get(key, 0) + unit.refund

        return tuple(records), simulated_gas(unit)

    def _forward(self, token: str, recipient: str, amount: int) -> None:
        self.router.debit(token, self.address, amount)
        self.router.credit(token, recipient, amount)
        self.forward_count += 1


class SimulatedChainWriter(ChainWriter):
    """ChainWriter that mines every sent unit on a SimulatedBundler."""

    def __init__(
        self,
        bundler: SimulatedBundler,
        sender: str,
        failing_endpoints: Iterable[str] = (),
        start_block: int = 1
    ):
        self.bundler = bundler
        self.sender = sender
        self.failing_endpoints = frozenset(failing_endpoints)
        self.sent: List[Tuple[str, str]] = []
        self._nonce = 0
        self._next_block = start_block
        self._confirmations: Dict[str, ConfirmationRecord] = {}

    async def prepare(self, unit: ExecutionUnit) -> PreparedSubmission:
        nonce = self._nonce
        self._nonce += 1
        raw_transaction = keccak(text=f"{self.sender}:{nonce}:{unit!r}")
        return PreparedSubmission(
            unit=unit,
            raw_transaction=raw_transaction,
            tx_hash="0x" + keccak(raw_transaction).hex(),
            sender=self.sender
        )

    async def send(self, prepared: PreparedSubmission, endpoint: str) -> str:
        if endpoint in self.failing_endpoints:
            raise TransportFailure(f"Simulated submission failure at {endpoint}", endpoint=endpoint)

        self.sent.append((endpoint, prepared.tx_hash))
        if prepared.tx_hash not in self._confirmations:
            self._confirmations[prepared.tx_hash] = self._mine(prepared)
        return prepared.tx_hash

    async def wait_for_confirmation(self, tx_hash: str) -> ConfirmationRecord:
        try:
            return self._confirmations[tx_hash]
        except KeyError:
            raise TransportFailure(f"Transaction {tx_hash} was never sent") from None

    def _mine(self, prepared: PreparedSubmission) -> ConfirmationRecord:
        block_number = self._next_block
        self._next_block += 1

        try:
            records, gas_used = self.bundler.execute(prepared.unit, prepared.sender)
        except ExecutionRevert as e:
            logger.info(f"Simulated bundle {prepared.tx_hash} reverted: {e}")
            return ConfirmationRecord(
                tx_hash=prepared.tx_hash,
                block_number=block_number,
                gas_used=BASE_GAS,
                success=False,
                revert_reason=e.revert_reason or e.message
            )

        return ConfirmationRecord(
            tx_hash=prepared.tx_hash,
            block_number=block_number,
            gas_used=gas_used,
            success=True,
            records=records
        )
