"""Command line entry point: one bundled swap per invocation."""
import argparse
import asyncio
import logging
import sys
import time
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import ValidationError
from web3 import Web3

from .blockchain_connector.provider import Web3ChainReader, create_async_web3
from .blockchain_connector.rpc_client import RpcEndpointClient
from .blockchain_connector.submitter import Web3TransactionSubmitter
from .config.networks import get_network
from .config.settings import Settings
from .execution.bundle_executor import BundleExecutor
from .execution.exceptions import ConfigurationError, SwapError
from .execution.models import SwapOutcome, SwapRequest
from .execution.orchestrator import SwapOrchestrator
from .execution.quote_estimator import QuoteEstimator
from .execution.simulation import PoolPriceRouter, SimulatedBundler, SimulatedChainWriter
from .execution.slippage_guard import SlippagePolicy
from .mev_protection.endpoints import EndpointRegistry
from .mev_protection.route_selector import RouteSelector

logger = logging.getLogger(__name__)

# Stands in for the trading account when a dry run has no key
DRY_RUN_SENDER = "0x0000000000000000000000000000000000000001"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging from a level name."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def split_amount(total: int, parts: int) -> List[int]:
    """Split total into equal parts, the remainder going to the last one."""
    if parts < 1:
        raise ConfigurationError(f"Batch size must be at least 1, got {parts}")
    share = total // parts
    if share <= 0:
        raise ConfigurationError(f"Amount {total} wei is too small to split into {parts} swaps")
    amounts = [share] * parts
    amounts[-1] += total - share * parts
    return amounts


def ether_to_wei(amount: Decimal, name: str) -> int:
    """Convert an ether amount to wei, rejecting values no transaction can carry."""
    if not amount.is_finite() or amount < 0:
        raise ConfigurationError(f"{name} must be a non-negative number, got {amount}")
    try:
        return int(Web3.to_wei(amount, "ether"))
    except ValueError as e:
        raise ConfigurationError(f"{name} {amount} is out of range: {e}") from e


def load_account(key: Optional[str], name: str) -> Optional[LocalAccount]:
    """Account for a hex private key; the key itself never appears in errors."""
    if not key:
        return None
    try:
        return Account.from_key(key)
    except ValueError as e:
        raise ConfigurationError(f"{name} is not a valid private key") from e


def build_requests(settings: Settings, amount_wei: int, recipient: str, batch: int) -> List[SwapRequest]:
    deadline = int(time.time()) + settings.deadline_seconds
    return [
        SwapRequest(
            token_in=settings.weth_address,
            token_out=settings.token_out_address,
            pool=settings.pool_address,
            fee=settings.pool_fee,
            amount_in=amount,
            recipient=recipient,
            deadline=deadline
        )
        for amount in split_amount(amount_wei, batch)
    ]


async def run_swap(
    settings: Settings,
    amount_eth: Decimal,
    dummy_ops: int = 0,
    batch: int = 1,
    dry_run: bool = False
) -> SwapOutcome:
    """
    Wire the components from settings and run one orchestration.

    Every configuration problem is raised as ConfigurationError before the
    first chain read.
    """
    settings.require_swap_config(dry_run=dry_run)
    if dummy_ops < 0:
        raise ConfigurationError(f"Dummy operation count cannot be negative, got {dummy_ops}")
    if batch < 1:
        raise ConfigurationError(f"Batch size must be at least 1, got {batch}")
    if batch > 1 and dummy_ops > 0:
        raise ConfigurationError("--batch and --dummy-ops cannot be combined")

    network = get_network(settings.network)
    slippage = SlippagePolicy(settings.slippage_bps)

    registry = EndpointRegistry.default()
    if settings.private_relays_json:
        registry = EndpointRegistry.from_json(settings.private_relays_json, base=registry)
    route_selector = RouteSelector(registry, settings.require_private_on_production)

    amount_wei = ether_to_wei(amount_eth, "Swap amount")
    if amount_wei <= 0:
        raise ConfigurationError(f"Swap amount must be at least 1 wei, got {amount_eth} ETH")
    gas_reserve = ether_to_wei(settings.gas_reserve_eth, "GAS_RESERVE_ETH")

    account = load_account(settings.private_key, "PRIVATE_KEY")
    load_account(settings.relay_auth_key, "RELAY_AUTH_KEY")
    sender = account.address if account else DRY_RUN_SENDER
    requests = build_requests(settings, amount_wei, sender, batch)

    w3 = create_async_web3(settings.rpc_url)
    reader = Web3ChainReader(w3, endpoint=settings.rpc_url)
    rpc_client = RpcEndpointClient(auth_key=settings.relay_auth_key)

    try:
        if dry_run:
            pool_state = await reader.get_pool_state(settings.pool_address)
            writer = SimulatedChainWriter(SimulatedBundler(PoolPriceRouter(pool_state)), sender)
            logger.info("Dry run: chain reads are live, bundler execution is simulated")
        else:
            writer = Web3TransactionSubmitter(
                w3,
                account,
                settings.bundler_address,
                rpc_client,
                chain_id=await reader.get_chain_id(),
                gas_limit=settings.gas_limit,
                confirmation_timeout_seconds=settings.confirmation_timeout_seconds
            )

        logger.info(
            f"Swapping {amount_eth} ETH on {network.name} via bundler "
            f"{settings.bundler_address} (router {settings.router_address})"
        )

        orchestrator = SwapOrchestrator(
            reader=reader,
            estimator=QuoteEstimator.for_reader(reader, settings.quoter_v2_address),
            route_selector=route_selector,
            executor=BundleExecutor(writer),
            network=network,
            endpoints=settings.endpoint_config(),
            slippage=slippage,
            sender=sender,
            wrapping_asset=settings.weth_address,
            gas_reserve=gas_reserve,
            verify_balances=not dry_run
        )

        if batch > 1:
            return await orchestrator.execute_batch(requests, amount_wei)
        if dummy_ops > 0:
            return await orchestrator.execute_obfuscated_swap(requests[0], dummy_ops)
        return await orchestrator.execute_swap(requests[0])
    finally:
        await rpc_client.close()
        await reader.close()


def format_summary(outcome: SwapOutcome) -> str:
    quote = outcome.quotes[0] if len(outcome.quotes) == 1 else None
    expected = sum(q.amount for q in outcome.quotes if q.is_available)
    minimum = sum(m.amount for m in outcome.minimum_outputs)
    result = outcome.result

    lines = [
        "Swap summary",
        f"  Mode:             {outcome.mode.value}",
        f"  Expected output:  {expected if expected else 'unavailable'}"
        + (f" ({quote.source})" if quote and quote.source else ""),
        f"  Minimum output:   {minimum}" + ("" if outcome.protected else "  (UNPROTECTED)"),
        f"  Route:            {outcome.route.kind.value} via {result.endpoint}"
        + ("  (downgraded)" if result.downgraded else ""),
        f"  Transaction:      {result.tx_hash}",
        f"  Block:            {result.block_number}",
        f"  Gas used:         {result.gas_used}",
        f"  Bundle id:        {result.bundle_id or 'n/a'}",
        f"  Refund:           {result.refund}",
        f"  Received:         {outcome.received_amount if outcome.received_amount is not None else 'unknown'}",
    ]
    for warning in outcome.warnings:
        lines.append(f"  Warning:          {warning}")
    return "\n".join(lines)


def describe_validation_error(error: ValidationError) -> str:
    """Field names and messages only, so rejected secrets are never logged."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stealth-swap",
        description="Swap native currency through the SwapBundler with MEV protection"
    )
    parser.add_argument("--amount", type=str, default=None,
                        help="Amount of native currency to swap (default: SWAP_AMOUNT_ETH)")
    parser.add_argument("--dummy-ops", type=int, default=None,
                        help="Dummy operations for obfuscation, at most 10 are executed")
    parser.add_argument("--batch", type=int, default=1,
                        help="Split the amount into N swaps sent in one transaction")
    parser.add_argument("--dry-run", action="store_true",
                        help="Read live chain state but simulate the bundler")
    return parser


def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {describe_validation_error(e)}")
        return 1

    configure_logging(settings.log_level)

    try:
        amount_eth = Decimal(args.amount) if args.amount is not None else settings.swap_amount_eth
    except InvalidOperation:
        logger.error(f"Invalid amount: {args.amount}")
        return 1
    dummy_ops = args.dummy_ops if args.dummy_ops is not None else settings.obfuscation_ops

    try:
        outcome = asyncio.run(run_swap(
            settings,
            amount_eth,
            dummy_ops=dummy_ops,
            batch=args.batch,
            dry_run=args.dry_run or settings.dry_run
        ))
    except SwapError as e:
        logger.error(f"Swap failed: {e}")
        return 1

    print(format_summary(outcome))
    return 0


if __name__ == "__main__":
    sys.exit(cli())
