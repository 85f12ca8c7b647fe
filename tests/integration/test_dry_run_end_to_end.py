"""
End-to-end dry runs.

Chain reads are mocked, the bundler is simulated in-process, and everything in
between (estimation, slippage, routing, bundling, reporting) is real.
"""
from decimal import Decimal
from math import isqrt
from unittest.mock import AsyncMock, Mock, patch

import pytest

from stealth_swap import main
from stealth_swap.config.settings import Settings
from stealth_swap.execution.exceptions import RouteRefusal
from stealth_swap.execution.models import ExecutionMode, PoolState, RouteKind

WETH = "0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14"
USDC = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
POOL = "0x3289680dD4d6C10bb19b899729cda5aEF58A0bF1"
ROUTER = "0x3bFA4769FB09eefC5a80d6E87c3B9C650f7Ae48E"
BUNDLER = "0x000000000000000000000000000000000000bd1e"
SEPOLIA_RPC = "https://sepolia.infura.io/v3/key"

# 4.49e-9 USDC units per wei: 0.001 ETH buys about 4.49 USDC
SQRT_PRICE_X96 = isqrt(449 * 2 ** 192 // 10 ** 11)


def make_settings(**overrides):
    values = dict(
        _env_file=None,
        NETWORK="sepolia",
        RPC_URL=SEPOLIA_RPC,
        POOL_ADDRESS=POOL,
        WETH_ADDRESS=WETH,
        TOKEN_OUT_ADDRESS=USDC,
        ROUTER_ADDRESS=ROUTER,
        BUNDLER_ADDRESS=BUNDLER,
        SLIPPAGE_BPS=200,
    )
    values.update(overrides)
    return Settings(**values)


def make_reader(chain_id=11155111):
    reader = Mock()
    reader.get_chain_id = AsyncMock(return_value=chain_id)
    reader.get_pool_state = AsyncMock(
        return_value=PoolState(sqrt_price_x96=SQRT_PRICE_X96, token0=WETH, token1=USDC)
    )
    reader.close = AsyncMock()
    return reader


class TestDryRunEndToEnd:
    """Test the wired pipeline in dry-run mode."""

    @pytest.fixture
    def reader(self):
        return make_reader()

    @pytest.fixture
    def patched_chain(self, reader):
        with patch.object(main, "create_async_web3", return_value=Mock()), \
                patch.object(main, "Web3ChainReader", return_value=reader):
            yield reader

    @pytest.mark.asyncio
    async def test_single_swap_on_test_network(self, patched_chain):
        outcome = await main.run_swap(make_settings(), Decimal("0.001"), dry_run=True)

        expected = outcome.quotes[0].amount
        assert outcome.quotes[0].source == "pool_state"
        assert 4_489_990 <= expected <= 4_490_000
        assert 4_400_190 <= outcome.minimum_outputs[0].amount <= 4_400_200
        assert outcome.minimum_outputs[0].amount == expected * 9800 // 10000
        assert outcome.protected is True
        assert outcome.route.kind == RouteKind.STANDARD_WITH_BUNDLER_PROTECTION
        assert outcome.result.endpoint == SEPOLIA_RPC
        assert outcome.result.refund == 0
        assert outcome.result.leg_outputs == (expected,)
        assert outcome.received_amount == expected
        assert outcome.result.bundle_id.startswith("0x")
        patched_chain.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batch_splits_amount(self, patched_chain):
        outcome = await main.run_swap(make_settings(), Decimal("0.001"), batch=3, dry_run=True)

        amounts = [request.amount_in for request in outcome.requests]
        assert outcome.mode == ExecutionMode.BATCH
        assert sum(amounts) == 10 ** 15
        assert amounts[-1] >= amounts[0]
        assert outcome.result.refund == 0
        assert len(outcome.result.leg_outputs) == 3
        assert all(output is not None for output in outcome.result.leg_outputs)

    @pytest.mark.asyncio
    async def test_obfuscated_swap_clamps_padding(self, patched_chain):
        outcome = await main.run_swap(make_settings(), Decimal("0.001"), dummy_ops=15, dry_run=True)

        assert outcome.mode == ExecutionMode.OBFUSCATED
        assert outcome.result.padding_ops == 10

    @pytest.mark.asyncio
    async def test_zero_tolerance_floor_equals_quote(self, patched_chain):
        outcome = await main.run_swap(make_settings(SLIPPAGE_BPS=0), Decimal("0.001"), dry_run=True)

        assert outcome.minimum_outputs[0].amount == outcome.quotes[0].amount
        assert outcome.result.leg_outputs == (outcome.quotes[0].amount,)

    @pytest.mark.asyncio
    async def test_mainnet_dry_run_still_refuses_public_route(self):
        reader = make_reader(chain_id=1)

        with patch.object(main, "create_async_web3", return_value=Mock()), \
                patch.object(main, "Web3ChainReader", return_value=reader):
            with pytest.raises(RouteRefusal):
                await main.run_swap(
                    make_settings(NETWORK="mainnet", RPC_URL="https://eth-mainnet.g.alchemy.com/v2/key"),
                    Decimal("0.001"),
                    dry_run=True
                )

        reader.close.assert_awaited_once()
