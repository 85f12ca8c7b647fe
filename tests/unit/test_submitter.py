"""Unit tests for the web3 transaction submitter."""
from unittest.mock import AsyncMock, Mock

import pytest
from eth_account import Account
from eth_utils import keccak
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from stealth_swap.blockchain_connector.submitter import Web3TransactionSubmitter
from stealth_swap.execution.exceptions import ExecutionRevert, TransportFailure
from stealth_swap.execution.models import ExecutionMode, ExecutionUnit, PreparedSubmission, SwapLeg

WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
POOL = "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"
BUNDLER = "0x000000000000000000000000000000000000bd1e"
STANDARD_RPC = "https://sepolia.infura.io/v3/key"
PRIVATE_RPC = "https://rpc.flashbots.net"


def make_leg(amount_in=10 ** 15, recipient=None):
    return SwapLeg(
        token_in=WETH,
        token_out=USDC,
        fee=500,
        recipient=recipient or "0x1234567890123456789012345678901234567890",
        deadline=1_700_000_300,
        amount_in=amount_in,
        amount_out_minimum=4_400_000
    )


def make_unit(mode=ExecutionMode.SINGLE, legs=None, value=None, dummy_ops=0):
    legs = tuple(legs or [make_leg()])
    return ExecutionUnit(
        mode=mode,
        pool=POOL,
        wrapping_asset=WETH,
        legs=legs,
        value=value if value is not None else sum(leg.amount_in for leg in legs),
        dummy_ops=dummy_ops
    )


class TestWeb3TransactionSubmitter:
    """Test building, signing, sending and confirming bundler calls."""

    @pytest.fixture
    def account(self):
        return Account.from_key("0x" + "1" * 64)

    @pytest.fixture
    def bundler(self):
        return Mock()

    @pytest.fixture
    def w3(self, bundler):
        w3 = Mock()
        w3.to_checksum_address = Web3.to_checksum_address
        w3.eth.contract = Mock(return_value=bundler)
        w3.eth.get_transaction_count = AsyncMock(return_value=7)
        return w3

    @pytest.fixture
    def rpc_client(self):
        client = Mock()
        client.send_raw_transaction = AsyncMock()
        return client

    @pytest.fixture
    def submitter(self, w3, account, rpc_client):
        return Web3TransactionSubmitter(
            w3, account, BUNDLER, rpc_client, chain_id=11155111, gas_limit=600_000,
            confirmation_timeout_seconds=30
        )

    def transaction_for(self, account, tx_params):
        return {
            "from": account.address,
            "to": Web3.to_checksum_address(BUNDLER),
            "value": tx_params["value"],
            "gas": tx_params["gas"],
            "nonce": tx_params["nonce"],
            "chainId": tx_params["chainId"],
            "data": "0x12345678",
            "maxFeePerGas": 30_000_000_000,
            "maxPriorityFeePerGas": 1_000_000_000,
        }

    def stub_build(self, bundler, function_name, account):
        function = getattr(bundler.functions, function_name)

        async def build_transaction(tx_params):
            return self.transaction_for(account, tx_params)

        function.return_value.build_transaction = AsyncMock(side_effect=build_transaction)
        return function

    @pytest.mark.asyncio
    async def test_prepare_single(self, submitter, bundler, account):
        function = self.stub_build(bundler, "bundleSwap", account)
        unit = make_unit()

        prepared = await submitter.prepare(unit)

        function.assert_called_once_with(POOL, WETH, unit.legs[0].as_abi_tuple())
        tx_params = function.return_value.build_transaction.await_args.args[0]
        assert tx_params == {
            "from": account.address,
            "value": 10 ** 15,
            "gas": 600_000,
            "nonce": 7,
            "chainId": 11155111,
        }
        assert prepared.sender == account.address
        assert prepared.tx_hash == "0x" + keccak(prepared.raw_transaction).hex()
        assert prepared.unit is unit

    @pytest.mark.asyncio
    async def test_prepare_batch_passes_every_leg(self, submitter, bundler, account):
        function = self.stub_build(bundler, "bundleMultipleSwaps", account)
        legs = [make_leg(10 ** 14), make_leg(2 * 10 ** 14)]
        unit = make_unit(ExecutionMode.BATCH, legs, value=4 * 10 ** 14)

        await submitter.prepare(unit)

        function.assert_called_once_with(POOL, WETH, [leg.as_abi_tuple() for leg in legs])
        assert function.return_value.build_transaction.await_args.args[0]["value"] == 4 * 10 ** 14

    @pytest.mark.asyncio
    async def test_prepare_obfuscated_passes_dummy_ops(self, submitter, bundler, account):
        function = self.stub_build(bundler, "bundleSwapWithObfuscation", account)
        unit = make_unit(ExecutionMode.OBFUSCATED, dummy_ops=4)

        await submitter.prepare(unit)

        function.assert_called_once_with(POOL, WETH, unit.legs[0].as_abi_tuple(), 4)

    @pytest.mark.asyncio
    async def test_prepare_revert_is_execution_revert(self, submitter, bundler):
        bundler.functions.bundleSwap.return_value.build_transaction = AsyncMock(
            side_effect=ContractLogicError("execution reverted: Insufficient ETH")
        )

        with pytest.raises(ExecutionRevert) as exc_info:
            await submitter.prepare(make_unit())

        assert "Insufficient ETH" in exc_info.value.revert_reason

    @pytest.mark.asyncio
    async def test_send_signs_only_private_endpoints(self, submitter, rpc_client):
        prepared = PreparedSubmission(make_unit(), b"\x02raw", "0x" + "aa" * 32, "0xsender")
        rpc_client.send_raw_transaction.return_value = "0x" + "aa" * 32

        await submitter.send(prepared, PRIVATE_RPC)
        await submitter.send(prepared, STANDARD_RPC)

        first, second = rpc_client.send_raw_transaction.await_args_list
        assert first.args == (PRIVATE_RPC, b"\x02raw")
        assert first.kwargs == {"sign": True}
        assert second.kwargs == {"sign": False}

    @pytest.mark.asyncio
    async def test_confirmation_decodes_bundle_records(self, submitter, w3, bundler):
        w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 1, "blockNumber": 99, "gasUsed": 185_000, "logs": []}
        )
        bundler.events.SwapBundled.return_value.process_receipt.return_value = [
            {"args": {
                "bundleId": bytes.fromhex("11" * 32),
                "sender": "0x19E7E376E7C213B7E7e7e46cc70A5dD086DAff2A",
                "amountIn": 10 ** 15,
                "amountOut": 4_489_999,
                "timestamp": 1_700_000_012,
            }}
        ]

        confirmation = await submitter.wait_for_confirmation("0x" + "aa" * 32)

        assert confirmation.success is True
        assert confirmation.block_number == 99
        assert confirmation.gas_used == 185_000
        w3.eth.get_block.assert_not_called()
        assert confirmation.records[0].bundle_id == "0x" + "11" * 32
        assert confirmation.records[0].amount_out == 4_489_999
        w3.eth.wait_for_transaction_receipt.assert_awaited_once_with("0x" + "aa" * 32, timeout=30)

    @pytest.mark.asyncio
    async def test_failed_receipt_carries_revert_reason(self, submitter, w3, bundler):
        w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 0, "blockNumber": 99, "gasUsed": 60_000, "logs": []}
        )
        w3.eth.get_transaction = AsyncMock(return_value={
            "from": "0x19E7E376E7C213B7E7e7e46cc70A5dD086DAff2A",
            "to": BUNDLER,
            "input": "0x12345678",
            "value": 10 ** 15,
            "gas": 600_000,
        })
        w3.eth.call = AsyncMock(side_effect=ContractLogicError("execution reverted: Too little received"))
        bundler.events.SwapBundled.return_value.process_receipt.return_value = []

        confirmation = await submitter.wait_for_confirmation("0x" + "aa" * 32)

        assert confirmation.success is False
        assert "Too little received" in confirmation.revert_reason
        assert w3.eth.call.await_args.args[1] == 99

    @pytest.mark.asyncio
    async def test_receipt_timeout_is_transport_failure(self, submitter, w3):
        w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted("timed out"))

        with pytest.raises(TransportFailure) as exc_info:
            await submitter.wait_for_confirmation("0x" + "aa" * 32)

        assert exc_info.value.retryable is True
