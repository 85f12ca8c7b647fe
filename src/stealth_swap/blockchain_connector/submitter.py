"""
Transaction submission for the swap bundler contract.

Builds the bundler call for an execution unit, signs it once with the trading
account, sends the raw transaction to whichever endpoint the route selected and
waits for the receipt on the standard node.
"""
import logging
from typing import List, Optional

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from ..execution.exceptions import ExecutionRevert, TransportFailure
from ..execution.models import (
    BundleRecord,
    ConfirmationRecord,
    ExecutionMode,
    ExecutionUnit,
    PreparedSubmission,
)
from ..mev_protection.endpoints import is_private_endpoint
from .contracts import BUNDLER_FUNCTIONS, SWAP_BUNDLER_ABI
from .interfaces import ChainWriter
from .provider import TRANSPORT_ERRORS
from .rpc_client import RpcEndpointClient

logger = logging.getLogger(__name__)


class Web3TransactionSubmitter(ChainWriter):
    """ChainWriter that talks to a deployed SwapBundler through web3.py."""

    def __init__(
        self,
        w3: AsyncWeb3,
        account: LocalAccount,
        bundler_address: str,
        rpc_client: RpcEndpointClient,
        chain_id: int,
        gas_limit: int = 600_000,
        confirmation_timeout_seconds: float = 120.0
    ):
        """
        Initialize submitter.

        Args:
            w3: AsyncWeb3 connected to the standard node (nonce, fees, receipts)
            account: Signing account of the submitter
            bundler_address: Deployed SwapBundler address
            rpc_client: JSON-RPC client used for raw transaction submission
            chain_id: Chain ID embedded in signed transactions
            gas_limit: Fixed gas limit for bundler calls
            confirmation_timeout_seconds: Receipt wait bound handed to web3
        """
        self.w3 = w3
        self.account = account
        self.bundler = w3.eth.contract(
            address=w3.to_checksum_address(bundler_address),
            abi=SWAP_BUNDLER_ABI
        )
        self.rpc_client = rpc_client
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.confirmation_timeout_seconds = confirmation_timeout_seconds

    def _bundler_call(self, unit: ExecutionUnit):
        function = getattr(self.bundler.functions, BUNDLER_FUNCTIONS[unit.mode.value])
        pool = self.w3.to_checksum_address(unit.pool)
        weth = self.w3.to_checksum_address(unit.wrapping_asset)

        if unit.mode == ExecutionMode.BATCH:
            return function(pool, weth, [leg.as_abi_tuple() for leg in unit.legs])
        if unit.mode == ExecutionMode.OBFUSCATED:
            return function(pool, weth, unit.legs[0].as_abi_tuple(), unit.dummy_ops)
        return function(pool, weth, unit.legs[0].as_abi_tuple())

    async def prepare(self, unit: ExecutionUnit) -> PreparedSubmission:
        try:
            nonce = await self.w3.eth.get_transaction_count(self.account.address, "pending")
            transaction = await self._bundler_call(unit).build_transaction({
                "from": self.account.address,
                "value": unit.value,
                "gas": self.gas_limit,
                "nonce": nonce,
                "chainId": self.chain_id,
            })
        except TRANSPORT_ERRORS as e:
            raise TransportFailure(
                f"Transport error while building {unit.mode.value} bundle: {e}", cause=e
            ) from e
        except ContractLogicError as e:
            raise ExecutionRevert(
                f"Bundler rejected {unit.mode.value} bundle",
                revert_reason=getattr(e, "message", None) or str(e),
                cause=e
            ) from e

        signed = self.account.sign_transaction(transaction)
        tx_hash = "0x" + bytes(signed.hash).hex()
        logger.debug(f"Signed {unit.mode.value} bundle {tx_hash} with nonce {nonce}")

        return PreparedSubmission(
            unit=unit,
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash=tx_hash,
            sender=self.account.address
        )

    async def send(self, prepared: PreparedSubmission, endpoint: str) -> str:
        reported_hash = await self.rpc_client.send_raw_transaction(
            endpoint,
            prepared.raw_transaction,
            sign=is_private_endpoint(endpoint)
        )
        if reported_hash.lower() != prepared.tx_hash.lower():
            logger.warning(
                f"Endpoint reported hash {reported_hash}, expected {prepared.tx_hash}"
            )
        return reported_hash

    async def wait_for_confirmation(self, tx_hash: str) -> ConfirmationRecord:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout_seconds
            )
        except TimeExhausted as e:
            raise TransportFailure(
                f"Transaction {tx_hash} not included within "
                f"{self.confirmation_timeout_seconds}s", cause=e
            ) from e
        except TRANSPORT_ERRORS as e:
            raise TransportFailure(f"Transport error awaiting {tx_hash}: {e}", cause=e) from e

        success = receipt["status"] == 1
        block_number = receipt["blockNumber"]

        return ConfirmationRecord(
            tx_hash=tx_hash,
            block_number=block_number,
            gas_used=receipt["gasUsed"],
            success=success,
            records=tuple(self._decode_records(receipt)),
            revert_reason=None if success else await self._revert_reason(tx_hash, block_number)
        )

    def _decode_records(self, receipt) -> List[BundleRecord]:
        records = []
        for event in self.bundler.events.SwapBundled().process_receipt(receipt, errors=DISCARD):
            args = event["args"]
            records.append(BundleRecord(
                bundle_id="0x" + bytes(args["bundleId"]).hex(),
                sender=args["sender"],
                amount_in=args["amountIn"],
                amount_out=args["amountOut"],
                timestamp=args["timestamp"]
            ))
        return records

    async def _revert_reason(self, tx_hash: str, block_number: int) -> Optional[str]:
        """Replay a reverted transaction with eth_call to recover its reason."""
        try:
            tx = await self.w3.eth.get_transaction(tx_hash)
            await self.w3.eth.call(
                {
                    "from": tx["from"],
                    "to": tx["to"],
                    "data": tx["input"],
                    "value": tx["value"],
                    "gas": tx["gas"],
                },
                block_number
            )
        except ContractLogicError as e:
            return getattr(e, "message", None) or str(e)
        except TRANSPORT_ERRORS + (Web3Exception,) as e:
            logger.warning(f"Could not replay {tx_hash} for its revert reason: {e}")
        return None
