"""Blockchain connector package: chain reads, submission and contract ABIs."""
from .interfaces import ChainReader, ChainWriter, DownstreamRouter
from .provider import Web3ChainReader, create_async_web3
from .rpc_client import RpcEndpointClient
from .submitter import Web3TransactionSubmitter

__all__ = [
    "ChainReader",
    "ChainWriter",
    "DownstreamRouter",
    "Web3ChainReader",
    "create_async_web3",
    "RpcEndpointClient",
    "Web3TransactionSubmitter",
]
