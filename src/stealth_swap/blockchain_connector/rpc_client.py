"""
JSON-RPC client for transaction submission.

Submits signed transactions to standard nodes and private relays over a shared
aiohttp session. Relay requests can carry an X-Flashbots-Signature header so
the relay can attribute submissions to a reputation key.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from ..execution.exceptions import SubmissionRejected, TransportFailure

logger = logging.getLogger(__name__)


class RpcEndpointClient:
    """Minimal async JSON-RPC client used for eth_sendRawTransaction."""

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        auth_key: Optional[str] = None,
        user_agent: str = "stealth-swap/0.1"
    ):
        """
        Initialize endpoint client.

        Args:
            timeout_seconds: Total timeout for one request
            auth_key: Optional key used to sign relay requests (not the trading key)
            user_agent: User-Agent header value
        """
        self.timeout_seconds = timeout_seconds
        self.auth_key = auth_key
        self.auth_account = Account.from_key(auth_key) if auth_key else None
        self.user_agent = user_agent
        self.session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Open the HTTP session."""
        if self.session:
            return
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={
                "Content-Type": "application/json",
                "User-Agent": self.user_agent
            }
        )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> "RpcEndpointClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def call(
        self,
        endpoint: str,
        method: str,
        params: List[Any],
        sign: bool = False
    ) -> Any:
        """
        Perform one JSON-RPC call.

        Raises:
            TransportFailure: connection problems, timeouts, non-200 responses
            SubmissionRejected: the endpoint answered with a JSON-RPC error
        """
        if not self.session:
            await self.initialize()

        request = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        body = json.dumps(request)
        headers = self._signature_headers(body) if sign else {}

        try:
            async with self.session.post(endpoint, data=body, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise TransportFailure(
                        f"HTTP {response.status} from endpoint: {error_text[:200]}",
                        endpoint=endpoint
                    )
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailure(
                f"Network error calling {method}: {e}", endpoint=endpoint, cause=e
            ) from e

        if not isinstance(payload, dict):
            raise TransportFailure(f"Malformed JSON-RPC response for {method}", endpoint=endpoint)

        if payload.get("error"):
            error = payload["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            raise SubmissionRejected(
                f"{method} rejected: {message}", endpoint=endpoint, code=code
            )

        return payload.get("result")

    async def send_raw_transaction(
        self,
        endpoint: str,
        raw_transaction: bytes,
        sign: bool = False
    ) -> str:
        """Submit a signed transaction and return the hash reported by the endpoint."""
        result = await self.call(
            endpoint,
            "eth_sendRawTransaction",
            ["0x" + bytes(raw_transaction).hex()],
            sign=sign
        )
        if not result:
            raise SubmissionRejected("eth_sendRawTransaction returned no hash", endpoint=endpoint)
        return result

    def _signature_headers(self, body: str) -> Dict[str, str]:
        """X-Flashbots-Signature over keccak(body), if an auth key is configured."""
        if not self.auth_account:
            return {}
        message = encode_defunct(text="0x" + keccak(text=body).hex())
        signed = Account.sign_message(message, private_key=self.auth_key)
        signature = "0x" + bytes(signed.signature).hex()
        return {"X-Flashbots-Signature": f"{self.auth_account.address}:{signature}"}
