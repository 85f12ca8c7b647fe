"""Swap settings loaded from environment variables."""
from decimal import Decimal
from typing import List, Optional

from eth_account import Account
from eth_utils import is_hex_address
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from ..execution.exceptions import ConfigurationError
from ..execution.models import EndpointConfig


class Settings(BaseSettings):
    """Swap settings loaded from environment variables and .env."""

    # Network settings
    network: str = Field(
        default="sepolia",
        description="Network name (mainnet, sepolia, holesky, goerli, hardhat, localhost)",
        alias="NETWORK"
    )

    rpc_url: Optional[str] = Field(
        default=None,
        description="Standard JSON-RPC endpoint",
        validation_alias=AliasChoices("RPC_URL", "SEPOLIA_RPC_URL", "ETH_RPC_URL")
    )

    # MEV protection settings
    private_rpc_url: Optional[str] = Field(
        default=None,
        description="Private relay endpoint (Flashbots Protect, Eden, ...)",
        alias="PRIVATE_RPC_URL"
    )

    use_private_rpc: bool = Field(
        default=False,
        description="Submit through PRIVATE_RPC_URL when it is a recognized relay",
        alias="USE_PRIVATE_RPC"
    )

    require_private_on_production: bool = Field(
        default=True,
        description="Refuse standard submission on production networks",
        alias="REQUIRE_PRIVATE_ON_PRODUCTION"
    )

    private_relays_json: Optional[str] = Field(
        default=None,
        description='Extra relays as JSON, e.g. {"mainnet": ["https://..."]}',
        alias="PRIVATE_RELAYS_JSON"
    )

    relay_auth_key: Optional[str] = Field(
        default=None,
        description="Key used to sign X-Flashbots-Signature headers",
        alias="RELAY_AUTH_KEY"
    )

    slippage_bps: int = Field(
        default=200,
        description="Slippage tolerance in basis points (100 = 1%)",
        ge=0,
        le=10_000,
        alias="SLIPPAGE_BPS"
    )

    # Contract addresses
    pool_address: Optional[str] = Field(default=None, description="Uniswap V3 pool", alias="POOL_ADDRESS")
    weth_address: Optional[str] = Field(default=None, description="Wrapped native token", alias="WETH_ADDRESS")

    token_out_address: Optional[str] = Field(
        default=None,
        description="Output token",
        validation_alias=AliasChoices("TOKEN_OUT_ADDRESS", "USDC_ADDRESS")
    )

    pool_fee: int = Field(default=500, description="Pool fee tier in hundredths of a bip", alias="POOL_FEE")
    router_address: Optional[str] = Field(default=None, description="Swap router", alias="ROUTER_ADDRESS")
    bundler_address: Optional[str] = Field(default=None, description="Deployed SwapBundler", alias="BUNDLER_ADDRESS")
    quoter_v2_address: Optional[str] = Field(default=None, description="QuoterV2 contract", alias="QUOTER_V2_ADDRESS")

    # Account
    private_key: Optional[str] = Field(default=None, description="Signing key of the trading account", alias="PRIVATE_KEY")

    # Execution settings
    swap_amount_eth: Decimal = Field(
        default=Decimal("0.002"),
        description="Native amount swapped per run",
        gt=0,
        alias="SWAP_AMOUNT_ETH"
    )

    deadline_seconds: int = Field(default=300, description="Swap deadline offset", gt=0, alias="DEADLINE_SECONDS")
    gas_limit: int = Field(default=600_000, description="Gas limit for bundler calls", gt=0, alias="GAS_LIMIT")

    gas_reserve_eth: Decimal = Field(
        default=Decimal("0.001"),
        description="Native balance kept back for gas",
        ge=0,
        alias="GAS_RESERVE_ETH"
    )

    confirmation_timeout_seconds: float = Field(
        default=120.0,
        description="Receipt wait bound",
        gt=0,
        alias="CONFIRMATION_TIMEOUT_SECONDS"
    )

    obfuscation_ops: int = Field(default=0, description="Dummy operations per swap", ge=0, alias="OBFUSCATION_OPS")
    dry_run: bool = Field(default=False, description="Simulate the bundler instead of sending", alias="DRY_RUN")
    log_level: str = Field(default="INFO", description="Root log level", alias="LOG_LEVEL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore"
    }

    @field_validator(
        "pool_address", "weth_address", "token_out_address",
        "router_address", "bundler_address", "quoter_v2_address"
    )
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        """Validate Ethereum address format."""
        if v and not is_hex_address(v):
            raise ValueError(f"Invalid Ethereum address: {v}")
        return v or None

    @field_validator("private_key", "relay_auth_key")
    @classmethod
    def validate_private_key(cls, v: Optional[str]) -> Optional[str]:
        """Reject keys that cannot sign; the value is kept out of the message."""
        if not v:
            return None
        try:
            Account.from_key(v)
        except ValueError:
            raise ValueError("not a valid 32-byte hex private key") from None
        return v

    def missing_swap_config(self, dry_run: Optional[bool] = None) -> List[str]:
        """Names of required variables that are unset."""
        dry_run = self.dry_run if dry_run is None else dry_run
        required = {
            "RPC_URL": self.rpc_url,
            "POOL_ADDRESS": self.pool_address,
            "WETH_ADDRESS": self.weth_address,
            "TOKEN_OUT_ADDRESS": self.token_out_address,
            "ROUTER_ADDRESS": self.router_address,
            "BUNDLER_ADDRESS": self.bundler_address,
        }
        if not dry_run:
            required["PRIVATE_KEY"] = self.private_key
        return [name for name, value in required.items() if not value]

    def require_swap_config(self, dry_run: Optional[bool] = None) -> None:
        """Raise ConfigurationError naming every missing required variable."""
        missing = self.missing_swap_config(dry_run)
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    def endpoint_config(self) -> EndpointConfig:
        return EndpointConfig(
            rpc_url=self.rpc_url,
            private_rpc_url=self.private_rpc_url,
            use_private_rpc=self.use_private_rpc
        )
