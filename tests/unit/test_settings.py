"""Unit tests for settings and the network table."""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from stealth_swap.config.networks import get_network, network_for_chain_id
from stealth_swap.config.settings import Settings
from stealth_swap.execution.exceptions import ConfigurationError
from stealth_swap.execution.models import NetworkClass

ENV_VARS = [
    "NETWORK", "RPC_URL", "SEPOLIA_RPC_URL", "ETH_RPC_URL", "PRIVATE_RPC_URL", "USE_PRIVATE_RPC",
    "REQUIRE_PRIVATE_ON_PRODUCTION", "PRIVATE_RELAYS_JSON", "RELAY_AUTH_KEY", "SLIPPAGE_BPS",
    "POOL_ADDRESS", "WETH_ADDRESS", "TOKEN_OUT_ADDRESS", "USDC_ADDRESS", "POOL_FEE",
    "ROUTER_ADDRESS", "BUNDLER_ADDRESS", "QUOTER_V2_ADDRESS", "PRIVATE_KEY", "SWAP_AMOUNT_ETH",
    "DEADLINE_SECONDS", "GAS_LIMIT", "GAS_RESERVE_ETH", "CONFIRMATION_TIMEOUT_SECONDS",
    "OBFUSCATION_OPS", "DRY_RUN", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Test environment loading."""

    def test_defaults(self, clean_env):
        settings = Settings(_env_file=None)

        assert settings.network == "sepolia"
        assert settings.slippage_bps == 200
        assert settings.pool_fee == 500
        assert settings.swap_amount_eth == Decimal("0.002")
        assert settings.gas_limit == 600_000
        assert settings.gas_reserve_eth == Decimal("0.001")
        assert settings.deadline_seconds == 300
        assert settings.confirmation_timeout_seconds == 120.0
        assert settings.obfuscation_ops == 0
        assert settings.require_private_on_production is True
        assert settings.use_private_rpc is False
        assert settings.dry_run is False

    def test_reads_environment(self, clean_env):
        clean_env.setenv("RPC_URL", "https://sepolia.infura.io/v3/key")
        clean_env.setenv("SLIPPAGE_BPS", "50")
        clean_env.setenv("USE_PRIVATE_RPC", "true")
        clean_env.setenv("PRIVATE_RPC_URL", "https://relay-sepolia.flashbots.net")

        settings = Settings(_env_file=None)
        endpoints = settings.endpoint_config()

        assert settings.slippage_bps == 50
        assert endpoints.rpc_url == "https://sepolia.infura.io/v3/key"
        assert endpoints.private_rpc_url == "https://relay-sepolia.flashbots.net"
        assert endpoints.use_private_rpc is True

    def test_legacy_variable_names(self, clean_env):
        clean_env.setenv("SEPOLIA_RPC_URL", "https://sepolia.example")
        clean_env.setenv("USDC_ADDRESS", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")

        settings = Settings(_env_file=None)

        assert settings.rpc_url == "https://sepolia.example"
        assert settings.token_out_address == "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"

    def test_missing_configuration_lists_every_variable(self, clean_env):
        settings = Settings(_env_file=None)

        with pytest.raises(ConfigurationError) as exc_info:
            settings.require_swap_config()

        message = str(exc_info.value)
        for name in ("RPC_URL", "POOL_ADDRESS", "WETH_ADDRESS", "TOKEN_OUT_ADDRESS",
                     "ROUTER_ADDRESS", "BUNDLER_ADDRESS", "PRIVATE_KEY"):
            assert name in message

    def test_dry_run_does_not_need_a_key(self, clean_env):
        settings = Settings(
            _env_file=None,
            RPC_URL="http://localhost:8545",
            POOL_ADDRESS="0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640",
            WETH_ADDRESS="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
            TOKEN_OUT_ADDRESS="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
            ROUTER_ADDRESS="0xE592427A0AEce92De3Edee1F18E0157C05861564",
            BUNDLER_ADDRESS="0x000000000000000000000000000000000000bd1e",
        )

        settings.require_swap_config(dry_run=True)
        assert settings.missing_swap_config(dry_run=False) == ["PRIVATE_KEY"]

    @pytest.mark.parametrize("name,value", [
        ("POOL_ADDRESS", "0x1234"),
        ("BUNDLER_ADDRESS", "bundler"),
        ("OBFUSCATION_OPS", "-3"),
        ("SWAP_AMOUNT_ETH", "-1"),
        ("GAS_RESERVE_ETH", "-0.1"),
        ("SLIPPAGE_BPS", "10001"),
        ("DEADLINE_SECONDS", "0"),
    ])
    def test_rejects_invalid_values(self, clean_env, name, value):
        clean_env.setenv(name, value)

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_rejects_malformed_private_key_without_echoing_it(self, clean_env):
        clean_env.setenv("PRIVATE_KEY", "not-a-key")

        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None)

        messages = [error["msg"] for error in exc_info.value.errors()]
        assert any("private key" in message for message in messages)
        assert not any("not-a-key" in message for message in messages)

    def test_accepts_valid_key_and_blank_addresses(self, clean_env):
        clean_env.setenv("PRIVATE_KEY", "0x" + "1" * 64)
        clean_env.setenv("QUOTER_V2_ADDRESS", "")

        settings = Settings(_env_file=None)

        assert settings.private_key == "0x" + "1" * 64
        assert settings.quoter_v2_address is None


class TestNetworks:
    """Test the known network table."""

    def test_mainnet_is_production(self):
        mainnet = get_network("mainnet")

        assert mainnet.chain_id == 1
        assert mainnet.network_class == NetworkClass.PRODUCTION
        assert mainnet.is_production

    @pytest.mark.parametrize("name,chain_id", [
        ("sepolia", 11155111),
        ("holesky", 17000),
        ("goerli", 5),
        ("hardhat", 31337),
        ("localhost", 31337),
    ])
    def test_test_networks(self, name, chain_id):
        profile = get_network(name)

        assert profile.chain_id == chain_id
        assert profile.network_class == NetworkClass.TEST

    def test_lookup_is_case_insensitive(self):
        assert get_network("  Sepolia ").name == "sepolia"
        assert get_network("ethereum").name == "mainnet"

    def test_unknown_network(self):
        with pytest.raises(ConfigurationError, match="Unknown network"):
            get_network("dogechain")

    def test_chain_id_lookup(self):
        assert network_for_chain_id(1).is_production
        assert network_for_chain_id(31337).network_class == NetworkClass.TEST
        assert network_for_chain_id(999999) is None
