"""Unit tests for submission route selection."""
import logging

import pytest

from stealth_swap.config.networks import get_network
from stealth_swap.execution.exceptions import ConfigurationError, RouteRefusal
from stealth_swap.execution.models import EndpointConfig, RouteKind
from stealth_swap.mev_protection.endpoints import FLASHBOTS_PROTECT_RPC, EndpointRegistry
from stealth_swap.mev_protection.route_selector import RouteSelector

STANDARD_RPC = "https://eth-mainnet.g.alchemy.com/v2/key"
SEPOLIA_RPC = "https://sepolia.infura.io/v3/key"
PRIVATE_RPC = "https://rpc.flashbots.net/fast"


class TestProductionRouting:
    """Test routing decisions on production networks."""

    @pytest.fixture
    def mainnet(self):
        return get_network("mainnet")

    def test_private_candidate_routes_privately_with_fallback(self, mainnet):
        selector = RouteSelector()
        endpoints = EndpointConfig(STANDARD_RPC, PRIVATE_RPC, use_private_rpc=True)

        decision = selector.select(mainnet, endpoints)

        assert decision.kind == RouteKind.PRIVATE
        assert decision.is_private
        assert decision.endpoint == PRIVATE_RPC
        assert decision.fallback_endpoint == STANDARD_RPC
        assert decision.network == mainnet

    def test_private_rpc_url_as_standard_has_no_fallback(self, mainnet):
        decision = RouteSelector().select(mainnet, EndpointConfig(PRIVATE_RPC))

        assert decision.kind == RouteKind.PRIVATE
        assert decision.fallback_endpoint is None

    def test_configured_but_unused_private_endpoint_refuses(self, mainnet):
        selector = RouteSelector(EndpointRegistry({}))
        endpoints = EndpointConfig(STANDARD_RPC, PRIVATE_RPC, use_private_rpc=False)

        with pytest.raises(RouteRefusal) as exc_info:
            selector.select(mainnet, endpoints)

        assert PRIVATE_RPC in str(exc_info.value)

    def test_registry_relay_is_recommended_in_refusal(self, mainnet):
        with pytest.raises(RouteRefusal) as exc_info:
            RouteSelector().select(mainnet, EndpointConfig(STANDARD_RPC))

        assert FLASHBOTS_PROTECT_RPC in str(exc_info.value)

    def test_nothing_available_refuses_by_default(self, mainnet):
        selector = RouteSelector(EndpointRegistry({}))

        with pytest.raises(RouteRefusal, match="REQUIRE_PRIVATE_ON_PRODUCTION"):
            selector.select(mainnet, EndpointConfig(STANDARD_RPC))

    def test_nothing_available_can_proceed_with_warning(self, mainnet, caplog):
        selector = RouteSelector(EndpointRegistry({}), require_private_on_production=False)

        with caplog.at_level(logging.WARNING):
            decision = selector.select(mainnet, EndpointConfig(STANDARD_RPC))

        assert decision.kind == RouteKind.STANDARD_WITH_BUNDLER_PROTECTION
        assert decision.endpoint == STANDARD_RPC
        assert "WITHOUT PRIVATE RELAY" in caplog.text
        assert "WITHOUT PRIVATE RELAY" in decision.warning

    def test_unrecognized_private_url_is_not_used(self, mainnet):
        selector = RouteSelector(EndpointRegistry({}))
        endpoints = EndpointConfig(STANDARD_RPC, "https://my-node.example.com", use_private_rpc=True)

        with pytest.raises(RouteRefusal):
            selector.select(mainnet, endpoints)


class TestTestNetworkRouting:
    """Test routing decisions on test networks."""

    @pytest.fixture
    def sepolia(self):
        return get_network("sepolia")

    def test_standard_route(self, sepolia):
        decision = RouteSelector().select(sepolia, EndpointConfig(SEPOLIA_RPC))

        assert decision.kind == RouteKind.STANDARD_WITH_BUNDLER_PROTECTION
        assert decision.endpoint == SEPOLIA_RPC
        assert decision.fallback_endpoint is None

    def test_configured_private_endpoint_is_used(self, sepolia):
        endpoints = EndpointConfig(SEPOLIA_RPC, "https://relay-sepolia.flashbots.net", use_private_rpc=True)

        decision = RouteSelector().select(sepolia, endpoints)

        assert decision.kind == RouteKind.PRIVATE
        assert decision.fallback_endpoint == SEPOLIA_RPC

    def test_private_endpoint_left_off_stays_standard(self, sepolia):
        endpoints = EndpointConfig(SEPOLIA_RPC, "https://relay-sepolia.flashbots.net", use_private_rpc=False)

        decision = RouteSelector().select(sepolia, endpoints)

        assert decision.kind == RouteKind.STANDARD_WITH_BUNDLER_PROTECTION

    def test_missing_rpc_url(self, sepolia):
        with pytest.raises(ConfigurationError):
            RouteSelector().select(sepolia, EndpointConfig(None))

    def test_decisions_are_not_cached(self, sepolia):
        selector = RouteSelector()

        first = selector.select(sepolia, EndpointConfig(SEPOLIA_RPC))
        second = selector.select(
            sepolia, EndpointConfig(SEPOLIA_RPC, "https://relay-sepolia.flashbots.net", use_private_rpc=True)
        )

        assert first.kind == RouteKind.STANDARD_WITH_BUNDLER_PROTECTION
        assert second.kind == RouteKind.PRIVATE
