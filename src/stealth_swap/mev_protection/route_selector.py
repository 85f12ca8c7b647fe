"""
Submission route selection.

Decides, per request, whether a signed execution unit goes to a private relay
or to the standard node with only the bundler's sender obfuscation and the
slippage floor as protection. Production networks refuse the standard route
whenever a private endpoint could have been used.
"""
import logging
from typing import Optional

from ..execution.exceptions import ConfigurationError, RouteRefusal
from ..execution.models import EndpointConfig, NetworkProfile, RouteDecision, RouteKind
from .endpoints import EndpointRegistry, is_private_endpoint

logger = logging.getLogger(__name__)


class RouteSelector:
    """Chooses the submission endpoint for one request."""

    def __init__(
        self,
        endpoint_registry: Optional[EndpointRegistry] = None,
        require_private_on_production: bool = True
    ):
        """
        Initialize route selector.

        Args:
            endpoint_registry: Known private relays per network
            require_private_on_production: Refuse production submissions that
                would go to a standard endpoint even when no relay is known
        """
        self.endpoint_registry = endpoint_registry or EndpointRegistry.default()
        self.require_private_on_production = require_private_on_production

    @staticmethod
    def candidate_endpoint(endpoints: EndpointConfig) -> str:
        """The endpoint a submission would use given the configuration alone."""
        if endpoints.use_private_rpc:
            if is_private_endpoint(endpoints.private_rpc_url):
                return endpoints.private_rpc_url
            logger.warning(
                "USE_PRIVATE_RPC is set but PRIVATE_RPC_URL is missing or not a "
                "recognized private relay; using RPC_URL"
            )
        return endpoints.rpc_url

    def select(self, network: NetworkProfile, endpoints: EndpointConfig) -> RouteDecision:
        """
        Compute a route decision for one request.

        Raises:
            ConfigurationError: no standard RPC URL configured
            RouteRefusal: production network without a private route
        """
        if not endpoints.rpc_url:
            raise ConfigurationError("RPC_URL is required to select a submission route")

        candidate = self.candidate_endpoint(endpoints)

        if is_private_endpoint(candidate):
            fallback = endpoints.rpc_url if endpoints.rpc_url != candidate else None
            logger.info(f"Private route selected on {network.name}: {candidate}")
            return RouteDecision(
                kind=RouteKind.PRIVATE,
                endpoint=candidate,
                network=network,
                fallback_endpoint=fallback
            )

        if network.is_production:
            recommended = self._unused_private_endpoint(network, endpoints)
            if recommended:
                raise RouteRefusal(
                    f"Refusing standard submission on {network.name}: private endpoint "
                    f"{recommended} is available. Set PRIVATE_RPC_URL={recommended} and USE_PRIVATE_RPC=true"
                )
            if self.require_private_on_production:
                raise RouteRefusal(
                    f"Refusing standard submission on {network.name}: no private endpoint "
                    f"configured and REQUIRE_PRIVATE_ON_PRODUCTION is enabled"
                )
            warning = (
                f"PRODUCTION SUBMISSION WITHOUT PRIVATE RELAY on {network.name}: "
                f"transaction will be visible in the public mempool. Only the bundler "
                f"and the slippage floor protect it"
            )
            logger.warning(warning)
            return RouteDecision(
                kind=RouteKind.STANDARD_WITH_BUNDLER_PROTECTION,
                endpoint=endpoints.rpc_url,
                network=network,
                warning=warning
            )

        logger.info(
            f"Standard route on test network {network.name} "
            f"(bundler obfuscation and slippage floor only)"
        )
        return RouteDecision(
            kind=RouteKind.STANDARD_WITH_BUNDLER_PROTECTION,
            endpoint=endpoints.rpc_url,
            network=network
        )

    def _unused_private_endpoint(
        self,
        network: NetworkProfile,
        endpoints: EndpointConfig
    ) -> Optional[str]:
        if is_private_endpoint(endpoints.private_rpc_url):
            return endpoints.private_rpc_url
        return self.endpoint_registry.recommended(network.name)
