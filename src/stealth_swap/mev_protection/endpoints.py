"""
Private relay endpoints.

Recognition of private submission endpoints is a plain URL pattern match. No
connectivity probe is made; an unreachable relay surfaces later as a
TransportFailure during submission.
"""
import json
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from ..execution.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PRIVATE_ENDPOINT_MARKERS = (
    "flashbots",
    "flashtrades",
    "eden",
    "bloxroute",
    "private",
    "protect",
)

FLASHBOTS_PROTECT_RPC = "https://rpc.flashbots.net"
EDEN_RPC = "https://api.edennetwork.io/v1/rpc"


def is_private_endpoint(url: Optional[str]) -> bool:
    """True when the URL names a known private relay (case-insensitive)."""
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in PRIVATE_ENDPOINT_MARKERS)


@dataclass(frozen=True)
class EndpointRegistry:
    """Known private relay endpoints per network name."""
    relays: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        frozen = {
            name.lower(): tuple(urls) for name, urls in dict(self.relays).items()
        }
        object.__setattr__(self, "relays", MappingProxyType(frozen))

    @classmethod
    def default(cls) -> "EndpointRegistry":
        """Registry with the public mainnet relays; test networks have none."""
        return cls({"mainnet": (FLASHBOTS_PROTECT_RPC, EDEN_RPC)})

    @classmethod
    def from_json(cls, document: str, base: Optional["EndpointRegistry"] = None) -> "EndpointRegistry":
        """
        Build a registry from a JSON object of network name to URL list.

        Entries are appended to those of ``base`` (the default registry when not
        given). Non-private URLs are rejected, since routing them as private
        would leak the order flow.
        """
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"PRIVATE_RELAYS_JSON is not valid JSON: {e}", cause=e) from e

        if not isinstance(data, dict):
            raise ConfigurationError("PRIVATE_RELAYS_JSON must be an object of network -> [urls]")

        extra: Dict[str, Tuple[str, ...]] = {}
        for network, urls in data.items():
            if isinstance(urls, str):
                urls = [urls]
            if not isinstance(urls, list) or not all(isinstance(url, str) for url in urls):
                raise ConfigurationError(f"Relays for '{network}' must be a list of URLs")
            for url in urls:
                if not is_private_endpoint(url):
                    raise ConfigurationError(f"Relay '{url}' for '{network}' is not a recognized private endpoint")
            extra[network] = tuple(urls)

        return (base or cls.default()).extended(extra)

    def extended(self, extra: Mapping[str, Iterable[str]]) -> "EndpointRegistry":
        """Return a new registry with ``extra`` relays appended per network."""
        merged = {name: list(urls) for name, urls in self.relays.items()}
        for name, urls in extra.items():
            bucket = merged.setdefault(name.lower(), [])
            for url in urls:
                if url not in bucket:
                    bucket.append(url)
        return EndpointRegistry({name: tuple(urls) for name, urls in merged.items()})

    def private_endpoints(self, network_name: str) -> Tuple[str, ...]:
        return self.relays.get(network_name.lower(), ())

    def recommended(self, network_name: str) -> Optional[str]:
        """First registered relay for a network, if any."""
        endpoints = self.private_endpoints(network_name)
        return endpoints[0] if endpoints else None
