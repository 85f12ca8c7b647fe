"""Known networks and their production/test classification."""
from typing import Dict, Optional

from ..execution.exceptions import ConfigurationError
from ..execution.models import NetworkClass, NetworkProfile

KNOWN_NETWORKS: Dict[str, NetworkProfile] = {
    "mainnet": NetworkProfile("mainnet", 1, NetworkClass.PRODUCTION),
    "sepolia": NetworkProfile("sepolia", 11155111, NetworkClass.TEST),
    "holesky": NetworkProfile("holesky", 17000, NetworkClass.TEST),
    "goerli": NetworkProfile("goerli", 5, NetworkClass.TEST),
    "hardhat": NetworkProfile("hardhat", 31337, NetworkClass.TEST),
    "localhost": NetworkProfile("localhost", 31337, NetworkClass.TEST),
}

NETWORK_ALIASES = {
    "ethereum": "mainnet",
    "homestead": "mainnet",
}


def get_network(name: str) -> NetworkProfile:
    """Look up a network by name; unknown names are a configuration error."""
    key = (name or "").strip().lower()
    key = NETWORK_ALIASES.get(key, key)
    try:
        return KNOWN_NETWORKS[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown network '{name}'. Known networks: {', '.join(sorted(KNOWN_NETWORKS))}"
        ) from None


def network_for_chain_id(chain_id: int) -> Optional[NetworkProfile]:
    """First known network with this chain ID, or None."""
    for profile in KNOWN_NETWORKS.values():
        if profile.chain_id == chain_id:
            return profile
    return None
