"""Configuration package."""
from .networks import KNOWN_NETWORKS, get_network, network_for_chain_id
from .settings import Settings

__all__ = [
    "KNOWN_NETWORKS",
    "Settings",
    "get_network",
    "network_for_chain_id",
]
