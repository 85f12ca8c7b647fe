"""
MEV protection layer.

Private relay recognition and per-request submission route selection.
"""
from .endpoints import (
    PRIVATE_ENDPOINT_MARKERS,
    EndpointRegistry,
    is_private_endpoint,
)
from .route_selector import RouteSelector

__all__ = [
    "PRIVATE_ENDPOINT_MARKERS",
    "EndpointRegistry",
    "is_private_endpoint",
    "RouteSelector",
]
