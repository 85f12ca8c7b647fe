"""MEV-aware swap execution through an on-chain bundler."""

__version__ = "0.1.0"
