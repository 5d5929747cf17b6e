"""
TTG Protocol Configuration

Loads all sections of config.toml.
Environment variables override TOML values.
"""

from .loader import (
    AuctionConfig,
    BootstrapConfig,
    ChainConfig,
    GovernorConfig,
    ProtocolConfig,
    TokenConfig,
    TokensConfig,
    load_config,
)

__all__ = [
    "AuctionConfig",
    "BootstrapConfig",
    "ChainConfig",
    "GovernorConfig",
    "ProtocolConfig",
    "TokenConfig",
    "TokensConfig",
    "load_config",
]
