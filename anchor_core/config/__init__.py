"""
Runtime Configuration Module

Provides configuration loading and management for anchor relayers.
"""

from .runtime import (
    AnchorConfig,
    BridgeConfig,
    HasherConfig,
    ProverConfig,
    RuntimeConfig,
    TreeConfig,
    get_default_config,
    set_default_config,
)

__all__ = [
    "RuntimeConfig",
    "TreeConfig",
    "AnchorConfig",
    "HasherConfig",
    "BridgeConfig",
    "ProverConfig",
    "get_default_config",
    "set_default_config",
]
