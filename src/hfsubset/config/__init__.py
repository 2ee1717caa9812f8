"""
Configuration management for hfsubset.

This module provides Pydantic-based configuration schemas for validating
and loading TOML configuration files used by the hfsubset CLI.

Key exports:
- MasterConfig: Root configuration from subset.toml
- SettingsConfig: Where the hydrofabric lives and how it is fetched
- SubsetRequest: A single origin reference with layers and output
- load_config(): Load and validate a configuration file
"""

from .defaults import (
    BOUNDARY_KEY_COLUMN,
    DEFAULT_BASE_URL,
    DEFAULT_LAYERS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NETWORK_INDEX,
    DEFAULT_NLDI_URL,
    DEFAULT_PARTITION_TEMPLATE,
    ENV_BASE_URL,
    ENV_BOUNDARIES,
    ENV_CACHE_DIR,
)
from .schema import (
    ORIGIN_FIELDS,
    MasterConfig,
    NLDIFeatureConfig,
    SettingsConfig,
    SubsetRequest,
    load_config,
)

__all__ = [
    # Main models
    "MasterConfig",
    "SettingsConfig",
    "SubsetRequest",
    "NLDIFeatureConfig",
    "ORIGIN_FIELDS",
    # Loaders
    "load_config",
    # Defaults
    "DEFAULT_BASE_URL",
    "DEFAULT_NETWORK_INDEX",
    "DEFAULT_PARTITION_TEMPLATE",
    "DEFAULT_NLDI_URL",
    "DEFAULT_LAYERS",
    "DEFAULT_MAX_WORKERS",
    "BOUNDARY_KEY_COLUMN",
    # Environment variables
    "ENV_BASE_URL",
    "ENV_CACHE_DIR",
    "ENV_BOUNDARIES",
]
