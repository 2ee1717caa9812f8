"""
Pydantic models for hfsubset configuration files.

This module defines the configuration schema for batch subsetting using
Pydantic v2. It validates TOML configuration files and provides type-safe
access to configuration values.

The configuration hierarchy:
- MasterConfig (subset.toml): Global settings and a list of subset requests
- SettingsConfig: Where the hydrofabric lives and how it is fetched
- SubsetRequest: One origin reference plus the layers and output to produce
"""

import logging
import re
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .defaults import (
    DEFAULT_BASE_URL,
    DEFAULT_LAYERS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NETWORK_INDEX,
    DEFAULT_NLDI_URL,
    DEFAULT_PARTITION_TEMPLATE,
)

logger = logging.getLogger(__name__)

ORIGIN_FIELDS = ("id", "comid", "hl_uri", "nldi_feature", "loc")


class NLDIFeatureConfig(BaseModel):
    """An NLDI feature reference (featureSource + featureID)."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(..., alias="featureSource", description="NLDI feature source, e.g. 'nwissite'")
    feature_id: str = Field(..., alias="featureID", description="Identifier within the feature source")

    @field_validator("source", "feature_id")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("NLDI feature fields cannot be empty")
        return v.strip()


class SubsetRequest(BaseModel):
    """
    A single subset request.

    Exactly one origin field (id, comid, hl_uri, nldi_feature, loc) must be set.
    Coordinates are given as [lon, lat] in WGS84 (EPSG:4326).
    """

    name: str = Field(..., description="Request name, used in logs and reports")
    id: str | None = Field(default=None, description="Canonical hydrofabric id (e.g. 'wb-1234')")
    comid: int | None = Field(default=None, description="NHDPlusV2 COMID")
    hl_uri: str | None = Field(default=None, description="Hydrologic location URI (e.g. 'Gages-06752260')")
    nldi_feature: NLDIFeatureConfig | None = Field(default=None, description="NLDI feature reference")
    loc: tuple[float, float] | None = Field(default=None, description="Location as (lon, lat)")
    layers: list[str] = Field(default_factory=lambda: list(DEFAULT_LAYERS), description="Layers to extract")
    outfile: str | None = Field(default=None, description="GeoPackage to write; None keeps results in memory")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Request names are used as identifiers in reports."""
        if not v or not v.strip():
            raise ValueError("Request name cannot be empty")

        v = v.strip()
        if not re.match(r"^[a-zA-Z][a-zA-Z0-9_\-]*$", v):
            raise ValueError(
                f"Request name '{v}' must start with a letter and contain only letters, numbers, '_' and '-'"
            )
        return v

    @field_validator("loc")
    @classmethod
    def validate_loc(cls, v: tuple[float, float] | None) -> tuple[float, float] | None:
        if v is None:
            return v
        lon, lat = v
        if not -180 <= lon <= 180:
            raise ValueError(f"Longitude must be between -180 and 180, got {lon}")
        if not -90 <= lat <= 90:
            raise ValueError(f"Latitude must be between -90 and 90, got {lat}")
        return v

    @field_validator("layers")
    @classmethod
    def validate_layers(cls, v: list[str]) -> list[str]:
        layers = [layer.strip() for layer in v if layer.strip()]
        if not layers:
            raise ValueError("At least one layer must be requested")
        return layers

    @field_validator("outfile")
    @classmethod
    def validate_outfile(cls, v: str | None) -> str | None:
        """Outputs are GeoPackages, one table per layer."""
        if v is None:
            return v
        v = v.strip()
        if not v.endswith(".gpkg"):
            raise ValueError(f"outfile must have a '.gpkg' extension, got '{v}'")
        return v

    @model_validator(mode="after")
    def validate_single_origin(self) -> "SubsetRequest":
        """Ensure exactly one origin reference is provided."""
        provided = [field for field in ORIGIN_FIELDS if getattr(self, field) is not None]

        if len(provided) != 1:
            raise ValueError(
                f"Exactly one of {', '.join(ORIGIN_FIELDS)} must be provided (got {len(provided)}: {provided})"
            )

        return self


class SettingsConfig(BaseModel):
    """
    Global settings for subsetting.

    These settings describe where the hydrofabric is stored and how partition
    files are fetched and cached.
    """

    base_url: str = Field(default=DEFAULT_BASE_URL, description="Base URL of the hydrofabric release")
    network_index: str | None = Field(
        default=DEFAULT_NETWORK_INDEX,
        description="Network index (relative to base_url, a URL, or a local path). None disables it.",
    )
    partition_template: str = Field(
        default=DEFAULT_PARTITION_TEMPLATE, description="Partition file name template with a '{vpu}' field"
    )
    data_dir: str | None = Field(
        default=None, description="Local directory holding partition files (skips downloading)"
    )
    cache_dir: str | None = Field(default=None, description="Directory to cache downloaded partitions")
    cache_overwrite: bool = Field(default=False, description="Re-download cached partitions")
    boundaries: str | None = Field(
        default=None, description="Regional boundary polygons used when no network index is available"
    )
    nldi_url: str = Field(default=DEFAULT_NLDI_URL, description="NLDI service root")
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, description="Concurrent layer extractions")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("base_url cannot be empty")
        v = v.strip()
        return v if v.endswith("/") else f"{v}/"

    @field_validator("partition_template")
    @classmethod
    def validate_partition_template(cls, v: str) -> str:
        if "{vpu}" not in v:
            raise ValueError(f"partition_template must contain '{{vpu}}', got '{v}'")
        return v


class MasterConfig(BaseModel):
    """
    Root configuration loaded from subset.toml.

    Contains global settings and a list of requests to process.
    """

    settings: SettingsConfig = Field(default_factory=SettingsConfig, description="Global settings")
    requests: list[SubsetRequest] = Field(..., description="Subset requests to process")

    @model_validator(mode="after")
    def validate_requests(self) -> "MasterConfig":
        """Ensure at least one request and unique request names."""
        if not self.requests:
            raise ValueError("At least one request must be configured")

        names = [request.name for request in self.requests]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate request names found: {duplicates}")

        return self


def load_config(config_path: Path) -> MasterConfig:
    """
    Load and validate a subset configuration file.

    Relative output and data paths are resolved against the directory
    containing the configuration file.

    Args:
        config_path: Path to the TOML configuration file

    Returns:
        Validated MasterConfig instance with resolved paths

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the TOML file is malformed
        pydantic.ValidationError: If the configuration is invalid

    Example:
        >>> config = load_config(Path("subset.toml"))
        >>> config.requests[0].hl_uri
        'Gages-06752260'
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in configuration file: {e}") from e

    config = MasterConfig.model_validate(data)

    config_dir = config_path.parent
    for request in config.requests:
        if request.outfile is not None and not Path(request.outfile).is_absolute():
            request.outfile = str((config_dir / request.outfile).resolve())
            logger.debug(f"Resolved outfile for request '{request.name}': {request.outfile}")

    for attr in ("data_dir", "cache_dir", "boundaries"):
        value = getattr(config.settings, attr)
        if value is not None and not Path(value).expanduser().is_absolute():
            setattr(config.settings, attr, str((config_dir / value).resolve()))

    logger.info(f"Successfully loaded configuration with {len(config.requests)} request(s)")

    return config
