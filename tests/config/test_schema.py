"""
Tests for the configuration module.

This module tests the Pydantic configuration schema for:
- Subset requests and their origin references
- Global settings
- Master configuration (subset.toml) loading and validation
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from hfsubset.config import (
    DEFAULT_BASE_URL,
    DEFAULT_LAYERS,
    DEFAULT_NETWORK_INDEX,
    MasterConfig,
    NLDIFeatureConfig,
    SettingsConfig,
    SubsetRequest,
    load_config,
)


class TestSubsetRequest:
    """Tests for SubsetRequest validation."""

    def test_hl_uri_request(self):
        """Test request with a hydrologic location."""
        request = SubsetRequest(name="poudre", hl_uri="Gages-06752260")
        assert request.hl_uri == "Gages-06752260"
        assert request.layers == list(DEFAULT_LAYERS)
        assert request.outfile is None

    def test_nldi_feature_aliases(self):
        """Test NLDI feature given with NLDI field names."""
        request = SubsetRequest(
            name="gage",
            nldi_feature={"featureSource": "nwissite", "featureID": "USGS-08279500"},
        )
        assert request.nldi_feature == NLDIFeatureConfig(source="nwissite", feature_id="USGS-08279500")

    def test_exactly_one_origin(self):
        """Test that zero or several origins are rejected."""
        with pytest.raises(ValidationError, match="Exactly one"):
            SubsetRequest(name="none")

        with pytest.raises(ValidationError, match="Exactly one"):
            SubsetRequest(name="two", comid=101, hl_uri="Gages-06752260")

    def test_loc_validation(self):
        """Test coordinate bounds validation."""
        SubsetRequest(name="edge", loc=(180, -90))

        with pytest.raises(ValidationError, match="Longitude"):
            SubsetRequest(name="bad_lon", loc=(181, 40))

        with pytest.raises(ValidationError, match="Latitude"):
            SubsetRequest(name="bad_lat", loc=(-105, 91))

    def test_name_validation(self):
        """Test request name rules."""
        with pytest.raises(ValidationError, match="cannot be empty"):
            SubsetRequest(name="  ", comid=101)

        with pytest.raises(ValidationError, match="must start with a letter"):
            SubsetRequest(name="1st", comid=101)

    def test_layers_are_cleaned(self):
        """Test blank layer names are dropped."""
        request = SubsetRequest(name="a", comid=101, layers=[" divides", "", "nexus "])
        assert request.layers == ["divides", "nexus"]

        with pytest.raises(ValidationError, match="At least one layer"):
            SubsetRequest(name="a", comid=101, layers=[" "])

    def test_outfile_must_be_geopackage(self):
        """Test outfile extension validation."""
        with pytest.raises(ValidationError, match="gpkg"):
            SubsetRequest(name="a", comid=101, outfile="out.shp")

    def test_empty_nldi_fields(self):
        """Test NLDI feature fields cannot be blank."""
        with pytest.raises(ValidationError, match="cannot be empty"):
            NLDIFeatureConfig(source="nwissite", feature_id=" ")


class TestSettingsConfig:
    """Tests for SettingsConfig validation."""

    def test_default_settings(self):
        """Test default settings values."""
        settings = SettingsConfig()
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.network_index == DEFAULT_NETWORK_INDEX
        assert settings.cache_dir is None
        assert settings.max_workers == 4

    def test_base_url_gets_trailing_slash(self):
        """Test base URL normalization."""
        assert SettingsConfig(base_url="https://example.org/hf").base_url == "https://example.org/hf/"

    def test_partition_template_needs_vpu(self):
        """Test the template must name the partition."""
        with pytest.raises(ValidationError, match="vpu"):
            SettingsConfig(partition_template="nextgen.gpkg")

    def test_invalid_max_workers(self):
        """Test max_workers must be positive."""
        with pytest.raises(ValidationError):
            SettingsConfig(max_workers=0)


class TestMasterConfig:
    """Tests for MasterConfig validation."""

    def test_unique_request_names(self):
        """Test that duplicate request names are rejected."""
        with pytest.raises(ValidationError, match="Duplicate request names"):
            MasterConfig(
                requests=[
                    SubsetRequest(name="a", comid=101),
                    SubsetRequest(name="a", comid=102),
                ]
            )

    def test_at_least_one_request(self):
        """Test that at least one request is required."""
        with pytest.raises(ValidationError, match="At least one request"):
            MasterConfig(requests=[])


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_config(self, tmp_path: Path):
        """Test loading a valid configuration file."""
        config_path = tmp_path / "subset.toml"
        config_path.write_text(
            """
[settings]
base_url = "https://example.org/hydrofabric"
network_index = "conus_net.parquet"
max_workers = 2

[[requests]]
name = "poudre"
hl_uri = "Gages-06752260"
layers = ["divides", "flowpaths"]
outfile = "/data/poudre.gpkg"

[[requests]]
name = "gage"
nldi_feature = { featureSource = "nwissite", featureID = "USGS-08279500" }
"""
        )

        config = load_config(config_path)

        assert config.settings.base_url == "https://example.org/hydrofabric/"
        assert config.settings.max_workers == 2
        assert [request.name for request in config.requests] == ["poudre", "gage"]
        assert config.requests[0].outfile == "/data/poudre.gpkg"
        assert config.requests[1].nldi_feature.feature_id == "USGS-08279500"

    def test_resolve_relative_paths(self, tmp_path: Path):
        """Test relative paths are resolved against the config directory."""
        config_path = tmp_path / "subset.toml"
        config_path.write_text(
            """
[settings]
cache_dir = "cache"
boundaries = "vpu_boundaries.gpkg"

[[requests]]
name = "outlet"
comid = 101
outfile = "output/outlet.gpkg"
"""
        )

        config = load_config(config_path)

        assert config.requests[0].outfile == str((tmp_path / "output" / "outlet.gpkg").resolve())
        assert config.settings.cache_dir == str((tmp_path / "cache").resolve())
        assert config.settings.boundaries == str((tmp_path / "vpu_boundaries.gpkg").resolve())
        assert config.settings.data_dir is None

    def test_missing_config_file(self, tmp_path: Path):
        """Test error when the config file doesn't exist."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path):
        """Test error on malformed TOML."""
        config_path = tmp_path / "subset.toml"
        config_path.write_text("[settings\nbase_url = ")

        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config(config_path)
