"""
Tests for output writer module.

Uses tmp_path fixture for actual file operations.
"""

from pathlib import Path

import geopandas as gpd
import pandas as pd
import pyogrio
import pytest

from hfsubset.core.dataset import PartitionDataset
from hfsubset.core.output_writer import GeoPackageWriter


class TestGeoPackageWriter:
    """Tests for GeoPackageWriter class."""

    def test_writes_feature_and_attribute_layers(
        self, tmp_path: Path, flowpaths_gdf: gpd.GeoDataFrame, network_table: pd.DataFrame
    ) -> None:
        writer = GeoPackageWriter(tmp_path / "subset.gpkg")

        writer.write("flowpaths", flowpaths_gdf)
        writer.write("network", network_table)

        assert writer.layers_written == ["flowpaths", "network"]
        with PartitionDataset(writer.path) as dataset:
            assert sorted(dataset.layer_names()) == ["flowpaths", "network"]
            assert dataset.layer_crs("flowpaths") == "EPSG:5070"
            assert dataset.layer_info("network").data_type == "attributes"

    def test_preserves_column_names(self, tmp_path: Path, flowpaths_gdf: gpd.GeoDataFrame) -> None:
        writer = GeoPackageWriter(tmp_path / "subset.gpkg")

        writer.write("flowpaths", flowpaths_gdf)

        result = gpd.read_file(writer.path, layer="flowpaths")
        assert list(result.columns) == ["id", "toid", "lengthkm", "geometry"]

    def test_writes_empty_table(self, tmp_path: Path, network_table: pd.DataFrame) -> None:
        writer = GeoPackageWriter(tmp_path / "subset.gpkg")

        writer.write("network", network_table.iloc[0:0])

        assert "network" in pyogrio.list_layers(writer.path)[:, 0]

    def test_creates_parent_directory(self, tmp_path: Path, network_table: pd.DataFrame) -> None:
        writer = GeoPackageWriter(tmp_path / "nested" / "out" / "subset.gpkg")

        writer.write("network", network_table)

        assert writer.path.exists()

    def test_overwrites_existing_file(self, tmp_path: Path, network_table: pd.DataFrame) -> None:
        path = tmp_path / "subset.gpkg"
        first = GeoPackageWriter(path)
        first.write("old_layer", network_table)

        second = GeoPackageWriter(path)
        second.write("network", network_table)

        assert list(pyogrio.list_layers(path)[:, 0]) == ["network"]

    def test_refuses_existing_file_without_overwrite(self, tmp_path: Path) -> None:
        path = tmp_path / "subset.gpkg"
        path.write_bytes(b"")

        with pytest.raises(FileExistsError):
            GeoPackageWriter(path, overwrite=False)

    def test_requires_gpkg_extension(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="gpkg"):
            GeoPackageWriter(tmp_path / "subset.shp")
