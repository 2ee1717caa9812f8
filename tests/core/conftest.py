"""
Shared pytest fixtures for core module tests.

Provides a synthetic network index and synthetic partition GeoPackages so
subsetting can be tested without the national hydrofabric.

The synthetic network (partition "01") looks like this, water flowing down:

    wb-1   wb-3
       \\   /
       nex-2
         |
        wb-2   wb-4
           \\   /
           nex-5   (basin outlet)

Partition "02" holds an unrelated basin: wb-20 -> nex-21.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import LineString, Point, box

from hfsubset.core.origin import NETWORK_INDEX_COLUMNS, normalize_network_index
from hfsubset.core.output_writer import GeoPackageWriter

CRS = "EPSG:5070"

# (id, toid, hf_id, hl_uri, hf_hydroseq, hydroseq, vpu)
INDEX_ROWS = [
    ("wb-1", "nex-2", 101, None, 30.0, 30.0, "01"),
    ("wb-3", "nex-2", 103, None, 20.0, 20.0, "01"),
    ("nex-2", "wb-2", None, None, None, None, "01"),
    ("wb-2", "nex-5", 102, "Gages-0001", 10.0, 10.0, "01"),
    ("wb-4", "nex-5", 104, "Gages-0002", 12.0, 12.0, "01"),
    ("nex-5", None, None, None, None, None, "01"),
    ("wb-20", "nex-21", 120, None, 40.0, 40.0, "02"),
    ("nex-21", None, None, None, None, None, "02"),
]

# Flowpath end points (x, y) in the synthetic projected CRS
FLOWPATH_COORDS = {
    "wb-1": [(0, 20), (5, 10)],
    "wb-3": [(10, 20), (5, 10)],
    "wb-2": [(5, 10), (5, 0)],
    "wb-4": [(15, 10), (5, 0)],
}


def make_network_index(rows: list[tuple] | None = None) -> pd.DataFrame:
    """Create a network index DataFrame from (id, toid, hf_id, hl_uri, hf_hydroseq, hydroseq, vpu) rows."""
    index = pd.DataFrame(rows if rows is not None else INDEX_ROWS, columns=NETWORK_INDEX_COLUMNS)
    return normalize_network_index(index)


def make_flowpaths_gdf(member_comids: dict[str, str] | None = None) -> gpd.GeoDataFrame:
    """
    Create the flowpaths layer of partition "01".

    Args:
        member_comids: Optional mapping of flowpath id to ``member_COMID`` value
    """
    ids = list(FLOWPATH_COORDS)
    toids = {"wb-1": "nex-2", "wb-3": "nex-2", "wb-2": "nex-5", "wb-4": "nex-5"}

    data: dict[str, list] = {
        "id": ids,
        "toid": [toids[i] for i in ids],
        "lengthkm": [1.0, 1.5, 2.0, 2.5],
    }
    if member_comids is not None:
        data["member_COMID"] = [member_comids.get(i) for i in ids]

    return gpd.GeoDataFrame(data, geometry=[LineString(FLOWPATH_COORDS[i]) for i in ids], crs=CRS)


def make_divides_gdf() -> gpd.GeoDataFrame:
    """Create the divides layer of partition "01" (one polygon per flowpath)."""
    ids = list(FLOWPATH_COORDS)
    return gpd.GeoDataFrame(
        {
            "divide_id": [i.replace("wb-", "cat-") for i in ids],
            "id": ids,
            "areasqkm": [3.0, 4.0, 5.0, 6.0],
        },
        geometry=[box(x0 - 2, y1, x0 + 2, y0) for (x0, y0), (_, y1) in (FLOWPATH_COORDS[i] for i in ids)],
        crs=CRS,
    )


def make_nexus_gdf() -> gpd.GeoDataFrame:
    """Create the nexus layer of partition "01"."""
    return gpd.GeoDataFrame(
        {"id": ["nex-2", "nex-5"], "toid": ["wb-2", None], "type": ["nexus", "terminal"]},
        geometry=[Point(5, 10), Point(5, 0)],
        crs=CRS,
    )


def make_network_table() -> pd.DataFrame:
    """Create the non-spatial network layer of partition "01"."""
    return pd.DataFrame(
        {
            "id": ["wb-1", "wb-3", "wb-2", "wb-4", "nex-2"],
            "toid": ["nex-2", "nex-2", "nex-5", "nex-5", "wb-2"],
            "hf_id": [101, 103, 102, 104, None],
        }
    )


def write_partition(path: Path, layers: dict[str, pd.DataFrame]) -> Path:
    """Write tables as the layers of a GeoPackage."""
    writer = GeoPackageWriter(path)
    for name, table in layers.items():
        writer.write(name, table)
    return path


class FakePartitionSource:
    """In-memory partition source serving prepared files and recording their use."""

    def __init__(self, files: dict[str, Path]):
        self.files = files
        self.fetched: list[str] = []
        self.released: list[str] = []

    @contextmanager
    def fetch(self, key: str) -> Iterator[Path]:
        if key not in self.files:
            raise FileNotFoundError(f"No partition {key}")
        self.fetched.append(key)
        try:
            yield self.files[key]
        finally:
            self.released.append(key)


class FakeLookup:
    """Feature lookup returning fixed answers."""

    def __init__(
        self,
        features: dict[tuple[str, str], int] | None = None,
        positions: dict[tuple[float, float], int] | None = None,
        flowlines: dict[str, gpd.GeoDataFrame] | None = None,
    ):
        self.features = features or {}
        self.positions = positions or {}
        self.flowlines = flowlines or {}

    def comid_for_feature(self, source: str, feature_id: str) -> int:
        return self.features[(source, feature_id)]

    def comid_at(self, lon: float, lat: float) -> int:
        return self.positions[(lon, lat)]

    def flowline(self, comid: int | str) -> gpd.GeoDataFrame:
        return self.flowlines[str(comid)]


@pytest.fixture
def network_index() -> pd.DataFrame:
    """Network index of the synthetic hydrofabric."""
    return make_network_index()


@pytest.fixture
def boundaries_gdf() -> gpd.GeoDataFrame:
    """Two partition boundaries side by side in WGS84."""
    return gpd.GeoDataFrame(
        {"VPUID": ["01", "02"]},
        geometry=[box(-106, 39, -104, 41), box(-104, 39, -102, 41)],
        crs="EPSG:4326",
    )


@pytest.fixture
def partition_gpkg(tmp_path: Path) -> Path:
    """GeoPackage of partition "01" with flowpaths, divides, nexus and network layers."""
    return write_partition(
        tmp_path / "nextgen_01.gpkg",
        {
            "flowpaths": make_flowpaths_gdf(),
            "divides": make_divides_gdf(),
            "nexus": make_nexus_gdf(),
            "network": make_network_table(),
        },
    )


@pytest.fixture
def partition_source(partition_gpkg: Path) -> FakePartitionSource:
    """Partition source serving partition "01"."""
    return FakePartitionSource({"01": partition_gpkg})


@pytest.fixture
def flowpaths_gdf() -> gpd.GeoDataFrame:
    """Flowpaths layer of partition "01"."""
    return make_flowpaths_gdf()


@pytest.fixture
def network_table() -> pd.DataFrame:
    """Non-spatial network layer of partition "01"."""
    return make_network_table()


@pytest.fixture
def make_source():
    """Factory for in-memory partition sources: make_source({"01": path})."""
    return FakePartitionSource


@pytest.fixture
def fake_lookup() -> FakeLookup:
    """
    Lookup service that knows COMID 102 (flowpath wb-2).

    Its flowline lies inside partition "01" of ``boundaries_gdf``.
    """
    flowline = gpd.GeoDataFrame(
        {"comid": [102]},
        geometry=[LineString([(-105.0, 40.0), (-105.0, 40.1)])],
        crs="EPSG:4326",
    )
    return FakeLookup(
        features={("nwissite", "USGS-0001"): 102},
        positions={(-105.0, 40.05): 102},
        flowlines={"102": flowline},
    )


@pytest.fixture
def no_index_partition_gpkg(tmp_path: Path) -> Path:
    """
    Refactored partition "01" as used without a network index.

    Refactored flowpaths connect directly (``ID`` -> ``toID``, 0 at the
    outlet) and map NHDPlus COMIDs through ``member_COMID``; COMID 102 was
    split into two flowlines, both part of flowpath 2.

        1   3
         \\ /
          2   4
    """
    ids = [1, 2, 3, 4]
    coords = {1: [(0, 20), (5, 10)], 2: [(5, 10), (5, 0)], 3: [(10, 20), (5, 10)], 4: [(15, 10), (15, 0)]}

    flowpaths = gpd.GeoDataFrame(
        {
            "ID": ids,
            "toID": [2, 0, 2, 0],
            "member_COMID": ["101", "102.1,102.2,105", "103", "104"],
        },
        geometry=[LineString(coords[i]) for i in ids],
        crs=CRS,
    )
    divides = gpd.GeoDataFrame(
        {"ID": ids, "areasqkm": [1.0, 2.0, 3.0, 4.0]},
        geometry=[box(coords[i][0][0] - 2, coords[i][1][1], coords[i][0][0] + 2, coords[i][0][1]) for i in ids],
        crs=CRS,
    )

    return write_partition(
        tmp_path / "refactored" / "nextgen_01.gpkg",
        {"refactored_flowpaths": flowpaths, "refactored_divides": divides},
    )
