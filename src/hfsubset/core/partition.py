"""
Partition selection for hydrofabric subsetting.

The national hydrofabric is split into Vector Processing Units (VPUs), each
stored as its own GeoPackage. This module decides which VPU(s) contain an
origin, either by reading the ``vpu`` column of the network index or, when no
index is available, by intersecting the origin's flowline with the VPU
boundary polygons.
"""

import logging
from functools import lru_cache
from pathlib import Path

import geopandas as gpd
import pandas as pd

from hfsubset.config.defaults import BOUNDARY_KEY_COLUMN
from hfsubset.core.exceptions import PartitionNotFoundError
from hfsubset.core.origin import FeatureLookup, ResolvedOrigin
from hfsubset.core.schema import as_id_key, key_set

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def load_boundaries(boundaries_path: str) -> gpd.GeoDataFrame:
    """
    Load and cache the regional boundary polygons.

    Args:
        boundaries_path: Path to a vector file with a ``VPUID`` column

    Returns:
        GeoDataFrame of boundary polygons

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file has no ``VPUID`` column
    """
    path = Path(boundaries_path)

    if not path.exists():
        raise FileNotFoundError(f"Boundaries file not found: {boundaries_path}")

    logger.info(f"Loading partition boundaries from: {boundaries_path}")
    gdf = gpd.read_file(path)

    if BOUNDARY_KEY_COLUMN not in gdf.columns:
        raise ValueError(
            f"Boundaries file {boundaries_path} does not contain '{BOUNDARY_KEY_COLUMN}' column. "
            f"Available columns: {gdf.columns.tolist()}"
        )

    return gdf


def partitions_intersecting(features: gpd.GeoDataFrame, boundaries: gpd.GeoDataFrame) -> frozenset[str]:
    """Keys of every boundary polygon intersecting any of ``features``."""
    if features.empty:
        return frozenset()

    if features.crs is not None and boundaries.crs is not None and boundaries.crs != features.crs:
        boundaries = boundaries.to_crs(features.crs)

    footprint = features.geometry.union_all()
    hits = boundaries[boundaries.geometry.intersects(footprint)]

    return key_set(hits[BOUNDARY_KEY_COLUMN])


def select_partitions(
    origin: ResolvedOrigin | str,
    network: pd.DataFrame | None = None,
    lookup: FeatureLookup | None = None,
    boundaries: gpd.GeoDataFrame | None = None,
) -> frozenset[str]:
    """
    Determine the partition key(s) containing an origin.

    Args:
        origin: Resolved origin (or bare canonical id)
        network: National network index with canonical key columns, or None
        lookup: Feature lookup service providing origin geometry (no-index fallback)
        boundaries: Partition boundary polygons with a ``VPUID`` column (no-index fallback)

    Returns:
        Set of partition keys, e.g. ``frozenset({"06"})``

    Raises:
        PartitionNotFoundError: If no partition contains the origin
        ValueError: If the fallback is needed but its collaborators are missing
    """
    if isinstance(origin, ResolvedOrigin):
        origin_id, legacy_id = origin.id, origin.legacy_id or origin.id
    else:
        origin_id = legacy_id = as_id_key(origin)

    if network is not None:
        mask = (network["id"] == origin_id) | (network["toid"] == origin_id)
        partitions = key_set(network.loc[mask, "vpu"])
    else:
        if lookup is None or boundaries is None:
            raise ValueError("Selecting a partition without a network index requires a lookup service and boundaries")

        logger.info(f"No network index: locating COMID {legacy_id} within partition boundaries")
        partitions = partitions_intersecting(lookup.flowline(legacy_id), boundaries)

    if not partitions:
        raise PartitionNotFoundError(f"No partition found for origin '{origin_id}'")

    logger.info(f"Origin '{origin_id}' is in partition(s): {sorted(partitions)}")

    return partitions
