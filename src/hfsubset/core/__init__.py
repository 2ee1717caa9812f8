"""
Core utilities for hydrofabric subsetting.

This module contains core functionality for:
- Normalizing edge table schemas across hydrofabric versions
- Resolving origin references to canonical network nodes
- Selecting the regional partition(s) containing an origin
- Upstream traversal of the river network
- Extracting feature layers with a traversal's id set
- Composing all of the above and writing the results
"""

from .dataset import LayerInfo, PartitionDataset, PartitionSource
from .exceptions import OriginNotFoundError, PartitionNotFoundError, SchemaError, SubsetError
from .extract import EXTRACT_ID_COLUMNS, FeatureLayer, extract_layer
from .network import NetworkGraph, TraversalResult, is_junction, most_downstream, traverse, trim_junction
from .origin import (
    NETWORK_INDEX_COLUMNS,
    CanonicalId,
    Coordinate,
    ExternalFeatureRef,
    FeatureLookup,
    HydroLocationURI,
    LegacyComid,
    OriginReference,
    ResolvedOrigin,
    normalize_network_index,
    resolve_origin,
)
from .output_writer import GeoPackageWriter
from .partition import load_boundaries, partitions_intersecting, select_partitions
from .pipeline import LayerWriter, build_subnetwork, extract_layers, open_partition, subset_network
from .schema import ID_ALIASES, TOID_ALIASES, as_id_key, normalize_edges, resolve_member_comid

__all__ = [
    # Errors
    "SubsetError",
    "SchemaError",
    "OriginNotFoundError",
    "PartitionNotFoundError",
    # Schema normalization
    "ID_ALIASES",
    "TOID_ALIASES",
    "as_id_key",
    "normalize_edges",
    "resolve_member_comid",
    # Origin resolution
    "NETWORK_INDEX_COLUMNS",
    "CanonicalId",
    "LegacyComid",
    "HydroLocationURI",
    "ExternalFeatureRef",
    "Coordinate",
    "OriginReference",
    "ResolvedOrigin",
    "FeatureLookup",
    "normalize_network_index",
    "resolve_origin",
    # Partition selection
    "load_boundaries",
    "partitions_intersecting",
    "select_partitions",
    # Network traversal
    "NetworkGraph",
    "TraversalResult",
    "is_junction",
    "most_downstream",
    "traverse",
    "trim_junction",
    # Layer extraction
    "EXTRACT_ID_COLUMNS",
    "FeatureLayer",
    "extract_layer",
    # Partition access
    "LayerInfo",
    "PartitionDataset",
    "PartitionSource",
    # Pipeline and output
    "LayerWriter",
    "GeoPackageWriter",
    "build_subnetwork",
    "extract_layers",
    "open_partition",
    "subset_network",
]
