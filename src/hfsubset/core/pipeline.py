"""
End-to-end hydrofabric subsetting.

Composes origin resolution, partition selection, upstream traversal and
layer extraction:

1. Resolve the origin reference to a canonical network node
2. Select the partition(s) containing it
3. Fetch and open each partition (released on every exit path)
4. Build the subnetwork, from the network index or the partition's own
   flowpath table
5. Traverse upstream from the origin and trim a trailing junction marker
6. Extract every requested layer with the traversal's id set, concurrently,
   returning the tables or handing them to a writer as they complete
"""

import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Protocol

import geopandas as gpd
import pandas as pd

from hfsubset.config.defaults import DEFAULT_LAYERS, DEFAULT_MAX_WORKERS
from hfsubset.core.dataset import PartitionDataset, PartitionSource
from hfsubset.core.exceptions import OriginNotFoundError, SchemaError
from hfsubset.core.extract import FeatureLayer, extract_layer
from hfsubset.core.network import NetworkGraph, most_downstream, traverse, trim_junction
from hfsubset.core.origin import FeatureLookup, OriginReference, ResolvedOrigin, resolve_origin
from hfsubset.core.partition import select_partitions
from hfsubset.core.schema import MEMBER_COLUMN, normalize_edges, resolve_member_comid

logger = logging.getLogger(__name__)

# Layers that carry the flow network when no network index is available
FLOWLINE_LAYER_PATTERN = re.compile(r"flowline|flowpath")


class LayerWriter(Protocol):
    """Output sink accepting one table per layer."""

    path: Path

    def write(self, layer: str, table: pd.DataFrame) -> None: ...


@contextmanager
def open_partition(source: PartitionSource, key: str) -> Iterator[PartitionDataset]:
    """Fetch a partition and open it, releasing both on exit."""
    with source.fetch(key) as path, PartitionDataset(path, key=key) as dataset:
        yield dataset


def available_layers(layers: Sequence[str], datasets: Sequence[PartitionDataset]) -> list[str]:
    """Requested layers present in at least one partition, in request order."""
    present = [layer for layer in dict.fromkeys(layers) if any(layer in dataset for dataset in datasets)]

    missing = [layer for layer in layers if layer not in present]
    if missing:
        logger.warning(f"Layer(s) not found in partition: {missing}")

    return present


def _flowline_layer(dataset: PartitionDataset, layers: Sequence[str]) -> str | None:
    """First flowline/flowpath layer of a partition, preferring requested layers."""
    candidates = [layer for layer in layers if layer in dataset] + dataset.layer_names()
    for layer in candidates:
        if FLOWLINE_LAYER_PATTERN.search(layer):
            return layer
    return None


def build_subnetwork(
    origin: ResolvedOrigin,
    datasets: Sequence[PartitionDataset],
    network: pd.DataFrame | None = None,
    layers: Sequence[str] = DEFAULT_LAYERS,
) -> tuple[NetworkGraph, str]:
    """
    Build the subnetwork to traverse and the outlet to start from.

    With a network index the subnetwork is the index restricted to the
    origin's partitions. Otherwise it is read from each partition's flowline
    layer; if that layer maps legacy COMIDs through ``member_COMID``, the
    origin COMID is translated to the flowpath containing it.

    Returns:
        Tuple of (graph, outlet id)

    Raises:
        SchemaError: If a partition has no usable flowline layer
        OriginNotFoundError: If the origin COMID is in no flowpath
    """
    if network is not None:
        in_partition = network["vpu"].isin(list(origin.partitions))
        return NetworkGraph.from_frame(network.loc[in_partition, ["id", "toid"]]), origin.id

    frames = []
    for dataset in datasets:
        layer = _flowline_layer(dataset, layers)
        if layer is None:
            raise SchemaError(f"Partition '{dataset.key}' has no flowline or flowpath layer")

        logger.info(f"Building network from layer '{layer}' of partition '{dataset.key}'")
        frames.append(normalize_edges(dataset.read_layer(layer)))

    edges = pd.concat(frames, ignore_index=True)

    if MEMBER_COLUMN not in edges.columns:
        return NetworkGraph.from_frame(edges), origin.id

    matches, edges = resolve_member_comid(edges, origin.legacy_id or origin.id)
    graph = NetworkGraph.from_frame(edges)

    if not matches:
        raise OriginNotFoundError(f"COMID {origin.legacy_id or origin.id} is not a member of any flowpath")

    return graph, most_downstream(matches, graph)


def _read_layer(name: str, datasets: Sequence[PartitionDataset]) -> tuple[pd.DataFrame, str | None]:
    """Read a layer from every partition that has it."""
    tables = []
    crs = None
    for dataset in datasets:
        if name not in dataset:
            continue
        tables.append(dataset.read_layer(name))
        crs = crs or dataset.layer_crs(name)

    if len(tables) == 1:
        return tables[0], crs

    return pd.concat(tables, ignore_index=True), crs


def _extract(name: str, datasets: Sequence[PartitionDataset], ids: frozenset[str]) -> pd.DataFrame:
    table, crs = _read_layer(name, datasets)
    return extract_layer(FeatureLayer(name=name, table=table), ids, crs)


def extract_layers(
    layers: Sequence[str],
    datasets: Sequence[PartitionDataset],
    ids: frozenset[str],
    writer: LayerWriter | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> dict[str, pd.DataFrame]:
    """
    Extract several layers concurrently.

    Each extraction only reads the shared partitions. Results are consumed
    on the calling thread, so writes to ``writer`` never overlap.

    Returns:
        Mapping of layer name to table in ``layers`` order (empty when a
        writer is given)
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be positive, got {max_workers}")

    tables: dict[str, pd.DataFrame] = {}
    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="hfsubset")

    try:
        futures: dict[Future[pd.DataFrame], str] = {
            executor.submit(_extract, name, datasets, ids): name for name in layers
        }

        for done, future in enumerate(as_completed(futures), 1):
            name = futures[future]
            table = future.result()
            logger.info(f"Subsetting: {name} ({done}/{len(layers)}): {len(table)} feature(s)")

            if writer is not None:
                writer.write(name, table)
            else:
                tables[name] = table
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    return {name: tables[name] for name in layers if name in tables}


def subset_network(
    reference: OriginReference,
    source: PartitionSource,
    layers: Iterable[str] = DEFAULT_LAYERS,
    network: pd.DataFrame | None = None,
    lookup: FeatureLookup | None = None,
    boundaries: gpd.GeoDataFrame | None = None,
    writer: LayerWriter | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> dict[str, pd.DataFrame] | Path:
    """
    Extract the drainage basin upstream of a reference from the hydrofabric.

    Args:
        reference: Origin of the subset (exactly one OriginReference variant)
        source: Partition source fetching regional GeoPackages by key
        layers: Layers to extract, in output order
        network: National network index with canonical key columns (as returned by
            ``load_network_index``), or None to work from the partition alone
        lookup: Feature lookup service (NLDI features, coordinates, no-index fallback)
        boundaries: Partition boundary polygons (no-index fallback)
        writer: Output sink; when given, layers are written as they complete
        max_workers: Concurrent layer extractions

    Returns:
        Mapping of layer name to extracted table, or the writer's output path

    Raises:
        OriginNotFoundError: If the reference matches no network feature
        PartitionNotFoundError: If no partition contains the origin
        SchemaError: If the network can't be read from the partition
    """
    layers = list(layers)

    origin = resolve_origin(reference, network=network, lookup=lookup)
    origin = origin.with_partitions(select_partitions(origin, network=network, lookup=lookup, boundaries=boundaries))

    with ExitStack() as stack:
        datasets = [stack.enter_context(open_partition(source, key)) for key in sorted(origin.partitions)]

        graph, outlet = build_subnetwork(origin, datasets, network=network, layers=layers)
        logger.info(f"Starting from: `{outlet}`")

        traversal = trim_junction(traverse(graph, outlet))
        ids = traversal.feature_ids()
        logger.info(f"Found {len(traversal)} upstream feature(s), {len(ids)} id(s) to extract")

        tables = extract_layers(
            available_layers(layers, datasets),
            datasets,
            ids,
            writer=writer,
            max_workers=max_workers,
        )

    if writer is not None:
        return writer.path

    return tables
