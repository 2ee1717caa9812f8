"""
Feature layer extraction.

Filters the rows of a hydrofabric layer down to those belonging to a
traversal's id set. Layers identify their rows with different columns
(``divide_id`` on divides, ``COMID`` on reference flowlines, ``id`` on
flowpaths and nexus, ``ds_id`` on network tables), so every known candidate
column is tested and a row is kept if any of them matches.

Column names are never rewritten: extracted tables keep the layer's own
schema so they can be re-exported unchanged.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import geopandas as gpd
import pandas as pd
import pyproj
from pyproj.exceptions import CRSError

from hfsubset.core.schema import find_column, id_keys, key_set

logger = logging.getLogger(__name__)

# Identifier columns tested against the id set, across all layer schemas
EXTRACT_ID_COLUMNS = ("COMID", "FEATUREID", "divide_id", "id", "ds_id", "ID")

GEOMETRY_COLUMNS = ("geometry", "geom")


@dataclass
class FeatureLayer:
    """A named feature table read from a partition."""

    name: str
    table: pd.DataFrame


def resolve_crs(crs: object) -> pyproj.CRS | None:
    """Return a pyproj CRS for ``crs``, or None if it can't be resolved."""
    if crs is None:
        return None

    try:
        return pyproj.CRS.from_user_input(crs)
    except CRSError as e:
        logger.warning(f"Could not resolve CRS {crs!r}: {e}")
        return None


def _as_output_table(table: pd.DataFrame, crs: object) -> pd.DataFrame:
    """Attach spatial semantics when the table has rows, geometry and a CRS."""
    geometry_column = find_column(table.columns, GEOMETRY_COLUMNS)
    resolved = resolve_crs(crs)

    if geometry_column is None or resolved is None or table.empty:
        return pd.DataFrame(table) if isinstance(table, gpd.GeoDataFrame) else table

    if isinstance(table, gpd.GeoDataFrame):
        return table.set_geometry(geometry_column).set_crs(resolved, allow_override=True)

    return gpd.GeoDataFrame(table, geometry=geometry_column, crs=resolved)


def extract_layer(layer: FeatureLayer, ids: Iterable[object], crs: object = None) -> pd.DataFrame:
    """
    Extract the rows of a layer whose identifier is in ``ids``.

    Args:
        layer: The layer to filter
        ids: Node ids of the subset (strings or numbers)
        crs: CRS of the layer, as accepted by ``pyproj.CRS.from_user_input``

    Returns:
        GeoDataFrame when rows matched, the layer has a ``geometry``/``geom``
        column and ``crs`` resolves; otherwise a plain DataFrame. No matching
        rows yields an empty table, not an error.

    Example:
        >>> layer = FeatureLayer("reference_flowline", pd.DataFrame({"COMID": [101, 103]}))
        >>> extract_layer(layer, {"101", "102"})["COMID"].tolist()
        [101]
    """
    keys = key_set(ids)
    table = layer.table

    candidates = [column for column in EXTRACT_ID_COLUMNS if column in table.columns]
    if not candidates:
        logger.warning(
            f"Layer '{layer.name}' has none of the identifier columns {list(EXTRACT_ID_COLUMNS)}; nothing extracted"
        )

    mask = pd.Series(False, index=table.index)
    for column in candidates:
        mask |= id_keys(table[column]).isin(keys)

    result = table[mask.to_numpy()]
    logger.debug(f"Layer '{layer.name}': {len(result)} of {len(table)} row(s) matched on {candidates}")

    return _as_output_table(result, crs)
