"""
Origin resolution: turn any supported user reference into a network node.

A subset starts from one of five kinds of reference, modelled as a tagged
variant (``OriginReference``):

- ``CanonicalId``: a hydrofabric id such as ``wb-1234`` or ``nex-1235``
- ``LegacyComid``: an NHDPlusV2 COMID
- ``HydroLocationURI``: a hydrologic location such as ``Gages-06752260``
- ``ExternalFeatureRef``: an NLDI feature (source + identifier)
- ``Coordinate``: a WGS84 longitude/latitude

When the national network index is available, references are resolved
against it. Among several matching edges the one with the largest
``hf_hydroseq`` wins; remaining ties go to the smallest canonical id.
"""

import logging
from dataclasses import dataclass, replace
from typing import Protocol

import geopandas as gpd
import pandas as pd

from hfsubset.core.exceptions import OriginNotFoundError
from hfsubset.core.schema import as_id_key, id_keys

logger = logging.getLogger(__name__)

# Columns of the national network index
NETWORK_INDEX_COLUMNS = ["id", "toid", "hf_id", "hl_uri", "hf_hydroseq", "hydroseq", "vpu"]

ORDERING_KEY = "hf_hydroseq"

# Index columns holding identifiers, compared as canonical keys
INDEX_KEY_COLUMNS = ("id", "toid", "hf_id", "hl_uri", "vpu")


@dataclass(frozen=True)
class CanonicalId:
    """A hydrofabric network id (e.g. ``wb-1234``)."""

    value: str


@dataclass(frozen=True)
class LegacyComid:
    """An NHDPlusV2 COMID."""

    value: int


@dataclass(frozen=True)
class HydroLocationURI:
    """A hydrologic location reference (e.g. ``Gages-06752260``)."""

    value: str


@dataclass(frozen=True)
class ExternalFeatureRef:
    """A feature known to the NLDI, e.g. ``nwissite`` / ``USGS-08279500``."""

    source: str
    feature_id: str


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 (EPSG:4326) location."""

    lon: float
    lat: float


OriginReference = CanonicalId | LegacyComid | HydroLocationURI | ExternalFeatureRef | Coordinate


@dataclass(frozen=True)
class ResolvedOrigin:
    """A canonical origin node and the partitions it belongs to."""

    id: str
    legacy_id: str | None = None
    partitions: frozenset[str] = frozenset()

    def with_partitions(self, partitions: frozenset[str]) -> "ResolvedOrigin":
        """Return a copy carrying the selected partition keys."""
        return replace(self, partitions=frozenset(partitions))


class FeatureLookup(Protocol):
    """Geometry/feature lookup service resolving external references to COMIDs."""

    def comid_for_feature(self, source: str, feature_id: str) -> int: ...

    def comid_at(self, lon: float, lat: float) -> int: ...

    def flowline(self, comid: int | str) -> gpd.GeoDataFrame: ...


def normalize_network_index(network: pd.DataFrame) -> pd.DataFrame:
    """
    Convert the identifier columns of a network index to canonical keys.

    Done once when the index is loaded; resolution and partition selection
    then compare keys directly.

    Example:
        >>> index = pd.DataFrame({"id": ["wb-1"], "toid": [None], "hf_id": [101.0], "hl_uri": [None], "vpu": [1]})
        >>> normalize_network_index(index).loc[0, ["hf_id", "vpu"]].tolist()
        ['101', '1']
    """
    keyed = network.copy()
    for column in INDEX_KEY_COLUMNS:
        keyed[column] = id_keys(network[column])
    return keyed


def _matching(network: pd.DataFrame, column: str, key: str) -> pd.Series:
    """Boolean mask of rows whose ``column`` equals ``key``."""
    return network[column] == key


def _top_row(rows: pd.DataFrame) -> pd.Series | None:
    """Row with the largest ordering key; ties go to the smallest id."""
    if rows.empty:
        return None

    ranked = rows.assign(
        _seq=pd.to_numeric(rows[ORDERING_KEY], errors="coerce"),
        _key=id_keys(rows["id"]),
    ).sort_values(["_seq", "_key"], ascending=[False, True], na_position="last", kind="mergesort")

    return ranked.iloc[0]


def _resolve_comid(comid: str, network: pd.DataFrame) -> ResolvedOrigin:
    """Resolve a legacy COMID to the canonical id of its most downstream edge."""
    row = _top_row(network[_matching(network, "hf_id", comid)])

    if row is None or as_id_key(row["id"]) is None:
        raise OriginNotFoundError(f"COMID {comid} not found in the network index")

    return ResolvedOrigin(id=as_id_key(row["id"]), legacy_id=comid)


def _lookup_comid(ref: ExternalFeatureRef | Coordinate, lookup: FeatureLookup | None) -> str:
    """Ask the lookup service for the COMID of an external reference."""
    if lookup is None:
        raise ValueError(f"Resolving {ref} requires a feature lookup service")

    if isinstance(ref, ExternalFeatureRef):
        comid = lookup.comid_for_feature(ref.source, ref.feature_id)
    else:
        comid = lookup.comid_at(ref.lon, ref.lat)

    key = as_id_key(comid)
    if key is None:
        raise OriginNotFoundError(f"No COMID found for {ref}")

    logger.info(f"Resolved {ref} to COMID {key}")
    return key


def resolve_origin(
    ref: OriginReference,
    network: pd.DataFrame | None = None,
    lookup: FeatureLookup | None = None,
) -> ResolvedOrigin:
    """
    Resolve an origin reference to a canonical network node.

    Args:
        ref: The user-supplied reference (exactly one variant)
        network: National network index with ``NETWORK_INDEX_COLUMNS`` and
            canonical key columns (see ``normalize_network_index``), or None
            when the index is unavailable
        lookup: Feature lookup service, required for ``ExternalFeatureRef``
            and ``Coordinate`` references

    Returns:
        ResolvedOrigin with the canonical id and legacy COMID. Partitions are
        filled in later by ``select_partitions``.

    Raises:
        OriginNotFoundError: If no network feature matches the reference
        ValueError: If a required collaborator is missing

    Without a network index the COMID is passed through as the origin;
    the partition's own flowline table is then used to map it onto the
    network (see ``resolve_member_comid``).
    """
    if isinstance(ref, HydroLocationURI):
        if network is None:
            raise OriginNotFoundError(f"Hydrologic location '{ref.value}' cannot be resolved without a network index")

        row = _top_row(network[_matching(network, "hl_uri", ref.value.strip())])
        if row is None or as_id_key(row["toid"]) is None:
            raise OriginNotFoundError(f"Hydrologic location '{ref.value}' not found in the network index")

        # Hydrolocations map onto the nexus downstream of their flowpath
        return ResolvedOrigin(id=as_id_key(row["toid"]), legacy_id=as_id_key(row["hf_id"]))

    if isinstance(ref, CanonicalId):
        key = as_id_key(ref.value)
        if key is None:
            raise OriginNotFoundError("Empty canonical id")

        if network is None:
            return ResolvedOrigin(id=key, legacy_id=key)

        mask = _matching(network, "id", key) | _matching(network, "toid", key)
        row = _top_row(network[mask])
        comid = None if row is None else as_id_key(row["hf_id"])
        if comid is None:
            raise OriginNotFoundError(f"Id '{key}' not found in the network index")

        return _resolve_comid(comid, network)

    if isinstance(ref, LegacyComid):
        comid = as_id_key(ref.value)
        if comid is None:
            raise OriginNotFoundError("Empty COMID")
    elif isinstance(ref, ExternalFeatureRef | Coordinate):
        comid = _lookup_comid(ref, lookup)
    else:
        raise TypeError(f"Unsupported origin reference: {ref!r}")

    if network is None:
        return ResolvedOrigin(id=comid, legacy_id=comid)

    return _resolve_comid(comid, network)
