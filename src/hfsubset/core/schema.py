"""
Schema normalization for hydrofabric edge tables.

Hydrofabric releases name their identifier columns differently: NextGen
fabrics use ``id``/``toid``, refactored fabrics ``ID``/``toID`` and NHDPlus
reference flowlines ``COMID``/``toCOMID``. This module maps any of them onto
a canonical ``{id, toid}`` edge table, resolving aliases once through fixed
priority lists.

All identifiers are compared as canonical string keys (see ``as_id_key``)
so that integer COMIDs, float-typed COMIDs read from GeoPackages and
string ids like ``wb-1234`` can share one id set.
"""

import logging
import math
from collections.abc import Iterable

import pandas as pd

from hfsubset.core.exceptions import SchemaError

logger = logging.getLogger(__name__)

# First match wins
ID_ALIASES = ("id", "ID", "COMID")
TOID_ALIASES = ("toid", "toID", "toCOMID")

# Legacy many-to-one mapping of NHDPlus COMIDs onto refactored flowpaths
MEMBER_COLUMN = "member_COMID"

# toid values that mark a basin outlet
TERMINAL_IDS = frozenset({"0"})


def as_id_key(value: object) -> str | None:
    """
    Convert an identifier value to its canonical string key.

    Integral numbers lose their decimal part (``101.0`` -> ``"101"``),
    strings are stripped, and nulls or empty strings become None.

    Example:
        >>> as_id_key(101.0), as_id_key(" wb-12 "), as_id_key(float("nan"))
        ('101', 'wb-12', None)
    """
    if value is None:
        return None

    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))

    if not isinstance(value, str) and pd.isna(value):
        return None

    key = str(value).strip()
    return key or None


def id_keys(values: pd.Series) -> pd.Series:
    """
    Map a column of identifiers to canonical string keys.

    Built element by element as an object column so nulls stay None whatever
    dtype pandas would infer for the keys.
    """
    return pd.Series([as_id_key(value) for value in values], index=values.index, dtype=object)


def key_set(values: Iterable[object]) -> frozenset[str]:
    """Build a set of canonical keys, dropping nulls."""
    return frozenset(key for key in (as_id_key(v) for v in values) if key is not None)


def find_column(columns: Iterable[str], aliases: tuple[str, ...]) -> str | None:
    """Return the first alias present in ``columns``, or None."""
    present = set(columns)
    for alias in aliases:
        if alias in present:
            return alias
    return None


def normalize_edges(table: pd.DataFrame) -> pd.DataFrame:
    """
    Produce a canonical edge table from a flowline/flowpath/network table.

    Args:
        table: Table whose identifier columns use any of ``ID_ALIASES`` and
            ``TOID_ALIASES``. A ``member_COMID`` column is carried through.

    Returns:
        DataFrame with string ``id`` and ``toid`` columns (``toid`` None at
        outlets) plus ``member_COMID`` when the input has it.

    Raises:
        SchemaError: If no identifier column is present
    """
    id_col = find_column(table.columns, ID_ALIASES)
    if id_col is None:
        raise SchemaError(
            f"No identifier column found. Expected one of {list(ID_ALIASES)}, got {list(table.columns)}"
        )

    toid_col = find_column(table.columns, TOID_ALIASES)
    if toid_col is None:
        logger.warning(f"No downstream column in {list(table.columns)}; treating every edge as an outlet")
        toids = pd.Series([None] * len(table), index=table.index, dtype=object)
    else:
        toids = pd.Series(
            [None if key in TERMINAL_IDS else key for key in id_keys(table[toid_col])],
            index=table.index,
            dtype=object,
        )

    logger.debug(f"Normalizing edges with id column '{id_col}' and toid column '{toid_col}'")

    edges = pd.DataFrame(
        {
            "id": id_keys(table[id_col]).to_numpy(),
            "toid": toids.to_numpy(),
        },
        dtype=object,
    )

    if MEMBER_COLUMN in table.columns:
        edges[MEMBER_COLUMN] = table[MEMBER_COLUMN].to_numpy()

    return edges[edges["id"].notna()].reset_index(drop=True)


def member_tokens(value: object) -> set[str]:
    """
    Split a ``member_COMID`` value into the COMIDs it covers.

    Split flowlines carry a decimal suffix (``"1720197.1"``); both the full
    token and its base COMID are returned.
    """
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return set()

    tokens = {token.strip() for token in str(value).split(",") if token.strip()}
    return tokens | {token.split(".")[0] for token in tokens}


def resolve_member_comid(edges: pd.DataFrame, legacy_id: object) -> tuple[list[str], pd.DataFrame]:
    """
    Find the edges whose ``member_COMID`` covers a legacy COMID.

    Args:
        edges: Normalized edge table with a ``member_COMID`` column
        legacy_id: NHDPlus COMID to look up

    Returns:
        Tuple of (sorted matching canonical ids, edges without ``member_COMID``)
    """
    if MEMBER_COLUMN not in edges.columns:
        return [], edges

    key = as_id_key(legacy_id)
    mask = edges[MEMBER_COLUMN].map(lambda value: key in member_tokens(value)).astype(bool)
    matches = sorted(set(edges.loc[mask, "id"]))

    logger.debug(f"COMID {key} is a member of {len(matches)} edge(s): {matches}")

    return matches, edges.drop(columns=[MEMBER_COLUMN])
