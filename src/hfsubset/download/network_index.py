"""
Loader for the national network index.

The index is a single parquet table with one row per network edge
(``NETWORK_INDEX_COLUMNS``). It lets origins be resolved and partitions be
selected without opening any partition file.
"""

import logging
import tempfile
from pathlib import Path
from urllib.parse import urljoin, urlparse

import httpx
import pandas as pd

from hfsubset.core.origin import NETWORK_INDEX_COLUMNS, normalize_network_index
from hfsubset.download.http_client import download_file

logger = logging.getLogger(__name__)

REMOTE_SCHEMES = ("http", "https")


def is_remote(uri: str) -> bool:
    return urlparse(str(uri)).scheme in REMOTE_SCHEMES


def resolve_index_uri(base_url: str, network_index: str) -> str:
    """
    Resolve the configured network index to a URL or local path.

    Absolute URLs and existing local files are used as given; anything else is
    taken relative to ``base_url``.

    Example:
        >>> resolve_index_uri("https://example.org/hf/", "conus_net.parquet")
        'https://example.org/hf/conus_net.parquet'
    """
    if is_remote(network_index) or Path(network_index).exists():
        return str(network_index)

    return urljoin(base_url, network_index)


def load_network_index(
    uri: str | Path,
    cache_dir: Path | None = None,
    client: httpx.Client | None = None,
) -> pd.DataFrame:
    """
    Load the network index.

    Args:
        uri: Local path or URL of the parquet index
        cache_dir: Directory to keep a downloaded index in (reused when present)
        client: HTTP client for the download

    Returns:
        DataFrame with ``NETWORK_INDEX_COLUMNS``, identifier columns as
        canonical keys, without duplicate rows

    Raises:
        FileNotFoundError: If a local index doesn't exist
        KeyError: If the index is missing required columns
        httpx.HTTPError: Download failed
    """
    uri = str(uri)

    if is_remote(uri):
        if cache_dir is not None:
            path = Path(cache_dir) / Path(urlparse(uri).path).name
            if path.exists():
                logger.info(f"Using cached network index: {path}")
            else:
                download_file(uri, path, client=client)
            return _read_index(path)

        with tempfile.TemporaryDirectory(prefix="hfsubset-") as tmp:
            return _read_index(download_file(uri, Path(tmp) / Path(urlparse(uri).path).name, client=client))

    path = Path(uri)
    if not path.exists():
        raise FileNotFoundError(f"Network index not found: {path}")

    return _read_index(path)


def _read_index(source: str | Path) -> pd.DataFrame:
    index = pd.read_parquet(source)

    missing = [column for column in NETWORK_INDEX_COLUMNS if column not in index.columns]
    if missing:
        raise KeyError(f"Network index is missing columns: {missing}")

    index = normalize_network_index(index[NETWORK_INDEX_COLUMNS]).drop_duplicates(ignore_index=True)
    logger.info(f"Loaded network index: {len(index)} edges")
    return index
