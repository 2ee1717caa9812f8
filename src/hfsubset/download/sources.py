"""
Partition sources: where regional hydrofabric GeoPackages come from.

A partition source turns a partition key (a VPU such as ``"01"``) into a
local file for the duration of a ``with`` block:

- ``LocalPartitionSource`` serves files already on disk
- ``HTTPPartitionSource`` downloads them, into a cache directory when one is
  configured, or into a temporary file removed when the block exits
"""

import logging
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import urljoin

import httpx

from hfsubset.config.defaults import DEFAULT_PARTITION_TEMPLATE
from hfsubset.download.http_client import download_file

logger = logging.getLogger(__name__)


def partition_filename(key: str, template: str = DEFAULT_PARTITION_TEMPLATE) -> str:
    """
    File name of a partition.

    Example:
        >>> partition_filename("01")
        'nextgen_01.gpkg'
    """
    return template.format(vpu=key)


class LocalPartitionSource:
    """Partitions stored as files in a local directory."""

    def __init__(self, directory: Path, template: str = DEFAULT_PARTITION_TEMPLATE):
        self.directory = Path(directory)
        self.template = template

    def path_for(self, key: str) -> Path:
        return self.directory / partition_filename(key, self.template)

    @contextmanager
    def fetch(self, key: str) -> Iterator[Path]:
        """
        Yield the local path of a partition.

        Raises:
            FileNotFoundError: If the partition file doesn't exist
        """
        path = self.path_for(key)
        if not path.is_file():
            raise FileNotFoundError(f"Partition {key} not found: {path}")

        logger.debug(f"Using local partition {key}: {path}")
        yield path


class HTTPPartitionSource:
    """Partitions downloaded from the hydrofabric distribution."""

    def __init__(
        self,
        base_url: str,
        template: str = DEFAULT_PARTITION_TEMPLATE,
        cache_dir: Path | None = None,
        overwrite: bool = False,
        client: httpx.Client | None = None,
    ):
        """
        Initialize the source.

        Args:
            base_url: Base URL of the distribution (ends with ``/``)
            template: Partition file name template with a ``{vpu}`` field
            cache_dir: Keep downloads here and reuse them; None downloads to
                temporary files deleted after use
            overwrite: Re-download partitions already in ``cache_dir``
            client: HTTP client for downloads (a new one per download if None)
        """
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.template = template
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self.overwrite = overwrite
        self.client = client

    def url_for(self, key: str) -> str:
        return urljoin(self.base_url, partition_filename(key, self.template))

    @contextmanager
    def fetch(self, key: str) -> Iterator[Path]:
        """
        Download a partition (or reuse the cached copy) and yield its path.

        Raises:
            httpx.HTTPError: Download failed
        """
        url = self.url_for(key)

        if self.cache_dir is not None:
            path = self.cache_dir / partition_filename(key, self.template)

            if path.exists() and self.overwrite:
                logger.info(f"Removing cached partition {key}: {path}")
                path.unlink()

            if path.exists():
                logger.info(f"Using cached partition {key}: {path}")
            else:
                download_file(url, path, client=self.client)

            yield path
            return

        with tempfile.TemporaryDirectory(prefix="hfsubset-") as tmp:
            path = Path(tmp) / partition_filename(key, self.template)
            download_file(url, path, client=self.client)
            yield path
            logger.debug(f"Removing temporary partition {key}: {path}")
