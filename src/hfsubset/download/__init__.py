"""
Data access for the hydrofabric distribution.

This module provides:
- Partition sources fetching regional GeoPackages (local or over HTTP)
- Loading the national network index
- Streaming HTTP downloads with progress and retries
"""

from .http_client import download_file
from .network_index import load_network_index, resolve_index_uri
from .sources import HTTPPartitionSource, LocalPartitionSource, partition_filename

__all__ = [
    "HTTPPartitionSource",
    "LocalPartitionSource",
    "partition_filename",
    "load_network_index",
    "resolve_index_uri",
    "download_file",
]
