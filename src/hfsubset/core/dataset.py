"""
Read-only access to a regional partition GeoPackage.

A ``PartitionDataset`` is opened once per subset operation and shared by
every concurrent layer extraction. Layer metadata (names, geometry types and
coordinate reference systems) is read once through pyogrio when the dataset
is opened; feature tables are read on demand with geopandas.
"""

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import geopandas as gpd
import pandas as pd
import pyogrio

logger = logging.getLogger(__name__)


class PartitionSource(Protocol):
    """Fetches the local file of a partition given its key."""

    def fetch(self, key: str) -> AbstractContextManager[Path]: ...


@dataclass(frozen=True)
class LayerInfo:
    """Metadata of one GeoPackage layer."""

    name: str
    geometry_type: str | None
    crs: str | None

    @property
    def data_type(self) -> str:
        """``features`` for spatial layers, ``attributes`` for plain tables."""
        return "features" if self.geometry_type else "attributes"


class PartitionDataset:
    """
    Read-only handle on one partition GeoPackage.

    Use as a context manager so the handle is released on every exit path;
    a closed dataset refuses further reads.
    """

    def __init__(self, path: Path, key: str | None = None):
        """
        Open a partition file.

        Args:
            path: Path to the GeoPackage
            key: Partition key the file belongs to (for messages)

        Raises:
            FileNotFoundError: If the file doesn't exist
            pyogrio.errors.DataSourceError: If GDAL cannot open the file
        """
        self.path = Path(path)
        self.key = key
        self._closed = False

        if not self.path.is_file():
            raise FileNotFoundError(f"Partition file not found: {self.path}")

        self._layers: dict[str, LayerInfo] = {}
        for name, geometry_type in pyogrio.list_layers(self.path):
            info = pyogrio.read_info(self.path, layer=name)
            self._layers[name] = LayerInfo(name=name, geometry_type=geometry_type, crs=info["crs"])

        logger.info(f"Opened partition {key or ''} at {self.path} ({len(self._layers)} layers)")

    def __enter__(self) -> "PartitionDataset":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __contains__(self, name: object) -> bool:
        return name in self._layers

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the dataset; later reads raise ValueError."""
        self._closed = True
        logger.debug(f"Closed partition {self.key or ''} at {self.path}")

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError(f"Partition {self.key or ''} at {self.path} is closed")

    def layer_names(self) -> list[str]:
        """Names of all layers in the GeoPackage."""
        return list(self._layers)

    def layer_info(self, name: str) -> LayerInfo:
        return self._layers[name]

    def layer_crs(self, name: str) -> str | None:
        """CRS of a layer (``EPSG:xxxx`` or WKT), None for attribute tables."""
        return self._layers[name].crs

    def read_layer(self, name: str) -> pd.DataFrame:
        """
        Read a whole layer.

        Returns:
            GeoDataFrame for feature tables, DataFrame for attribute tables

        Raises:
            KeyError: If the layer does not exist
            ValueError: If the dataset has been closed
        """
        self._check_open()
        if name not in self._layers:
            raise KeyError(f"Layer '{name}' not found in {self.path}")

        logger.debug(f"Reading layer '{name}' from {self.path}")
        return gpd.read_file(self.path, layer=name)
