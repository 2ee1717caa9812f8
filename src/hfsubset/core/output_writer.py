"""
Output writer for subset results.

Writes each extracted layer as its own table in a single GeoPackage,
keeping the layer names and column names of the source hydrofabric.
"""

import logging
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pyogrio

logger = logging.getLogger(__name__)


class GeoPackageWriter:
    """
    Writes subset layers to a GeoPackage.

    Feature layers are written with their geometry and CRS; tables without
    spatial semantics (attribute tables, empty results) are written as
    plain GeoPackage tables.
    """

    def __init__(self, path: Path, overwrite: bool = True):
        """
        Initialize writer with an output file.

        Args:
            path: Output GeoPackage path, must end with ``.gpkg``
            overwrite: Remove an existing file before the first write

        Raises:
            ValueError: If the path does not have a ``.gpkg`` extension
            FileExistsError: If the file exists and ``overwrite`` is False
        """
        self.path = Path(path)
        self.layers_written: list[str] = []

        if self.path.suffix != ".gpkg":
            raise ValueError(f"Output file must have a '.gpkg' extension: {self.path}")

        if self.path.exists():
            if not overwrite:
                raise FileExistsError(f"Output file already exists: {self.path}")
            logger.info(f"Overwriting existing output: {self.path}")
            self.path.unlink()

        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, layer: str, table: pd.DataFrame) -> None:
        """
        Write one layer.

        Args:
            layer: Layer (table) name in the GeoPackage
            table: GeoDataFrame or DataFrame to write
        """
        logger.info(f"Writing {len(table)} row(s) to layer '{layer}' of {self.path}")

        geometry_columns = table.columns[table.dtypes == "geometry"]

        if isinstance(table, gpd.GeoDataFrame):
            table.to_file(self.path, layer=layer, driver="GPKG")
        elif len(geometry_columns) > 0:
            # Geometry without a usable CRS (or no rows) is written unreferenced
            gpd.GeoDataFrame(table, geometry=geometry_columns[0]).to_file(self.path, layer=layer, driver="GPKG")
        else:
            pyogrio.write_dataframe(table, self.path, layer=layer, driver="GPKG")

        self.layers_written.append(layer)
