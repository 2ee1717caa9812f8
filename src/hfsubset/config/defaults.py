"""
Default values and environment variables for hfsubset configuration.

This module centralizes all default values, environment variable names,
and dataset conventions used throughout the hfsubset package.
"""

# Remote hydrofabric layout
DEFAULT_BASE_URL = "https://lynker-spatial.s3.amazonaws.com/pre-release/"
DEFAULT_NETWORK_INDEX = "conus_net.parquet"
DEFAULT_PARTITION_TEMPLATE = "nextgen_{vpu}.gpkg"

# USGS Network Linked Data Index
DEFAULT_NLDI_URL = "https://api.water.usgs.gov/nldi"

# Environment variable names
ENV_BASE_URL = "HFSUBSET_BASE_URL"
ENV_CACHE_DIR = "HFSUBSET_CACHE_DIR"
ENV_BOUNDARIES = "HFSUBSET_BOUNDARIES"

# Layers of the hydrofabric GeoPackage data model, in extraction order
DEFAULT_LAYERS = (
    "divides",
    "nexus",
    "flowpaths",
    "network",
    "hydrolocations",
    "reference_flowline",
    "reference_catchment",
    "refactored_flowpaths",
    "refactored_divides",
)

# Concurrent layer extractions
DEFAULT_MAX_WORKERS = 4

# Column holding the partition key in the regional boundary polygons
BOUNDARY_KEY_COLUMN = "VPUID"
