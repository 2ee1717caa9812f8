"""
Client for the USGS Network Linked Data Index (NLDI).

The NLDI links external features (stream gages, water quality sites, ...)
and arbitrary locations to NHDPlusV2 COMIDs, and serves NHDPlusV2 flowline
geometries. hfsubset uses it to resolve ``ExternalFeatureRef`` and
``Coordinate`` origins, and to locate the partition of an origin when no
network index is available.
"""

import logging
from typing import Any

import geopandas as gpd
import httpx

from hfsubset.config.defaults import DEFAULT_NLDI_URL
from hfsubset.core.exceptions import OriginNotFoundError

logger = logging.getLogger(__name__)

TIMEOUT = 60.0  # seconds

# NLDI geometries are WGS84
NLDI_CRS = "EPSG:4326"


class NLDIClient:
    """Feature lookup backed by the NLDI REST API."""

    def __init__(self, base_url: str = DEFAULT_NLDI_URL, client: httpx.Client | None = None):
        """
        Initialize the client.

        Args:
            base_url: NLDI root URL (without ``/linked-data``)
            client: HTTP client to use; one is created (and owned) if None
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client if client is not None else httpx.Client(timeout=TIMEOUT, follow_redirects=True)

    def __enter__(self) -> "NLDIClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _get_features(self, path: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """GET a linked-data resource and return its GeoJSON features."""
        url = f"{self.base_url}/linked-data/{path}"
        logger.debug(f"NLDI request: {url} {params or ''}")

        response = self.client.get(url, params=params)
        if response.status_code == httpx.codes.NOT_FOUND:
            return []
        response.raise_for_status()

        payload = response.json()
        if payload.get("type") == "Feature":
            return [payload]
        return payload.get("features") or []

    @staticmethod
    def _comid(features: list[dict[str, Any]], description: str) -> int:
        for feature in features:
            properties = feature.get("properties") or {}
            value = properties.get("comid") or properties.get("identifier")
            if value not in (None, ""):
                return int(value)

        raise OriginNotFoundError(f"NLDI has no COMID for {description}")

    def comid_for_feature(self, source: str, feature_id: str) -> int:
        """
        COMID of the flowline an NLDI feature is indexed to.

        Raises:
            OriginNotFoundError: If the NLDI doesn't know the feature
            httpx.HTTPError: Request failed
        """
        features = self._get_features(f"{source.lower()}/{feature_id}")
        return self._comid(features, f"feature {source}/{feature_id}")

    def comid_at(self, lon: float, lat: float) -> int:
        """
        COMID of the catchment containing a WGS84 location.

        Raises:
            OriginNotFoundError: If no catchment contains the location
            httpx.HTTPError: Request failed
        """
        features = self._get_features("comid/position", params={"coords": f"POINT({lon} {lat})"})
        return self._comid(features, f"location ({lon}, {lat})")

    def flowline(self, comid: int | str) -> gpd.GeoDataFrame:
        """
        NHDPlusV2 flowline of a COMID.

        Raises:
            OriginNotFoundError: If the COMID has no flowline
            httpx.HTTPError: Request failed
        """
        features = self._get_features(f"comid/{comid}")
        if not features:
            raise OriginNotFoundError(f"NLDI has no flowline for COMID {comid}")

        return gpd.GeoDataFrame.from_features(features, crs=NLDI_CRS)
