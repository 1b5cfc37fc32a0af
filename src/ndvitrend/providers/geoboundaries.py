"""Administrative boundaries from the geoBoundaries open API."""

from __future__ import annotations

import logging
from typing import Any

import requests
from shapely.geometry import shape

from ndvitrend._types import BoundaryFeature
from ndvitrend.config import Config
from ndvitrend.exceptions import ProviderError
from ndvitrend.providers.base import (
    _STATUS_TIMEOUT,
    _SUCCESS_STATUS_CODES,
    BoundaryProvider,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

_API_URL = "https://www.geoboundaries.org/api/current/gbOpen"

# geoBoundaries is keyed by ISO 3166-1 alpha-3. Countries used by the
# default workflow; any other country can be passed as its ISO3 code.
_COUNTRY_ISO3: dict[str, str] = {
    "bangladesh": "BGD",
    "bhutan": "BTN",
    "china": "CHN",
    "india": "IND",
    "nepal": "NPL",
    "pakistan": "PAK",
    "sri lanka": "LKA",
}


def _country_code(country: str) -> str | None:
    """Return the ISO3 code for *country*, or ``None`` if unknown.

    Example:
        >>> _country_code("India")
        'IND'
        >>> _country_code("npl")
        'NPL'
    """
    key = country.strip().lower()
    if key in _COUNTRY_ISO3:
        return _COUNTRY_ISO3[key]
    if len(key) == 3 and key.isalpha():
        return key.upper()
    return None


class GeoBoundariesProvider(BoundaryProvider):
    """Boundary provider backed by https://www.geoboundaries.org.

    Fetches the simplified GeoJSON release for a country and admin
    level. Responses are memoised per ``(iso3, level)`` for the lifetime
    of the provider.

    Args:
        config: Frozen configuration snapshot.

    Example:
        >>> provider = GeoBoundariesProvider(config=Config())
        >>> provider.name
        'geoboundaries'
    """

    _name: str = "geoboundaries"

    def __init__(self, config: Config) -> None:
        super().__init__(config)
        self._session: requests.Session = requests.Session()
        self._memo: dict[tuple[str, int], list[BoundaryFeature]] = {}

    def features(self, country: str, level: int = 1) -> list[BoundaryFeature]:
        """Return the boundary features of *country* at admin *level*.

        Raises:
            ProviderError: If the API or the GeoJSON download fails.
        """
        iso3 = _country_code(country)
        if iso3 is None:
            logger.warning("No ISO3 code known for country %r", country)
            return []

        key = (iso3, level)
        if key not in self._memo:
            self._memo[key] = self._fetch(country, iso3, level)
        return list(self._memo[key])

    def _fetch(self, country: str, iso3: str, level: int) -> list[BoundaryFeature]:
        meta_url = f"{_API_URL}/{iso3}/ADM{level}/"
        logger.debug("Fetching geoBoundaries metadata %s", meta_url)
        meta = self._json(self._retry_request("get", meta_url))
        # The API answers with a list when several releases match.
        if isinstance(meta, list):
            meta = meta[0] if meta else {}

        download_url = meta.get("simplifiedGeometryGeoJSON") or meta.get("gjDownloadURL")
        if not download_url:
            raise ProviderError(
                what=f"geoBoundaries has no GeoJSON for {iso3} ADM{level}",
                cause="Metadata response lacks a download URL",
                fix="Check that the admin level exists for this country",
            )

        collection = self._json(self._retry_request("get", download_url))
        features = [
            self._parse_feature(feature, country, level)
            for feature in collection.get("features", [])
            if feature.get("geometry")
        ]
        logger.info("Loaded %d ADM%d features for %s", len(features), level, country)
        return features

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(
                what="geoBoundaries returned invalid JSON",
                cause=str(exc),
                fix="Try again; check geoBoundaries status if persistent",
            ) from exc

    @staticmethod
    def _parse_feature(
        feature: dict[str, Any], country: str, level: int
    ) -> BoundaryFeature:
        properties = feature.get("properties") or {}
        name = properties.get("shapeName", "") if level > 0 else country
        return BoundaryFeature(
            country=country,
            name=str(name),
            geometry=shape(feature["geometry"]),
        )

    def check_status(self) -> ProviderStatus:
        """Check geoBoundaries API reachability. Never raises."""
        try:
            resp = self._session.get(f"{_API_URL}/IND/ADM0/", timeout=_STATUS_TIMEOUT)
            if resp.status_code in _SUCCESS_STATUS_CODES:
                return ProviderStatus(available=True)
            return ProviderStatus(
                available=False,
                message=f"geoBoundaries returned HTTP {resp.status_code}",
            )
        except requests.RequestException as exc:
            return ProviderStatus(
                available=False,
                message=f"geoBoundaries API unreachable: {exc}",
            )
