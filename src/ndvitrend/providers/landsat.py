"""Landsat 8 Collection 2 Level-2 access via Microsoft Planetary Computer STAC API."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt
import requests

from ndvitrend._types import Scene
from ndvitrend.config import Config
from ndvitrend.exceptions import ProviderError
from ndvitrend.providers.base import (
    _STATUS_TIMEOUT,
    _SUCCESS_STATUS_CODES,
    CatalogEntry,
    ProviderStatus,
    SceneProvider,
)

if TYPE_CHECKING:
    from ndvitrend._types import BandList, Grid, Region, TimeRange

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Planetary Computer STAC API constants
# ---------------------------------------------------------------------------

_STAC_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"
_STAC_SEARCH_URL = f"{_STAC_URL}/search"
_TOKEN_URL = "https://planetarycomputer.microsoft.com/api/sas/v1/token"
_COLLECTION = "landsat-c2-l2"
_DEFAULT_PLATFORMS = ("landsat-8",)

_PAGE_LIMIT = 250
_MAX_PAGES = 100

# Refresh the SAS token this long before its stated expiry.
_TOKEN_REFRESH_MARGIN = timedelta(minutes=5)

# ---------------------------------------------------------------------------
# Collection 2 band mapping
# ---------------------------------------------------------------------------

# Collection 2 band name to STAC asset key
_BAND_ASSET_MAP: dict[str, str] = {
    "SR_B1": "coastal",
    "SR_B2": "blue",
    "SR_B3": "green",
    "SR_B4": "red",
    "SR_B5": "nir08",
    "SR_B6": "swir16",
    "SR_B7": "swir22",
    "QA_PIXEL": "qa_pixel",
}

# Value written where a band has no data on the grid. SR fill is 0;
# for QA_PIXEL bit 0 (designated fill) is set.
_FILL_VALUES: dict[str, float] = {"QA_PIXEL": 1.0}
_SR_FILL = 0.0


def _parse_expiry(value: Any) -> datetime | None:
    """Parse an ``msft:expiry`` timestamp such as ``2024-07-01T12:00:00Z``."""
    if not value:
        return None
    expiry = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry


class LandsatProvider(SceneProvider):
    """Landsat 8 scene provider via Microsoft Planetary Computer.

    Catalog search is public. Asset downloads use a short-lived SAS
    token fetched from the Planetary Computer token endpoint and are
    read as Cloud-Optimized GeoTIFFs, warped onto the analysis grid.

    Args:
        config: Frozen configuration snapshot.

    Example:
        >>> from ndvitrend.config import Config
        >>> provider = LandsatProvider(config=Config())
        >>> provider.name
        'landsat'
    """

    _name: str = "landsat"

    def __init__(self, config: Config) -> None:
        super().__init__(config)
        self._session: requests.Session = requests.Session()
        self._token: str | None = None
        self._token_expiry: datetime | None = None
        self._token_lock = threading.Lock()

    def search(
        self,
        region: Region,
        time_range: TimeRange,
        **params: Any,
    ) -> list[CatalogEntry]:
        """Search Planetary Computer for Landsat Collection 2 Level-2 scenes.

        Follows ``next`` links until the result set is exhausted.

        Args:
            region: Region whose bounding box bounds the search.
            time_range: ISO-8601 date pair ``(start, end)``, inclusive.
            **params: Optional parameters:
                - ``cloud_cover_max`` (float): Maximum scene cloud cover
                  (0.0--1.0). Defaults to ``Config.cloud_cover_max``.
                - ``platforms`` (tuple[str, ...]): Platforms to accept.
                  Defaults to ``("landsat-8",)``.

        Returns:
            Matching catalog entries, empty if none found.

        Raises:
            ProviderError: If the STAC API is unreachable or returns an
                HTTP error.
        """
        cloud_cover_max = float(params.get("cloud_cover_max", self._config.cloud_cover_max))
        platforms = tuple(params.get("platforms", _DEFAULT_PLATFORMS))

        start_date, end_date = time_range
        datetime_range = f"{start_date}T00:00:00Z/{end_date}T23:59:59Z"
        bbox = list(region.bounds)

        body: dict[str, Any] | None = {
            "collections": [_COLLECTION],
            "bbox": bbox,
            "datetime": datetime_range,
            "limit": _PAGE_LIMIT,
            "query": {
                "platform": {"in": list(platforms)},
                "eo:cloud_cover": {"lte": cloud_cover_max * 100.0},
            },
        }

        logger.debug(
            "Searching Landsat catalog: bbox=%s, datetime=%s, cloud_max=%.0f%%",
            bbox,
            datetime_range,
            cloud_cover_max * 100.0,
        )

        entries: list[CatalogEntry] = []
        url = _STAC_SEARCH_URL
        for _ in range(_MAX_PAGES):
            if body is None:
                break
            resp = self._retry_request("post", url, json=body)
            try:
                page = resp.json()
            except ValueError as exc:
                raise ProviderError(
                    what="Landsat catalog returned invalid JSON",
                    cause=str(exc),
                    fix="Try again; check Planetary Computer status if persistent",
                ) from exc

            for feature in page.get("features", []):
                entry = self._parse_stac_item(feature, platforms)
                if entry is not None:
                    entries.append(entry)

            url, body = self._next_page(page)

        logger.debug("Found %d Landsat scenes for %s", len(entries), datetime_range)
        return entries

    @staticmethod
    def _next_page(page: dict[str, Any]) -> tuple[str, dict[str, Any] | None]:
        """Return the URL and body of the ``next`` link, or ``("", None)``."""
        for link in page.get("links", []):
            if link.get("rel") == "next" and link.get("body"):
                return link.get("href", _STAC_SEARCH_URL), dict(link["body"])
        return "", None

    @staticmethod
    def _parse_stac_item(
        item: dict[str, Any],
        platforms: tuple[str, ...] = _DEFAULT_PLATFORMS,
    ) -> CatalogEntry | None:
        """Parse a STAC item into a ``CatalogEntry``.

        Returns ``None`` for items from a platform outside *platforms*.
        """
        properties = item.get("properties", {})
        platform = properties.get("platform", "")
        if platform not in platforms:
            return None

        assets = item.get("assets", {})
        band_hrefs = {
            band: assets[asset_key]["href"]
            for band, asset_key in _BAND_ASSET_MAP.items()
            if asset_key in assets and assets[asset_key].get("href")
        }

        return CatalogEntry(
            provider="landsat",
            product_id=item.get("id", ""),
            timestamp=properties.get("datetime", ""),
            cloud_cover=float(properties.get("eo:cloud_cover", 0)) / 100.0,
            geometry=item.get("geometry", {}),
            assets=band_hrefs,
            metadata={
                "platform": platform,
                "collection": _COLLECTION,
                "wrs_path": str(properties.get("landsat:wrs_path", "")),
                "wrs_row": str(properties.get("landsat:wrs_row", "")),
            },
        )

    def download(
        self,
        entry: CatalogEntry,
        bands: BandList,
        grid: Grid,
    ) -> Scene:
        """Read *bands* of *entry* onto *grid*.

        Each band is warped with nearest-neighbour resampling. Pixels
        outside the scene footprint take the band's fill value.

        Raises:
            ProviderError: If the entry is invalid, a band is missing,
                or a band cannot be read.
        """
        if not entry.product_id:
            raise ProviderError(
                what="Invalid catalog entry",
                cause="product_id is empty",
                fix="Ensure search() returned valid entries",
            )

        missing = [b for b in bands if b not in entry.assets]
        if missing:
            raise ProviderError(
                what=f"Landsat product {entry.product_id} lacks requested bands",
                cause=f"Missing: {', '.join(missing)}",
                fix=f"Use bands available in the product: {', '.join(entry.bands_available)}",
            )

        token = self._get_token()
        logger.debug("Reading Landsat product %s...", entry.product_id)

        arrays = {
            band: self._read_band(self._sign(entry.assets[band], token), band, grid)
            for band in bands
        }

        return Scene(
            scene_id=entry.product_id,
            acquired=entry.acquired,
            bands=arrays,
            metadata={
                "platform": entry.metadata.get("platform", ""),
                "cloud_cover": entry.cloud_cover,
            },
        )

    def _get_token(self) -> str:
        """Return a SAS token for the collection.

        The token is cached until it is within ``_TOKEN_REFRESH_MARGIN``
        of its ``msft:expiry``, then fetched again. A response without
        an expiry is cached for the provider's lifetime.

        Raises:
            ProviderError: If the token endpoint fails or returns an
                unexpected payload.
        """
        with self._token_lock:
            if self._token is None or self._token_expired():
                self._token, self._token_expiry = self._fetch_token()
            return self._token

    def _token_expired(self) -> bool:
        if self._token_expiry is None:
            return False
        return datetime.now(timezone.utc) >= self._token_expiry - _TOKEN_REFRESH_MARGIN

    def _fetch_token(self) -> tuple[str, datetime | None]:
        resp = self._retry_request("get", f"{_TOKEN_URL}/{_COLLECTION}")
        try:
            payload = resp.json()
            token = str(payload["token"])
            expiry = _parse_expiry(payload.get("msft:expiry"))
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderError(
                what="Planetary Computer token request failed",
                cause=f"Unexpected token response: {exc}",
                fix="Try again; check Planetary Computer status",
            ) from exc
        logger.debug("Fetched Planetary Computer token (expires %s)", expiry)
        return token, expiry

    @staticmethod
    def _sign(href: str, token: str) -> str:
        separator = "&" if "?" in href else "?"
        return f"{href}{separator}{token}"

    @staticmethod
    def _read_band(href: str, band: str, grid: Grid) -> npt.NDArray[np.float32]:
        """Warp one COG band onto *grid*.

        Raises:
            ProviderError: If GDAL cannot open or read the asset.
        """
        import rasterio  # noqa: PLC0415
        from rasterio.errors import RasterioError  # noqa: PLC0415
        from rasterio.warp import Resampling, reproject  # noqa: PLC0415

        fill = _FILL_VALUES.get(band, _SR_FILL)
        destination = np.full(grid.shape, fill, dtype=np.float32)

        try:
            with rasterio.Env(
                GDAL_DISABLE_READDIR_ON_OPEN="EMPTY_DIR",
                CPL_VSIL_CURL_ALLOWED_EXTENSIONS=".tif,.TIF",
            ), rasterio.open(href) as src:
                reproject(
                    source=rasterio.band(src, 1),
                    destination=destination,
                    src_nodata=src.nodata,
                    dst_transform=grid.transform,
                    dst_crs=grid.crs,
                    dst_nodata=fill,
                    resampling=Resampling.nearest,
                )
        except RasterioError as exc:
            raise ProviderError(
                what=f"Failed to read Landsat band {band}",
                cause=str(exc),
                fix="Try again; the asset may be temporarily unavailable",
            ) from exc

        return destination

    def check_status(self) -> ProviderStatus:
        """Check Planetary Computer STAC API operational status.

        Never raises.
        """
        try:
            resp = self._session.get(
                f"{_STAC_URL}/collections/{_COLLECTION}",
                timeout=_STATUS_TIMEOUT,
            )
            if resp.status_code in _SUCCESS_STATUS_CODES:
                return ProviderStatus(available=True)
            return ProviderStatus(
                available=False,
                message=f"Planetary Computer returned HTTP {resp.status_code}",
            )
        except requests.RequestException as exc:
            return ProviderStatus(
                available=False,
                message=f"Planetary Computer API unreachable: {exc}",
            )
