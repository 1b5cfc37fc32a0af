"""Tests for the Landsat provider (Planetary Computer STAC API)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import requests
from shapely.geometry import box

from ndvitrend._types import BoundaryFeature, Grid, Region
from ndvitrend.config import Config
from ndvitrend.exceptions import ProviderError
from ndvitrend.providers.base import (
    _MAX_BACKOFF,
    _MAX_RETRIES,
    _STATUS_TIMEOUT,
    CatalogEntry,
)
from ndvitrend.providers.landsat import (
    _COLLECTION,
    _STAC_SEARCH_URL,
    _STAC_URL,
    _TOKEN_REFRESH_MARGIN,
    _TOKEN_URL,
    LandsatProvider,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def provider() -> LandsatProvider:
    """Create a LandsatProvider with default config."""
    return LandsatProvider(config=Config())


@pytest.fixture
def region() -> Region:
    geometry = box(74.5, 29.5, 77.5, 32.5)
    return Region(features=(BoundaryFeature("India", "Punjab", geometry),), geometry=geometry)


def _response(payload: Any, status_code: int = 200) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def _stac_item(
    item_id: str = "LC08_L2SP_148039_20190712_02_T1",
    platform: str = "landsat-8",
    cloud: float = 12.5,
) -> dict[str, Any]:
    return {
        "id": item_id,
        "type": "Feature",
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[74.0, 29.0], [76.0, 29.0], [76.0, 31.0], [74.0, 31.0], [74.0, 29.0]]],
        },
        "properties": {
            "datetime": "2019-07-12T05:28:11.123456Z",
            "platform": platform,
            "eo:cloud_cover": cloud,
            "landsat:wrs_path": "148",
            "landsat:wrs_row": "039",
        },
        "assets": {
            "red": {"href": "https://example.blob.core.windows.net/SR_B4.TIF"},
            "nir08": {"href": "https://example.blob.core.windows.net/SR_B5.TIF"},
            "qa_pixel": {"href": "https://example.blob.core.windows.net/QA_PIXEL.TIF"},
            "thumbnail": {"href": "https://example.blob.core.windows.net/thumb.png"},
        },
    }


def _page(items: list[dict[str, Any]], next_body: dict[str, Any] | None = None) -> dict[str, Any]:
    links: list[dict[str, Any]] = [{"rel": "self", "href": _STAC_SEARCH_URL}]
    if next_body is not None:
        links.append({"rel": "next", "href": _STAC_SEARCH_URL, "method": "POST", "body": next_body})
    return {"type": "FeatureCollection", "features": items, "links": links}


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestLandsatSearch:
    def test_search_returns_catalog_entries(
        self, provider: LandsatProvider, region: Region
    ) -> None:
        provider._session.request = MagicMock(return_value=_response(_page([_stac_item()])))

        entries = provider.search(region, ("2019-06-01", "2019-10-31"))

        assert len(entries) == 1
        entry = entries[0]
        assert isinstance(entry, CatalogEntry)
        assert entry.provider == "landsat"
        assert entry.acquired.year == 2019
        assert entry.cloud_cover == pytest.approx(0.125)

    def test_search_sends_stac_query(self, provider: LandsatProvider, region: Region) -> None:
        provider._session.request = MagicMock(return_value=_response(_page([])))

        provider.search(region, ("2019-06-01", "2019-10-31"), cloud_cover_max=0.2)

        args, kwargs = provider._session.request.call_args
        assert args == ("post", _STAC_SEARCH_URL)
        body = kwargs["json"]
        assert body["collections"] == [_COLLECTION]
        assert body["bbox"] == pytest.approx([74.5, 29.5, 77.5, 32.5])
        assert body["datetime"] == "2019-06-01T00:00:00Z/2019-10-31T23:59:59Z"
        assert body["query"]["platform"] == {"in": ["landsat-8"]}
        assert body["query"]["eo:cloud_cover"]["lte"] == pytest.approx(20.0)

    def test_search_follows_next_links(self, provider: LandsatProvider, region: Region) -> None:
        first = _page([_stac_item("A")], next_body={"token": "next:A"})
        second = _page([_stac_item("B")])
        provider._session.request = MagicMock(side_effect=[_response(first), _response(second)])

        entries = provider.search(region, ("2019-06-01", "2019-10-31"))

        assert [e.product_id for e in entries] == ["A", "B"]
        assert provider._session.request.call_args.kwargs["json"] == {"token": "next:A"}

    def test_search_keeps_landsat_8_only(self, provider: LandsatProvider, region: Region) -> None:
        items = [_stac_item("L8", "landsat-8"), _stac_item("L9", "landsat-9"), _stac_item("L7", "landsat-7")]
        provider._session.request = MagicMock(return_value=_response(_page(items)))

        entries = provider.search(region, ("2019-06-01", "2019-10-31"))

        assert [e.product_id for e in entries] == ["L8"]

    def test_search_returns_empty_when_no_results(
        self, provider: LandsatProvider, region: Region
    ) -> None:
        provider._session.request = MagicMock(return_value=_response(_page([])))
        assert provider.search(region, ("2019-06-01", "2019-10-31")) == []

    def test_search_raises_on_http_error(self, provider: LandsatProvider, region: Region) -> None:
        provider._session.request = MagicMock(return_value=_response({}, status_code=400))
        with pytest.raises(ProviderError, match="HTTP 400"):
            provider.search(region, ("2019-06-01", "2019-10-31"))

    def test_search_raises_on_invalid_json(self, provider: LandsatProvider, region: Region) -> None:
        resp = _response(None)
        resp.json.side_effect = ValueError("Expecting value")
        provider._session.request = MagicMock(return_value=resp)
        with pytest.raises(ProviderError, match="invalid JSON"):
            provider.search(region, ("2019-06-01", "2019-10-31"))

    def test_search_logs_debug_info(
        self,
        provider: LandsatProvider,
        region: Region,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        provider._session.request = MagicMock(return_value=_response(_page([])))
        with caplog.at_level(logging.DEBUG, logger="ndvitrend.providers.landsat"):
            provider.search(region, ("2019-06-01", "2019-10-31"))
        assert "Searching Landsat catalog" in caplog.text


@pytest.mark.unit
class TestParseStacItem:
    def test_band_assets_mapped(self) -> None:
        entry = LandsatProvider._parse_stac_item(_stac_item())
        assert entry is not None
        assert entry.bands_available == ["QA_PIXEL", "SR_B4", "SR_B5"]
        assert entry.assets["SR_B5"].endswith("SR_B5.TIF")

    def test_metadata(self) -> None:
        entry = LandsatProvider._parse_stac_item(_stac_item())
        assert entry is not None
        assert entry.metadata["platform"] == "landsat-8"
        assert entry.metadata["wrs_path"] == "148"
        assert entry.metadata["wrs_row"] == "039"

    def test_rejects_other_platforms(self) -> None:
        assert LandsatProvider._parse_stac_item(_stac_item(platform="landsat-7")) is None

    def test_accepts_requested_platforms(self) -> None:
        item = _stac_item(platform="landsat-9")
        assert LandsatProvider._parse_stac_item(item, ("landsat-8", "landsat-9")) is not None


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestLandsatDownload:
    @pytest.fixture
    def entry(self) -> CatalogEntry:
        parsed = LandsatProvider._parse_stac_item(_stac_item())
        assert parsed is not None
        return parsed

    @pytest.fixture
    def grid(self) -> Grid:
        return Grid(minx=75.0, maxy=31.0, resolution=0.5, width=2, height=2)

    def test_download_missing_product_id_raises(
        self, provider: LandsatProvider, grid: Grid
    ) -> None:
        with pytest.raises(ProviderError, match="product_id is empty"):
            provider.download(CatalogEntry(), ["SR_B4"], grid)

    def test_download_missing_band_raises(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        with pytest.raises(ProviderError, match="Missing: SR_B7"):
            provider.download(entry, ["SR_B4", "SR_B7"], grid)

    def test_download_reads_signed_bands(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        provider._session.request = MagicMock(return_value=_response({"token": "sv=1&sig=abc"}))
        band = np.full(grid.shape, 1234.0, dtype=np.float32)

        with patch.object(LandsatProvider, "_read_band", return_value=band) as mock_read:
            scene = provider.download(entry, ["QA_PIXEL", "SR_B5", "SR_B4"], grid)

        assert set(scene.bands) == {"QA_PIXEL", "SR_B5", "SR_B4"}
        assert scene.scene_id == entry.product_id
        assert scene.acquired == entry.acquired
        hrefs = [call.args[0] for call in mock_read.call_args_list]
        assert all(h.endswith("?sv=1&sig=abc") for h in hrefs)
        assert all(call.args[2] is grid for call in mock_read.call_args_list)

    def test_token_fetched_once(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        provider._session.request = MagicMock(return_value=_response({"token": "t"}))
        band = np.zeros(grid.shape, dtype=np.float32)

        with patch.object(LandsatProvider, "_read_band", return_value=band):
            provider.download(entry, ["SR_B4"], grid)
            provider.download(entry, ["SR_B5"], grid)

        provider._session.request.assert_called_once()
        assert provider._session.request.call_args.args == ("get", f"{_TOKEN_URL}/{_COLLECTION}")

    def test_expired_token_refetched(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        future = (datetime.now(timezone.utc) + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
        provider._session.request = MagicMock(
            side_effect=[
                _response({"token": "old", "msft:expiry": "2000-01-01T00:00:00Z"}),
                _response({"token": "new", "msft:expiry": future}),
            ]
        )
        band = np.zeros(grid.shape, dtype=np.float32)

        with patch.object(LandsatProvider, "_read_band", return_value=band) as mock_read:
            provider.download(entry, ["SR_B4"], grid)
            provider.download(entry, ["SR_B4"], grid)

        hrefs = [call.args[0] for call in mock_read.call_args_list]
        assert hrefs[0].endswith("?old")
        assert hrefs[1].endswith("?new")
        assert provider._session.request.call_count == 2

    def test_token_near_expiry_refetched(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        soon = datetime.now(timezone.utc) + _TOKEN_REFRESH_MARGIN / 2
        provider._session.request = MagicMock(
            return_value=_response({"token": "t", "msft:expiry": soon.isoformat()})
        )
        band = np.zeros(grid.shape, dtype=np.float32)

        with patch.object(LandsatProvider, "_read_band", return_value=band):
            provider.download(entry, ["SR_B4"], grid)
            provider.download(entry, ["SR_B4"], grid)

        assert provider._session.request.call_count == 2

    def test_valid_token_reused(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        later = datetime.now(timezone.utc) + timedelta(hours=1)
        provider._session.request = MagicMock(
            return_value=_response({"token": "t", "msft:expiry": later.isoformat()})
        )
        band = np.zeros(grid.shape, dtype=np.float32)

        with patch.object(LandsatProvider, "_read_band", return_value=band):
            provider.download(entry, ["SR_B4"], grid)
            provider.download(entry, ["SR_B5"], grid)

        provider._session.request.assert_called_once()

    def test_unparseable_expiry_raises(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        provider._session.request = MagicMock(
            return_value=_response({"token": "t", "msft:expiry": "tomorrow"})
        )
        with pytest.raises(ProviderError, match="Unexpected token response"):
            provider.download(entry, ["SR_B4"], grid)

    def test_bad_token_response_raises(
        self, provider: LandsatProvider, entry: CatalogEntry, grid: Grid
    ) -> None:
        provider._session.request = MagicMock(return_value=_response({"msft:expiry": "x"}))
        with pytest.raises(ProviderError, match="token"):
            provider.download(entry, ["SR_B4"], grid)

    def test_sign_appends_query(self) -> None:
        assert LandsatProvider._sign("https://a/b.TIF", "sig=1") == "https://a/b.TIF?sig=1"
        assert LandsatProvider._sign("https://a/b.TIF?x=1", "sig=1") == "https://a/b.TIF?x=1&sig=1"


@pytest.mark.unit
class TestReadBand:
    """Warp a local UTM GeoTIFF onto a geographic analysis grid."""

    # 6 km square in UTM 43N straddling 75E near 30N; west half 3000, east half nodata.
    _ORIGIN = (497_000.0, 3_323_000.0)
    _PIXEL = 30.0
    _SIZE = 200
    _NODATA = 9999

    @pytest.fixture
    def cog_path(self, tmp_path: Path) -> Path:
        import rasterio
        from rasterio.transform import from_origin

        data = np.full((self._SIZE, self._SIZE), 3000, dtype=np.uint16)
        data[:, self._SIZE // 2 :] = self._NODATA
        path = tmp_path / "band.TIF"
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=self._SIZE,
            width=self._SIZE,
            count=1,
            dtype="uint16",
            crs="EPSG:32643",
            transform=from_origin(*self._ORIGIN, self._PIXEL, self._PIXEL),
            nodata=self._NODATA,
        ) as dst:
            dst.write(data, 1)
        return path

    @pytest.fixture
    def grid(self) -> Grid:
        from rasterio.warp import transform_bounds

        west, north = self._ORIGIN
        extent = self._SIZE * self._PIXEL
        bounds = transform_bounds("EPSG:32643", "EPSG:4326", west, north - extent, west + extent, north)
        return Grid.from_bounds(bounds, 500.0)

    def test_output_matches_grid(self, cog_path: Path, grid: Grid) -> None:
        out = LandsatProvider._read_band(str(cog_path), "SR_B4", grid)
        assert out.shape == grid.shape
        assert out.dtype == np.float32

    def test_sr_values_preserved_and_nodata_filled_with_zero(
        self, cog_path: Path, grid: Grid
    ) -> None:
        out = LandsatProvider._read_band(str(cog_path), "SR_B4", grid)
        row = grid.height // 2
        assert set(np.unique(out)) <= {0.0, 3000.0}
        assert out[row, 1] == 3000.0
        assert out[row, grid.width - 2] == 0.0

    def test_qa_nodata_filled_with_designated_fill(self, cog_path: Path, grid: Grid) -> None:
        out = LandsatProvider._read_band(str(cog_path), "QA_PIXEL", grid)
        row = grid.height // 2
        assert set(np.unique(out)) <= {1.0, 3000.0}
        assert out[row, 1] == 3000.0
        assert out[row, grid.width - 2] == 1.0

    def test_unreadable_asset_raises(self, tmp_path: Path, grid: Grid) -> None:
        with pytest.raises(ProviderError, match="Failed to read Landsat band SR_B5"):
            LandsatProvider._read_band(str(tmp_path / "missing.TIF"), "SR_B5", grid)


# ---------------------------------------------------------------------------
# Status and retry
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestLandsatCheckStatus:
    def test_check_status_available(self, provider: LandsatProvider) -> None:
        provider._session.get = MagicMock(return_value=_response({}))
        assert provider.check_status().available is True

    def test_check_status_unavailable_on_error_status(self, provider: LandsatProvider) -> None:
        provider._session.get = MagicMock(return_value=_response({}, status_code=503))
        status = provider.check_status()
        assert status.available is False
        assert "503" in status.message

    def test_check_status_unavailable_on_network_error(self, provider: LandsatProvider) -> None:
        provider._session.get = MagicMock(side_effect=requests.ConnectionError("down"))
        assert provider.check_status().available is False

    def test_check_status_uses_status_timeout(self, provider: LandsatProvider) -> None:
        provider._session.get = MagicMock(return_value=_response({}))
        provider.check_status()
        args, kwargs = provider._session.get.call_args
        assert args[0] == f"{_STAC_URL}/collections/{_COLLECTION}"
        assert kwargs["timeout"] == _STATUS_TIMEOUT


@pytest.mark.unit
class TestLandsatRetryLogic:
    def test_compute_backoff_respects_max(self, provider: LandsatProvider) -> None:
        assert provider._compute_backoff(100) <= _MAX_BACKOFF * 1.1

    def test_retry_request_exhausts_retries(self, provider: LandsatProvider) -> None:
        provider._session.request = MagicMock(return_value=_response({}, status_code=500))

        with patch("time.sleep"), pytest.raises(ProviderError) as exc_info:
            provider._retry_request("get", "http://test.com")

        assert "after retries" in str(exc_info.value).lower()
        assert provider._session.request.call_count == _MAX_RETRIES

    def test_retry_request_succeeds_after_transient_failure(
        self, provider: LandsatProvider
    ) -> None:
        provider._session.request = MagicMock(
            side_effect=[_response({}, status_code=503), _response({"ok": True})]
        )

        with patch("time.sleep"):
            result = provider._retry_request("get", "http://test.com")

        assert result.status_code == 200
        assert provider._session.request.call_count == 2

    def test_network_errors_retried(self, provider: LandsatProvider) -> None:
        provider._session.request = MagicMock(side_effect=requests.ConnectionError("reset"))

        with patch("time.sleep"), pytest.raises(ProviderError, match="reset"):
            provider._retry_request("get", "http://test.com")

        assert provider._session.request.call_count == _MAX_RETRIES
