"""Shared test fixtures for the ndvitrend test suite.

Provides in-memory boundary and scene providers so pipeline tests run
without network access.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np
import pytest
from shapely.geometry import box

from ndvitrend._types import (
    AnnualComposite,
    BoundaryFeature,
    DifferenceRaster,
    ExportRecord,
    Grid,
    Region,
    Scene,
)
from ndvitrend.config import Config
from ndvitrend.providers.base import (
    BoundaryProvider,
    CatalogEntry,
    ProviderStatus,
    SceneProvider,
)
from ndvitrend.results import ResultMetadata, TrendResult

# 0.01 degree pixels on EPSG:4326.
TEST_SCALE_M = 1113.2

PUNJAB = box(75.00, 30.00, 75.02, 30.02)
HARYANA = box(75.02, 30.00, 75.04, 30.02)


class FakeBoundaryProvider(BoundaryProvider):
    """Boundary provider backed by a ``{(country, level): features}`` dict."""

    _name = "fake-boundaries"

    def __init__(
        self,
        config: Config,
        features: dict[tuple[str, int], list[BoundaryFeature]] | None = None,
    ) -> None:
        super().__init__(config)
        self._features = features or {}
        self.calls: list[tuple[str, int]] = []

    def features(self, country: str, level: int = 1) -> list[BoundaryFeature]:
        self.calls.append((country, level))
        return list(self._features.get((country, level), []))

    def check_status(self) -> ProviderStatus:
        return ProviderStatus(available=True)


def make_entry(
    product_id: str,
    date: str,
    red: float = 1000.0,
    nir: float = 3000.0,
    qa: int = 0,
    geometry: dict[str, Any] | None = None,
) -> CatalogEntry:
    """Build a catalog entry whose scene has constant band values."""
    return CatalogEntry(
        provider="fake-scenes",
        product_id=product_id,
        timestamp=f"{date}T05:30:00Z",
        cloud_cover=0.1,
        geometry=geometry or {},
        metadata={"red": str(red), "nir": str(nir), "qa": str(qa)},
    )


class FakeSceneProvider(SceneProvider):
    """Scene provider serving constant-valued scenes from a fixed catalog."""

    _name = "fake-scenes"

    def __init__(self, config: Config, entries: list[CatalogEntry] | None = None) -> None:
        super().__init__(config)
        self._entries = entries or []
        self.searches: list[tuple[str, str]] = []
        self.downloads: list[str] = []

    def search(
        self,
        region: Region,
        time_range: tuple[str, str],
        **params: Any,
    ) -> list[CatalogEntry]:
        self.searches.append(time_range)
        start, end = time_range
        return [e for e in self._entries if start <= e.timestamp[:10] <= end]

    def download(self, entry: CatalogEntry, bands: list[str], grid: Grid) -> Scene:
        self.downloads.append(entry.product_id)
        values = {
            "SR_B4": float(entry.metadata["red"]),
            "SR_B5": float(entry.metadata["nir"]),
            "QA_PIXEL": float(entry.metadata["qa"]),
        }
        return Scene(
            scene_id=entry.product_id,
            acquired=entry.acquired,
            bands={b: np.full(grid.shape, values[b], dtype=np.float32) for b in bands},
        )

    def check_status(self) -> ProviderStatus:
        return ProviderStatus(available=True)


@pytest.fixture
def test_config() -> Config:
    """Return a small 2018--2020 configuration for test isolation."""
    return Config(start_year=2018, end_year=2020, scale_m=TEST_SCALE_M)


@pytest.fixture
def boundaries(test_config: Config) -> FakeBoundaryProvider:
    """Boundary provider holding Punjab and Haryana plus country outlines."""
    india = box(74.0, 29.0, 76.0, 31.0)
    return FakeBoundaryProvider(
        test_config,
        {
            ("India", 1): [
                BoundaryFeature("India", "Punjab", PUNJAB),
                BoundaryFeature("India", "Haryana", HARYANA),
            ],
            ("India", 0): [BoundaryFeature("India", "India", india)],
            ("Pakistan", 0): [BoundaryFeature("Pakistan", "Pakistan", box(70.0, 29.0, 74.0, 31.0))],
        },
    )


@pytest.fixture
def region() -> Region:
    """The merged Punjab and Haryana region."""
    features = (
        BoundaryFeature("India", "Punjab", PUNJAB),
        BoundaryFeature("India", "Haryana", HARYANA),
    )
    return Region(features=features, geometry=box(75.00, 30.00, 75.04, 30.02))


@pytest.fixture
def grid(region: Region) -> Grid:
    """Analysis grid over the test region at 0.01 degree."""
    return Grid.from_bounds(region.bounds, TEST_SCALE_M)


@pytest.fixture
def scenes(test_config: Config) -> FakeSceneProvider:
    """One clear scene per year for 2018--2020, plus an off-season scene."""
    return FakeSceneProvider(
        test_config,
        [
            make_entry("LC08_2018_A", "2018-07-01", red=1000.0, nir=3000.0),
            make_entry("LC08_2019_A", "2019-08-15", red=1000.0, nir=4000.0),
            make_entry("LC08_2020_A", "2020-09-10", red=2000.0, nir=3000.0),
            make_entry("LC08_2019_WINTER", "2019-12-20", red=500.0, nir=500.0),
        ],
    )


@pytest.fixture
def trend_result(tmp_path: Path, region: Region) -> TrendResult:
    """A finished 2018--2019 result on a 4 x 2 grid, writing into *tmp_path*."""
    config = Config(start_year=2018, end_year=2019, scale_m=TEST_SCALE_M, output_dir=tmp_path)
    grid = Grid(minx=75.0, maxy=30.02, resolution=0.01, width=4, height=2)
    composites = [
        AnnualComposite(
            year=year,
            time_start=datetime(year, 6, 1, tzinfo=timezone.utc),
            data=np.full(grid.shape, value, dtype=np.float32),
            scene_count=2,
        )
        for year, value in ((2018, 0.5), (2019, 0.6))
    ]
    differences = [
        DifferenceRaster(
            year=2019,
            baseline_year=2018,
            data=np.full(grid.shape, 0.1, dtype=np.float32),
        )
    ]
    records = [
        ExportRecord(region="Punjab+Haryana", year=2019, mean=0.6, pixel_count=8),
        ExportRecord(region="Punjab+Haryana", year=2018, mean=0.5, pixel_count=8),
    ]
    return TrendResult(
        config=config,
        region=region,
        grid=grid,
        composites=composites,
        differences=differences,
        records=records,
        background=box(74.0, 29.0, 76.0, 31.0),
        metadata=ResultMetadata(source="fake-scenes", scene_count=4, crs=grid.crs),
    )
