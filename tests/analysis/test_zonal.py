"""Tests for spatial reduction over region features."""

from __future__ import annotations

from datetime import datetime, timezone

import numpy as np
import pytest
from shapely.geometry import Polygon, box

from ndvitrend._types import AnnualComposite, BoundaryFeature, Grid
from ndvitrend.analysis.zonal import reduce_regions

# 4 x 2 grid of 1-degree pixels over lon 0..4, lat 0..2.
GRID = Grid(minx=0.0, maxy=2.0, resolution=1.0, width=4, height=2)
WEST = BoundaryFeature("X", "West", box(0.0, 0.0, 2.0, 2.0))
EAST = BoundaryFeature("X", "East", box(2.0, 0.0, 4.0, 2.0))


def _composite(data: np.ndarray, year: int = 2019) -> AnnualComposite:
    return AnnualComposite(
        year=year,
        time_start=datetime(year, 6, 1, tzinfo=timezone.utc),
        data=data.astype(np.float32),
        scene_count=1,
    )


@pytest.mark.unit
class TestReduceRegions:
    def test_mean_per_feature(self) -> None:
        data = np.array([[0.1, 0.3, 0.5, 0.5], [0.1, 0.3, 0.7, 0.7]])

        records = reduce_regions(_composite(data), GRID, [WEST, EAST])

        assert [r.region for r in records] == ["West", "East"]
        assert records[0].mean == pytest.approx(0.2)
        assert records[1].mean == pytest.approx(0.6)
        assert records[0].pixel_count == 4
        assert all(r.year == 2019 for r in records)

    def test_nan_pixels_excluded(self) -> None:
        data = np.array([[0.1, np.nan, 0.5, 0.5], [np.nan, 0.3, 0.7, 0.7]])

        (west,) = reduce_regions(_composite(data), GRID, [WEST])

        assert west.mean == pytest.approx(0.2)
        assert west.pixel_count == 2

    def test_feature_without_valid_pixels(self) -> None:
        data = np.full((2, 4), np.nan)

        (west,) = reduce_regions(_composite(data), GRID, [WEST])

        assert np.isnan(west.mean)
        assert west.pixel_count == 0

    def test_pixel_centre_rule(self) -> None:
        # Triangle covering only the centre of the top-left pixel.
        tri = BoundaryFeature("X", "Tri", Polygon([(0.2, 1.2), (0.9, 1.2), (0.2, 1.9)]))
        data = np.arange(8, dtype=np.float64).reshape(2, 4)

        (record,) = reduce_regions(_composite(data), GRID, [tri])

        assert record.pixel_count == 1
        assert record.mean == pytest.approx(0.0)

    def test_shape_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="grid is"):
            reduce_regions(_composite(np.zeros((3, 3))), GRID, [WEST])
