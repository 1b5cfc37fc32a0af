"""Tests for year-over-baseline differences."""

from __future__ import annotations

from datetime import datetime, timezone

import numpy as np
import pytest

from ndvitrend._types import AnnualComposite
from ndvitrend.analysis.change import difference_series
from ndvitrend.exceptions import ConfigurationError


def _composite(year: int, value: float, scene_count: int = 1) -> AnnualComposite:
    return AnnualComposite(
        year=year,
        time_start=datetime(year, 6, 1, tzinfo=timezone.utc),
        data=np.full((2, 2), value, dtype=np.float32),
        scene_count=scene_count,
    )


@pytest.mark.unit
class TestDifferenceSeries:
    def test_later_years_only(self) -> None:
        composites = [_composite(2018, 0.4), _composite(2019, 0.5), _composite(2020, 0.3)]

        diffs = difference_series(composites, 2018)

        assert [d.year for d in diffs] == [2019, 2020]
        assert all(d.baseline_year == 2018 for d in diffs)
        np.testing.assert_allclose(diffs[0].data, 0.1, atol=1e-6)
        np.testing.assert_allclose(diffs[1].data, -0.1, atol=1e-6)

    def test_include_baseline_is_zero(self) -> None:
        composites = [_composite(2018, 0.4), _composite(2019, 0.5)]

        diffs = difference_series(composites, 2018, include_baseline=True)

        assert diffs[0].year == 2018
        np.testing.assert_array_equal(diffs[0].data, 0.0)

    def test_middle_baseline_skips_earlier_years(self) -> None:
        composites = [_composite(2018, 0.4), _composite(2019, 0.5), _composite(2020, 0.3)]
        assert [d.year for d in difference_series(composites, 2019)] == [2020]

    def test_nan_propagates(self) -> None:
        gap = AnnualComposite(
            year=2019,
            time_start=datetime(2019, 6, 1, tzinfo=timezone.utc),
            data=np.full((2, 2), np.nan, dtype=np.float32),
        )
        (diff,) = difference_series([_composite(2018, 0.4), gap], 2018)
        assert np.isnan(diff.data).all()

    def test_missing_baseline_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="baseline year 2017"):
            difference_series([_composite(2018, 0.4)], 2017)
