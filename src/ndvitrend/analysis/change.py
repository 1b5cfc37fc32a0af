"""Year-over-baseline NDVI differences."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from ndvitrend._types import AnnualComposite, DifferenceRaster
from ndvitrend.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def difference_series(
    composites: Sequence[AnnualComposite],
    baseline_year: int,
    include_baseline: bool = False,
) -> list[DifferenceRaster]:
    """Subtract the baseline composite from every later composite.

    Pixels missing in either composite are NaN in the difference.
    With *include_baseline* the baseline's own difference is returned
    first; it is zero wherever the baseline is valid.

    Args:
        composites: Annual composites, one per year.
        baseline_year: Year whose composite is subtracted.
        include_baseline: Also return the baseline-minus-baseline raster.

    Returns:
        ``(year, raster)`` differences ordered by year.

    Raises:
        ConfigurationError: If no composite exists for *baseline_year*.
    """
    by_year = {c.year: c for c in composites}
    baseline = by_year.get(baseline_year)
    if baseline is None:
        raise ConfigurationError(
            what=f"No composite for baseline year {baseline_year}",
            cause=f"Composites cover {sorted(by_year)}",
            fix="Choose a baseline_year inside the analysis window",
        )
    if baseline.scene_count == 0:
        logger.warning("Baseline year %d has no scenes; all differences are empty", baseline_year)

    differences: list[DifferenceRaster] = []
    for year in sorted(by_year):
        if year < baseline_year or (year == baseline_year and not include_baseline):
            continue
        diff = (by_year[year].data - baseline.data).astype(np.float32)
        differences.append(DifferenceRaster(year=year, baseline_year=baseline_year, data=diff))
    return differences
