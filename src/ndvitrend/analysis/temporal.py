"""Calendar filtering and per-year temporal compositing."""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import numpy as np
import numpy.typing as npt

from ndvitrend._types import AnnualComposite, MaskedScene, TimeRange
from ndvitrend.exceptions import DataGapError

logger = logging.getLogger(__name__)


def in_season(
    when: datetime,
    start_year: int,
    end_year: int,
    start_month: int,
    end_month: int,
) -> bool:
    """Return ``True`` if *when* passes both calendar predicates.

    The year and month ranges are independent and inclusive; the month
    range does not wrap across a year boundary.

    Example:
        >>> in_season(datetime(2019, 7, 3), 2018, 2020, 6, 10)
        True
        >>> in_season(datetime(2019, 11, 3), 2018, 2020, 6, 10)
        False
    """
    return start_year <= when.year <= end_year and start_month <= when.month <= end_month


def season_time_range(year: int, start_month: int, end_month: int) -> TimeRange:
    """Return the inclusive ISO date range spanning the season in *year*.

    Example:
        >>> season_time_range(2019, 6, 10)
        ('2019-06-01', '2019-10-31')
    """
    last_day = calendar.monthrange(year, end_month)[1]
    return (f"{year}-{start_month:02d}-01", f"{year}-{end_month:02d}-{last_day:02d}")


def composite_time_start(year: int) -> datetime:
    """Timestamp assigned to a year's composite: 1 June of *year*, UTC.

    Independent of the configured season.
    """
    return datetime(year, 6, 1, tzinfo=timezone.utc)


def annual_composites(
    scenes: Iterable[MaskedScene],
    start_year: int,
    end_year: int,
    start_month: int,
    end_month: int,
    shape: tuple[int, int],
    band: str = "NDVI",
    strict: bool = False,
) -> list[AnnualComposite]:
    """Reduce indexed scenes to one unweighted mean composite per year.

    Scenes are consumed as a stream; only a running per-pixel sum and
    count are held for each year. Each pixel's mean is taken over the
    scenes where it is valid (not NaN). Scenes outside the calendar
    window are skipped.

    A year without any scene yields an all-NaN composite with
    ``scene_count == 0`` and a data-gap warning, so the series keeps
    one entry per year.

    Args:
        scenes: Masked scenes carrying *band*.
        start_year: First year (inclusive).
        end_year: Last year (inclusive).
        start_month: First season month (inclusive).
        end_month: Last season month (inclusive).
        shape: Grid shape ``(height, width)``.
        band: Name of the index band to average.
        strict: Raise ``DataGapError`` instead of recording a warning.

    Returns:
        Composites ordered by year, one per year in the range.

    Raises:
        DataGapError: If *strict* and some year has no scenes.
        ValueError: If a scene's band does not match *shape*.
    """
    sums: dict[int, npt.NDArray[np.float64]] = {}
    counts: dict[int, npt.NDArray[np.int32]] = {}
    scene_counts: dict[int, int] = {}

    for scene in scenes:
        if not in_season(scene.acquired, start_year, end_year, start_month, end_month):
            logger.debug("Skipping %s acquired %s (outside season)", scene.scene_id, scene.acquired)
            continue
        values = scene.bands[band]
        if values.shape != shape:
            msg = f"Scene {scene.scene_id} has shape {values.shape}, expected {shape}"
            raise ValueError(msg)

        year = scene.acquired.year
        if year not in sums:
            sums[year] = np.zeros(shape, dtype=np.float64)
            counts[year] = np.zeros(shape, dtype=np.int32)
            scene_counts[year] = 0
        valid = ~np.isnan(values)
        sums[year][valid] += values[valid]
        counts[year] += valid
        scene_counts[year] += 1

    composites: list[AnnualComposite] = []
    for year in range(start_year, end_year + 1):
        time_start = composite_time_start(year)
        if year not in sums:
            gap = DataGapError(
                what=f"No scenes for {year}",
                cause=f"No acquisitions between months {start_month} and {end_month}",
                fix="Widen the season or raise cloud_cover_max",
            )
            if strict:
                raise gap
            logger.warning("Data gap: no scenes for %d; composite is empty", year)
            composites.append(
                AnnualComposite(
                    year=year,
                    time_start=time_start,
                    data=np.full(shape, np.nan, dtype=np.float32),
                    scene_count=0,
                    warnings=[gap.what],
                )
            )
            continue

        count = counts[year]
        with np.errstate(divide="ignore", invalid="ignore"):
            mean: npt.NDArray[np.floating[Any]] = np.where(
                count > 0, sums[year] / np.maximum(count, 1), np.nan
            ).astype(np.float32)

        composite = AnnualComposite(
            year=year,
            time_start=time_start,
            data=mean,
            scene_count=scene_counts[year],
        )
        if composite.valid_fraction == 0.0:
            composite.warnings.append(f"All pixels masked in {year}")
        logger.info(
            "Composite %d: %d scene(s), %.1f%% of pixels valid",
            year,
            composite.scene_count,
            composite.valid_fraction * 100.0,
        )
        composites.append(composite)

    return composites
