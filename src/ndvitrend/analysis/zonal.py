"""Spatial reduction of composites over region features."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from ndvitrend._types import AnnualComposite, BoundaryFeature, ExportRecord, Grid


def reduce_regions(
    composite: AnnualComposite,
    grid: Grid,
    features: Sequence[BoundaryFeature],
) -> list[ExportRecord]:
    """Return the mean of valid composite pixels inside each feature.

    A pixel belongs to a feature when its centre falls inside the
    feature geometry. Features without valid pixels still produce a
    record, with ``mean`` NaN and ``pixel_count`` 0, so every feature
    appears once per year.

    Raises:
        ValueError: If the composite does not match the grid shape.
    """
    if composite.data.shape != grid.shape:
        msg = f"Composite {composite.year} has shape {composite.data.shape}, grid is {grid.shape}"
        raise ValueError(msg)

    records: list[ExportRecord] = []
    valid = ~np.isnan(composite.data)
    for feature in features:
        selected = grid.mask_for(feature.geometry) & valid
        pixel_count = int(np.count_nonzero(selected))
        mean = float(np.mean(composite.data[selected], dtype=np.float64)) if pixel_count else float("nan")
        records.append(
            ExportRecord(
                region=feature.name,
                year=composite.year,
                mean=mean,
                pixel_count=pixel_count,
            )
        )
    return records
