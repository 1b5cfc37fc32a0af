"""Result object model for the NDVI trend workflow."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from pydantic import BaseModel, Field

from ndvitrend._types import (
    AnnualComposite,
    DifferenceRaster,
    ExportRecord,
    Grid,
    Region,
)
from ndvitrend.config import Config
from ndvitrend.exceptions import ExportError

if TYPE_CHECKING:
    import pandas as pd
    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

EXPORT_COLUMNS: list[str] = ["region", "year", "mean", "pixel_count"]

# ── NDVI interpretation thresholds ────────────────────────────────
_NDVI_HEALTHY_THRESHOLD: float = 0.6
_NDVI_MODERATE_THRESHOLD: float = 0.3
_NDVI_SPARSE_THRESHOLD: float = 0.1

# ── Change thresholds ─────────────────────────────────────────────
_STABLE_THRESHOLD: float = 0.02


def _interpret_ndvi(value: float) -> str:
    """Return plain-language interpretation of an NDVI value.

    Example:
        >>> _interpret_ndvi(0.45)
        'moderate vegetation'
    """
    if math.isnan(value):
        return "no data"
    if value >= _NDVI_HEALTHY_THRESHOLD:
        return "healthy vegetation"
    if value >= _NDVI_MODERATE_THRESHOLD:
        return "moderate vegetation"
    if value >= _NDVI_SPARSE_THRESHOLD:
        return "sparse/stressed vegetation"
    return "bare soil/water"


def _interpret_change(delta: float) -> str:
    """Return plain-language direction of a change against the baseline."""
    if math.isnan(delta):
        return "n/a"
    if abs(delta) < _STABLE_THRESHOLD:
        return "stable"
    return "greener" if delta > 0 else "browner"


class ResultMetadata(BaseModel):
    """Metadata for a trend run.

    Pydantic (not dataclass) so it can be dumped to JSON next to the
    exported files.

    Attributes:
        source: Imagery provider name (e.g., ``"landsat"``).
        timestamps: ISO-8601 acquisition times of the scenes used.
        scene_count: Number of scenes composited.
        crs: Coordinate reference system of the grid.
        bounds: Grid extent ``{"minx", "miny", "maxx", "maxy"}``.
        resolution_m: Nominal resolution in metres.
        bands: Bands read from the archive.
    """

    source: str = ""
    timestamps: list[str] = Field(default_factory=list)
    scene_count: int = 0
    crs: str = ""
    bounds: dict[str, float] = Field(default_factory=dict)
    resolution_m: float | None = None
    bands: list[str] = Field(default_factory=list)


@dataclass
class TrendResult:
    """Outputs of one NDVI trend run.

    Holds every intermediate the outputs need: the annual composites,
    the baseline differences, and the exported records. Rendering and
    file export are methods so computation never depends on them.

    Attributes:
        config: Configuration the run used.
        region: Resolved analysis region.
        grid: Raster grid shared by all arrays.
        composites: One composite per year, ascending.
        differences: Composite minus baseline, for each later year.
        records: Reduced mean NDVI per (feature, year).
        background: Geometry of the cosmetic dark map layer, if resolved.
        metadata: Provenance metadata.
        warnings: Data-gap and quality messages.
    """

    config: Config
    region: Region
    grid: Grid
    composites: list[AnnualComposite] = field(default_factory=list)
    differences: list[DifferenceRaster] = field(default_factory=list)
    records: list[ExportRecord] = field(default_factory=list)
    background: BaseGeometry | None = None
    metadata: ResultMetadata = field(default_factory=ResultMetadata)
    warnings: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        """Return narrative summary for interactive display.

        Shows region, period, and one line per year with scene count,
        mean NDVI with interpretation, and change against the baseline.
        Does NOT show raw arrays.
        """
        cfg = self.config
        lines: list[str] = [f"{type(self).__name__}("]
        lines.append(f"  region: {self.region.name}")
        lines.append(
            f"  period: {cfg.start_year} to {cfg.end_year}, "
            f"months {cfg.start_month} to {cfg.end_month}"
        )
        lines.append(f"  scenes: {self.metadata.scene_count}")

        means = self.yearly_means()
        baseline = means.get(cfg.effective_baseline_year, float("nan"))
        for composite in self.composites:
            value = means.get(composite.year, float("nan"))
            if math.isnan(value):
                lines.append(f"  {composite.year}: N/A ({composite.scene_count} scenes)")
                continue
            delta = value - baseline
            lines.append(
                f"  {composite.year}: {value:.3f} \u2014 {_interpret_ndvi(value)}"
                f" ({composite.scene_count} scenes, {delta:+.3f} {_interpret_change(delta)})"
            )

        for w in self.warnings:
            lines.append(f"  \u26a0 {w}")
        lines.append(")")
        return "\n".join(lines)

    def yearly_means(self) -> dict[int, float]:
        """Pixel-weighted mean NDVI per year over all exported features."""
        totals: dict[int, tuple[float, int]] = {}
        for record in self.records:
            total, count = totals.get(record.year, (0.0, 0))
            if record.pixel_count:
                total += record.mean * record.pixel_count
                count += record.pixel_count
            totals[record.year] = (total, count)
        return {
            year: (total / count if count else float("nan"))
            for year, (total, count) in totals.items()
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Export the reduced records to a pandas DataFrame.

        Columns are ``region, year, mean, pixel_count``, sorted by year
        then region, giving one row per feature per year.
        """
        import pandas as pd  # noqa: PLC0415

        rows = [
            {
                "region": r.region,
                "year": r.year,
                "mean": r.mean,
                "pixel_count": r.pixel_count,
            }
            for r in sorted(self.records, key=lambda r: (r.year, r.region))
        ]
        df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
        return df.astype({"year": "int64", "pixel_count": "int64", "mean": "float64"})

    def to_csv(self, path: str | Path | None = None) -> Path:
        """Write the records as CSV.

        Args:
            path: Target file, or a directory that receives
                ``{export_name}.csv``. Defaults to ``Config.output_dir``.

        Returns:
            Path of the written file.

        Raises:
            ExportError: If the file cannot be written.
        """
        target = self._target(path, ".csv")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self.to_dataframe().to_csv(target, index=False)
        except OSError as exc:
            raise ExportError(
                what="Cannot write CSV export",
                cause=f"{type(exc).__name__}: {exc}",
                fix="Choose a writable output directory",
            ) from exc
        logger.info("Wrote %d rows to %s", len(self.records), target)
        return target

    def to_png(self, path: str | Path | None = None) -> Path:
        """Write the time-series chart as PNG.

        Raises:
            ExportError: If the file cannot be written.
        """
        from ndvitrend.render import plot_time_series  # noqa: PLC0415

        target = self._target(path, ".png")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            return plot_time_series(self, target)
        except OSError as exc:
            raise ExportError(
                what="Cannot write time-series chart",
                cause=f"{type(exc).__name__}: {exc}",
                fix="Choose a writable output directory",
            ) from exc

    def to_html(self, path: str | Path | None = None) -> Path:
        """Write the interactive difference map as HTML.

        Raises:
            ExportError: If the file cannot be written.
        """
        from ndvitrend.render import build_map  # noqa: PLC0415

        target = self._target(path, ".html", stem=f"{self.config.export_name}_map")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            build_map(self).save(str(target))
        except OSError as exc:
            raise ExportError(
                what="Cannot write difference map",
                cause=f"{type(exc).__name__}: {exc}",
                fix="Choose a writable output directory",
            ) from exc
        logger.info("Wrote difference map %s", target)
        return target

    def to_geotiff(self, path: str | Path | None = None) -> Path:
        """Write the annual composites as a multi-band GeoTIFF.

        Band *i* holds the composite of ``start_year + i - 1`` and is
        described as ``NDVI_{year}``. NaN is the nodata value.

        Raises:
            ValueError: If there are no composites.
            ExportError: If the file cannot be written.
        """
        import rasterio  # noqa: PLC0415
        from rasterio.errors import RasterioError  # noqa: PLC0415

        if not self.composites:
            msg = "Cannot export empty result to GeoTIFF"
            raise ValueError(msg)

        target = self._target(path, ".tif")
        data = np.stack([c.data.astype(np.float32) for c in self.composites])
        count, height, width = data.shape
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with rasterio.open(
                target,
                "w",
                driver="GTiff",
                height=height,
                width=width,
                count=count,
                dtype="float32",
                crs=self.grid.crs,
                transform=self.grid.transform,
                nodata=np.nan,
            ) as dst:
                for i, composite in enumerate(self.composites, start=1):
                    dst.write(data[i - 1], i)
                    dst.set_band_description(i, f"{self.config.ndvi_band}_{composite.year}")
        except (OSError, RasterioError) as exc:
            raise ExportError(
                what="Cannot write composite GeoTIFF",
                cause=f"{type(exc).__name__}: {exc}",
                fix="Choose a writable output directory",
            ) from exc
        return target

    def _target(self, path: str | Path | None, suffix: str, stem: str | None = None) -> Path:
        """Resolve *path* to a file path; directories get ``{stem}{suffix}``."""
        stem = stem or self.config.export_name
        if path is None:
            return self.config.output_dir / f"{stem}{suffix}"
        path = Path(path)
        if path.is_dir() or not path.suffix:
            return path / f"{stem}{suffix}"
        return path
