"""Internal shared types for cross-boundary data contracts.

These types define the data shapes passed between provider, pipeline,
and analysis components. Rasters are numpy arrays on a shared
``Grid``; NaN is the no-data marker for every float raster.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from affine import Affine
    from shapely.geometry.base import BaseGeometry

BandList = list[str]
"""Ordered list of band identifiers (e.g., ``['QA_PIXEL', 'SR_B5', 'SR_B4']``)."""

TimeRange = tuple[str, str]
"""ISO-8601 date pair ``(start, end)`` bounding a query window."""

# Length of one degree of latitude, used to turn a nominal metre
# resolution into a pixel size on a geographic CRS.
_METRES_PER_DEGREE: float = 111_320.0

# CRS of boundary geometries.
_GEOGRAPHIC_CRS = "EPSG:4326"


@dataclass(frozen=True)
class Grid:
    """Raster grid shared by every array in a run.

    Args:
        minx: West edge in CRS units.
        maxy: North edge in CRS units.
        resolution: Pixel size in CRS units (square pixels).
        width: Number of columns.
        height: Number of rows.
        crs: Coordinate reference system, ``EPSG:<code>``.

    Example:
        >>> grid = Grid.from_bounds((74.0, 28.0, 77.0, 32.0), scale_m=500.0)
        >>> grid.shape[0] > 0
        True
    """

    minx: float
    maxy: float
    resolution: float
    width: int
    height: int
    crs: str = "EPSG:4326"

    @classmethod
    def from_bounds(
        cls,
        bounds: tuple[float, float, float, float],
        scale_m: float,
        crs: str = "EPSG:4326",
    ) -> Grid:
        """Build the smallest grid at *scale_m* covering *bounds*.

        *bounds* are longitude/latitude (EPSG:4326). On a geographic CRS
        the nominal resolution in metres is converted to degrees; on a
        projected CRS it is used as-is.
        """
        from rasterio.crs import CRS  # noqa: PLC0415
        from rasterio.warp import transform_bounds  # noqa: PLC0415

        if crs != _GEOGRAPHIC_CRS:
            bounds = transform_bounds(_GEOGRAPHIC_CRS, crs, *bounds)

        if CRS.from_string(crs).is_geographic:
            resolution = scale_m / _METRES_PER_DEGREE
        else:
            resolution = float(scale_m)

        minx, miny, maxx, maxy = bounds
        width = max(int(math.ceil((maxx - minx) / resolution)), 1)
        height = max(int(math.ceil((maxy - miny) / resolution)), 1)
        return cls(
            minx=float(minx),
            maxy=float(maxy),
            resolution=resolution,
            width=width,
            height=height,
            crs=crs,
        )

    @property
    def shape(self) -> tuple[int, int]:
        """Array shape ``(height, width)``."""
        return (self.height, self.width)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Grid extent ``(minx, miny, maxx, maxy)`` snapped to whole pixels."""
        return (
            self.minx,
            self.maxy - self.height * self.resolution,
            self.minx + self.width * self.resolution,
            self.maxy,
        )

    @property
    def transform(self) -> Affine:
        """Affine pixel-to-CRS transform (north-up)."""
        from rasterio.transform import from_origin  # noqa: PLC0415

        return from_origin(self.minx, self.maxy, self.resolution, self.resolution)

    def mask_for(self, geometry: BaseGeometry) -> npt.NDArray[np.bool_]:
        """Return a boolean array, ``True`` for pixel centres inside *geometry*.

        *geometry* is in EPSG:4326 and is reprojected to the grid CRS.
        """
        from rasterio.features import geometry_mask  # noqa: PLC0415
        from rasterio.warp import transform_geom  # noqa: PLC0415
        from shapely.geometry import mapping  # noqa: PLC0415

        if geometry.is_empty:
            return np.zeros(self.shape, dtype=bool)
        geojson: Any = mapping(geometry)
        if self.crs != _GEOGRAPHIC_CRS:
            geojson = transform_geom(_GEOGRAPHIC_CRS, self.crs, geojson)
        inside: npt.NDArray[np.bool_] = geometry_mask(
            [geojson],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
        )
        return inside


@dataclass(frozen=True)
class BoundaryFeature:
    """One administrative polygon from a boundary dataset.

    Args:
        country: Country (level-0) name, e.g. ``"India"``.
        name: Feature name at the requested level, e.g. ``"Punjab"``.
        geometry: Shapely polygon or multipolygon in EPSG:4326.
    """

    country: str
    name: str
    geometry: BaseGeometry


@dataclass(frozen=True)
class Region:
    """Named administrative polygons merged into one geometry.

    Immutable once resolved.

    Args:
        features: The matched boundary features, in request order.
        geometry: Union of all feature geometries.
    """

    features: tuple[BoundaryFeature, ...]
    geometry: BaseGeometry

    @property
    def name(self) -> str:
        """Joined feature names, used as the export label of the merged region."""
        return "+".join(dict.fromkeys(f.name for f in self.features))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Bounding box ``(minx, miny, maxx, maxy)`` of the merged geometry."""
        minx, miny, maxx, maxy = self.geometry.bounds
        return (minx, miny, maxx, maxy)


@dataclass
class Scene:
    """A single satellite observation resampled onto the analysis grid.

    Args:
        scene_id: Provider product identifier.
        acquired: Acquisition timestamp (UTC).
        bands: Band name to ``(H, W)`` array.
        metadata: Provider-specific metadata (platform, cloud cover, ...).

    Example:
        >>> import numpy as np
        >>> scene = Scene(
        ...     scene_id="LC08_L2SP_149039_20190615",
        ...     acquired=datetime(2019, 6, 15),
        ...     bands={"SR_B4": np.zeros((2, 2))},
        ... )
        >>> scene.year
        2019
    """

    scene_id: str
    acquired: datetime
    bands: dict[str, npt.NDArray[Any]]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def year(self) -> int:
        return self.acquired.year


@dataclass
class MaskedScene:
    """Cloud-masked scene ready for index computation.

    Args:
        scene_id: Provider product identifier.
        acquired: Acquisition timestamp (UTC).
        bands: Spectral bands as float arrays with invalid pixels set to NaN.
        mask: Boolean mask where ``True`` marks a valid (clear) pixel.
        clear_ratio: Fraction of pixels that passed the QA test (0.0--1.0).
    """

    scene_id: str
    acquired: datetime
    bands: dict[str, npt.NDArray[np.floating[Any]]]
    mask: npt.NDArray[np.bool_] | None = None
    clear_ratio: float = 0.0

    @property
    def year(self) -> int:
        return self.acquired.year


@dataclass
class AnnualComposite:
    """Per-year mean NDVI over all matching scenes.

    Args:
        year: Calendar year the composite covers.
        time_start: Nominal timestamp used as the chart x-value.
        data: Mean NDVI raster; NaN where no scene had a valid pixel.
        scene_count: Number of scenes averaged.
        warnings: Data-gap or quality messages for this year.
    """

    year: int
    time_start: datetime
    data: npt.NDArray[np.floating[Any]]
    scene_count: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def valid_fraction(self) -> float:
        """Fraction of grid pixels with at least one valid observation."""
        if self.data.size == 0:
            return 0.0
        return float(np.count_nonzero(~np.isnan(self.data))) / self.data.size


@dataclass
class DifferenceRaster:
    """Annual composite minus the baseline-year composite."""

    year: int
    baseline_year: int
    data: npt.NDArray[np.floating[Any]]


@dataclass(frozen=True)
class ExportRecord:
    """One exported row: spatial mean NDVI of a region feature in a year."""

    region: str
    year: int
    mean: float
    pixel_count: int
