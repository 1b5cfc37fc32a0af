"""Visualization of NDVI composites and differences.

Rendering is kept apart from computation: every function here takes
finished arrays or a ``TrendResult`` and only draws.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    import folium

    from ndvitrend._types import DifferenceRaster, Grid
    from ndvitrend.results import TrendResult

logger = logging.getLogger(__name__)

BACKGROUND_LAYER_NAME = "Darkened India Base"
_CHART_COLOR = "#1d6b99"
_MAP_ZOOM = 7


@dataclass(frozen=True)
class MapLayer:
    """Name and visualization parameters of one map layer.

    Example:
        >>> layer = MapLayer("NDVI Difference 2018 to 2019", -0.3, 0.3, ("yellow", "grey", "red"))
        >>> layer.vis_params["min"]
        -0.3
    """

    name: str
    vis_min: float
    vis_max: float
    palette: tuple[str, ...]

    @property
    def vis_params(self) -> dict[str, Any]:
        return {"min": self.vis_min, "max": self.vis_max, "palette": list(self.palette)}


def colorize(
    values: npt.NDArray[np.floating[Any]],
    vmin: float = -0.3,
    vmax: float = 0.3,
    palette: Sequence[str] = ("yellow", "grey", "red"),
) -> npt.NDArray[np.float64]:
    """Map *values* to RGBA through a linear color ramp.

    Values below *vmin* or above *vmax* take the end colors of the
    ramp. NaN pixels are fully transparent.

    Returns:
        Array of shape ``(H, W, 4)`` with channels in ``[0, 1]``.

    Example:
        >>> import numpy as np
        >>> rgba = colorize(np.array([[-1.0, np.nan]]))
        >>> rgba.shape
        (1, 2, 4)
    """
    from matplotlib.colors import LinearSegmentedColormap, Normalize  # noqa: PLC0415

    cmap = LinearSegmentedColormap.from_list("ndvi_ramp", list(palette))
    norm = Normalize(vmin=vmin, vmax=vmax, clip=True)
    missing = np.isnan(values)
    scaled = norm(np.where(missing, vmin, values))
    rgba: npt.NDArray[np.float64] = np.asarray(cmap(np.asarray(scaled)), dtype=np.float64)
    rgba[missing] = 0.0
    return rgba


def difference_layers(result: TrendResult) -> list[tuple[MapLayer, DifferenceRaster]]:
    """Pair each difference raster with its named map layer."""
    cfg = result.config
    return [
        (
            MapLayer(
                name=f"NDVI Difference {diff.baseline_year} to {diff.year}",
                vis_min=cfg.vis_min,
                vis_max=cfg.vis_max,
                palette=tuple(cfg.palette),
            ),
            diff,
        )
        for diff in result.differences
    ]


def _latlon_bounds(grid: Grid) -> list[list[float]]:
    """Grid extent as folium ``[[south, west], [north, east]]``."""
    from rasterio.warp import transform_bounds  # noqa: PLC0415

    west, south, east, north = transform_bounds(grid.crs, "EPSG:4326", *grid.bounds)
    return [[south, west], [north, east]]


def build_map(result: TrendResult) -> folium.Map:
    """Build the interactive difference map.

    Layer order: the dark background over ``background_countries``,
    one overlay per difference year clipped to the region, then the
    region outline.
    """
    import folium  # noqa: PLC0415
    from folium.raster_layers import ImageOverlay  # noqa: PLC0415
    from shapely.geometry import mapping  # noqa: PLC0415

    minx, miny, maxx, maxy = result.region.bounds
    fmap = folium.Map(
        location=[(miny + maxy) / 2, (minx + maxx) / 2],
        zoom_start=_MAP_ZOOM,
        tiles=None,
        control_scale=True,
    )
    folium.TileLayer(tiles="OpenStreetMap", name="OpenStreetMap", control=True).add_to(fmap)

    background = result.background
    if background is not None and not background.is_empty:
        folium.GeoJson(
            mapping(background),
            name=BACKGROUND_LAYER_NAME,
            style_function=lambda _: {
                "fillColor": "black",
                "color": "black",
                "weight": 0,
                "fillOpacity": 1.0,
            },
        ).add_to(fmap)

    inside = result.grid.mask_for(result.region.geometry)
    bounds = _latlon_bounds(result.grid)
    for layer, diff in difference_layers(result):
        clipped = np.where(inside, diff.data, np.nan)
        ImageOverlay(
            image=colorize(clipped, layer.vis_min, layer.vis_max, layer.palette),
            bounds=bounds,
            name=layer.name,
            mercator_project=True,
        ).add_to(fmap)

    folium.GeoJson(
        mapping(result.region.geometry),
        name="Region",
        style_function=lambda _: {
            "fillColor": "transparent",
            "color": "#0066FF",
            "weight": 2,
            "fillOpacity": 0,
        },
    ).add_to(fmap)

    folium.LayerControl(position="topright", collapsed=False).add_to(fmap)
    return fmap


def plot_time_series(result: TrendResult, path: str | Path) -> Path:
    """Write the mean-NDVI-per-year chart to *path* (PNG).

    One line per exported region feature; years without data break
    the line.
    """
    import matplotlib  # noqa: PLC0415

    matplotlib.use("Agg")  # Non-interactive backend for file output
    import matplotlib.pyplot as plt  # noqa: PLC0415

    path = Path(path)
    time_start = {c.year: c.time_start for c in result.composites}

    series: dict[str, list[tuple[Any, float]]] = {}
    for record in sorted(result.records, key=lambda r: (r.region, r.year)):
        series.setdefault(record.region, []).append((time_start[record.year], record.mean))

    fig, ax = plt.subplots(figsize=(10, 5))
    for index, (region, points) in enumerate(series.items()):
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        ax.plot(
            xs,
            ys,
            marker="o",
            linewidth=2,
            color=_CHART_COLOR if index == 0 else None,
            label=region,
        )

    ax.set_title(result.config.chart_title)
    ax.set_xlabel("Year")
    ax.set_ylabel("Mean NDVI")
    if len(series) > 1:
        ax.legend()
    if not series:
        ax.text(
            0.5,
            0.5,
            "No data available",
            ha="center",
            va="center",
            fontsize=14,
            transform=ax.transAxes,
        )

    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Wrote time-series chart %s", path)
    return path
