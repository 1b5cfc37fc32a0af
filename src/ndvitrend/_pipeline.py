"""Pipeline helpers wiring the trend stages together.

``run_trend`` is the central orchestration used by ``ndvi_trend``:
region selection → catalog search → download → cloud mask → NDVI →
annual composites → baseline differences → spatial reduction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from shapely.geometry import shape

from ndvitrend._types import Grid, MaskedScene, Region
from ndvitrend.analysis.change import difference_series
from ndvitrend.analysis.masking import mask_scene
from ndvitrend.analysis.temporal import annual_composites, in_season, season_time_range
from ndvitrend.analysis.vegetation import add_ndvi
from ndvitrend.analysis.zonal import reduce_regions
from ndvitrend.exceptions import ProviderError
from ndvitrend.region import country_union, export_features, select_region
from ndvitrend.results import ResultMetadata, TrendResult

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from ndvitrend.config import Config
    from ndvitrend.providers.base import BoundaryProvider, CatalogEntry, SceneProvider

logger = logging.getLogger(__name__)


def _footprint_intersects(entry: CatalogEntry, region: Region) -> bool:
    """Return ``True`` if the entry footprint touches the region.

    Entries without a footprint are kept; the provider search already
    bounded them by the region's bounding box.
    """
    if not entry.geometry:
        return True
    return bool(shape(entry.geometry).intersects(region.geometry))


def collect_entries(
    provider: SceneProvider,
    region: Region,
    config: Config,
) -> list[CatalogEntry]:
    """Search the archive for every scene matching region and season.

    One search is issued per year, bounded to that year's season.
    Results are filtered again on both calendar predicates and on the
    footprint, de-duplicated by product id, and ordered by acquisition
    time.

    Raises:
        ProviderError: If the archive search fails.
    """
    seen: dict[str, CatalogEntry] = {}
    for year in config.years:
        time_range = season_time_range(year, config.start_month, config.end_month)
        entries = provider.search(
            region,
            time_range,
            cloud_cover_max=config.cloud_cover_max,
        )
        logger.debug("Search %s..%s returned %d entries", *time_range, len(entries))
        for entry in entries:
            if entry.product_id in seen:
                continue
            if not in_season(
                entry.acquired,
                config.start_year,
                config.end_year,
                config.start_month,
                config.end_month,
            ):
                continue
            if not _footprint_intersects(entry, region):
                continue
            seen[entry.product_id] = entry

    collected = sorted(seen.values(), key=lambda e: (e.acquired, e.product_id))
    logger.info(
        "Collected %d scene(s) from %s for %d-%d",
        len(collected),
        provider.name,
        config.start_year,
        config.end_year,
    )
    return collected


def _index_scene(
    provider: SceneProvider,
    entry: CatalogEntry,
    grid: Grid,
    config: Config,
) -> MaskedScene:
    """Download one scene, mask clouds and shadows, and add the NDVI band."""
    bands = [config.qa_band, config.nir_band, config.red_band]
    scene = provider.download(entry, bands=bands, grid=grid)
    masked = mask_scene(scene, config.qa_band, config.qa_bits)
    logger.debug("%s: %.1f%% clear", entry.product_id, masked.clear_ratio * 100.0)
    return add_ndvi(masked, config.nir_band, config.red_band, config.ndvi_band)


def _indexed_scenes(
    provider: SceneProvider,
    entries: Sequence[CatalogEntry],
    grid: Grid,
    config: Config,
) -> Iterator[MaskedScene]:
    """Yield indexed scenes in entry order.

    With ``download_workers > 1`` downloads run on a thread pool in
    batches of that size, so at most one batch of scenes is in memory.
    """
    workers = config.download_workers
    if workers <= 1:
        for entry in entries:
            yield _index_scene(provider, entry, grid, config)
        return

    with ThreadPoolExecutor(max_workers=workers) as pool:
        for start in range(0, len(entries), workers):
            batch = entries[start : start + workers]
            yield from pool.map(lambda e: _index_scene(provider, e, grid, config), batch)


def _background(provider: BoundaryProvider, config: Config) -> BaseGeometry | None:
    """Resolve the dark map background; failures only cost the layer."""
    try:
        return country_union(provider, config.background_countries)
    except ProviderError as exc:
        logger.warning("Map background unavailable: %s", exc.what)
        return None


def run_trend(
    config: Config,
    boundary_provider: BoundaryProvider,
    scene_provider: SceneProvider,
) -> TrendResult:
    """Run the full NDVI trend workflow and return its result.

    Infrastructure errors (``ProviderError``, ``ConfigurationError``)
    propagate to the caller. Years without imagery become empty
    composites with a warning unless ``Config.fail_on_data_gap`` is set.

    Raises:
        ConfigurationError: If a region name is unknown.
        ProviderError: If the archive or boundary source fails.
        DataGapError: If ``fail_on_data_gap`` and a year has no scenes.
    """
    region = select_region(boundary_provider, config.regions)
    grid = Grid.from_bounds(region.bounds, config.scale_m, config.crs)
    logger.info(
        "Analysis grid %dx%d at %.6g %s units",
        grid.width,
        grid.height,
        grid.resolution,
        grid.crs,
    )

    entries = collect_entries(scene_provider, region, config)
    composites = annual_composites(
        _indexed_scenes(scene_provider, entries, grid, config),
        config.start_year,
        config.end_year,
        config.start_month,
        config.end_month,
        grid.shape,
        band=config.ndvi_band,
        strict=config.fail_on_data_gap,
    )
    differences = difference_series(composites, config.effective_baseline_year)

    features = export_features(region, config.export_per_feature)
    records = [
        record
        for composite in composites
        for record in reduce_regions(composite, grid, features)
    ]

    minx, miny, maxx, maxy = grid.bounds
    metadata = ResultMetadata(
        source=scene_provider.name,
        timestamps=[e.timestamp for e in entries],
        scene_count=sum(c.scene_count for c in composites),
        crs=grid.crs,
        bounds={"minx": minx, "miny": miny, "maxx": maxx, "maxy": maxy},
        resolution_m=config.scale_m,
        bands=[config.qa_band, config.nir_band, config.red_band],
    )
    warnings = [w for c in composites for w in c.warnings]

    return TrendResult(
        config=config,
        region=region,
        grid=grid,
        composites=composites,
        differences=differences,
        records=records,
        background=_background(boundary_provider, config),
        metadata=metadata,
        warnings=warnings,
    )
