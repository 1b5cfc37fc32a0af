"""Top-level API for NDVI trend runs.

Example:
    >>> import ndvitrend as nt
    >>> result = nt.ndvi_trend()  # doctest: +SKIP
    >>> result.to_csv("out/")  # doctest: +SKIP
    >>>
    >>> # Narrower run with an explicit configuration
    >>> cfg = nt.Config(start_year=2018, end_year=2020)
    >>> result = nt.ndvi_trend(cfg)  # doctest: +SKIP
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ndvitrend._pipeline import run_trend
from ndvitrend.config import get_default_config
from ndvitrend.providers import get_boundary_provider, get_scene_provider

if TYPE_CHECKING:
    from ndvitrend.config import Config
    from ndvitrend.providers.base import BoundaryProvider, SceneProvider
    from ndvitrend.results import TrendResult


def ndvi_trend(
    config: Config | None = None,
    *,
    boundary_provider: BoundaryProvider | None = None,
    scene_provider: SceneProvider | None = None,
) -> TrendResult:
    """Compute the seasonal NDVI trend of the configured region.

    Resolves the region polygons, collects cloud-masked Landsat scenes
    for each year's season, builds one mean NDVI composite per year,
    differences each year against the baseline, and reduces every
    composite to a spatial mean per region feature.

    Args:
        config: Run configuration. Defaults to the global configuration
            set with ``configure()``.
        boundary_provider: Boundary source. Defaults to the provider
            named by ``Config.boundary_provider``.
        scene_provider: Imagery source. Defaults to the provider named
            by ``Config.scene_provider``.

    Returns:
        TrendResult holding composites, differences, and export records.

    Raises:
        ConfigurationError: If a region or provider name is unknown.
        ProviderError: If a remote source fails after retries.
        DataGapError: If ``fail_on_data_gap`` and a year has no scenes.
    """
    cfg = config if config is not None else get_default_config()
    if boundary_provider is None:
        boundary_provider = get_boundary_provider(cfg.boundary_provider, cfg)
    if scene_provider is None:
        scene_provider = get_scene_provider(cfg.scene_provider, cfg)
    return run_trend(cfg, boundary_provider, scene_provider)
