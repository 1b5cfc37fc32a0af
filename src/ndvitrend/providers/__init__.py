"""Provider registry for data source access.

Provides ``get_scene_provider()`` and ``get_boundary_provider()`` to
instantiate configured provider instances by name. Supports Landsat 8
(via Planetary Computer) for imagery, and geoBoundaries or a local
GeoJSON file for administrative boundaries.
"""

from __future__ import annotations

from ndvitrend.config import Config
from ndvitrend.exceptions import ConfigurationError
from ndvitrend.providers.base import BoundaryProvider, DataProvider, SceneProvider

_SCENE_REGISTRY: dict[str, type[SceneProvider]] = {}
_BOUNDARY_REGISTRY: dict[str, type[BoundaryProvider]] = {}
_REGISTRY_INITIALIZED = False


def _init_registry() -> None:
    """Populate the provider registries on first use (lazy import)."""
    global _REGISTRY_INITIALIZED  # noqa: PLW0603
    if _REGISTRY_INITIALIZED:
        return

    from ndvitrend.providers.geoboundaries import GeoBoundariesProvider  # noqa: PLC0415
    from ndvitrend.providers.landsat import LandsatProvider  # noqa: PLC0415
    from ndvitrend.providers.local import LocalBoundaryProvider  # noqa: PLC0415

    _SCENE_REGISTRY.update({"landsat": LandsatProvider})
    _BOUNDARY_REGISTRY.update(
        {
            "geoboundaries": GeoBoundariesProvider,
            "local": LocalBoundaryProvider,
        }
    )
    _REGISTRY_INITIALIZED = True


def get_registered_names() -> dict[str, list[str]]:
    """Return sorted provider names, keyed by ``"scene"`` and ``"boundary"``."""
    _init_registry()
    return {
        "scene": sorted(_SCENE_REGISTRY),
        "boundary": sorted(_BOUNDARY_REGISTRY),
    }


def _lookup(
    registry: dict[str, type[DataProvider]], kind: str, name: str, config: Config
) -> DataProvider:
    key = name.lower()
    if key not in registry:
        valid = ", ".join(sorted(registry))
        raise ConfigurationError(
            what=f"Unknown {kind} provider: {name!r}",
            cause=f"Valid {kind} providers are: {valid}",
            fix=f"Use one of: {valid}",
        )
    return registry[key](config=config)


def get_scene_provider(name: str, config: Config) -> SceneProvider:
    """Return a configured imagery provider by (case-insensitive) name.

    Raises:
        ConfigurationError: If *name* does not match a registered provider.

    Example:
        >>> provider = get_scene_provider("landsat", Config())
        >>> provider.name
        'landsat'
    """
    _init_registry()
    provider = _lookup(_SCENE_REGISTRY, "scene", name, config)  # type: ignore[arg-type]
    assert isinstance(provider, SceneProvider)
    return provider


def get_boundary_provider(name: str, config: Config) -> BoundaryProvider:
    """Return a configured boundary provider by (case-insensitive) name.

    Raises:
        ConfigurationError: If *name* does not match a registered provider.
    """
    _init_registry()
    provider = _lookup(_BOUNDARY_REGISTRY, "boundary", name, config)  # type: ignore[arg-type]
    assert isinstance(provider, BoundaryProvider)
    return provider


__all__ = [
    "BoundaryProvider",
    "DataProvider",
    "SceneProvider",
    "get_boundary_provider",
    "get_registered_names",
    "get_scene_provider",
]
