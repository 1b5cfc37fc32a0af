"""Region selection from administrative boundaries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from shapely.ops import unary_union

from ndvitrend._types import BoundaryFeature, Region
from ndvitrend.exceptions import ConfigurationError

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from ndvitrend.providers.base import BoundaryProvider

logger = logging.getLogger(__name__)


def _normalise(name: str) -> str:
    return name.strip().casefold()


def select_region(
    provider: BoundaryProvider,
    pairs: Iterable[tuple[str, str]],
    level: int = 1,
) -> Region:
    """Resolve ``(country, admin name)`` pairs into one merged ``Region``.

    Names are matched exactly after trimming and case folding. A pair
    that matches several features (multi-part admin units) contributes
    all of them.

    Args:
        provider: Boundary dataset to query.
        pairs: ``(country, region)`` name pairs, e.g. ``("India", "Punjab")``.
        level: Administrative level of the region names.

    Returns:
        Region holding the matched features and their union.

    Raises:
        ConfigurationError: If no pair is given or any pair matches
            nothing in the dataset.

    Example:
        >>> region = select_region(provider, [("India", "Punjab")])  # doctest: +SKIP
        >>> region.name
        'Punjab'
    """
    pairs = list(pairs)
    if not pairs:
        raise ConfigurationError(
            what="No region names given",
            fix="Configure at least one (country, region) pair",
        )

    matched: list[BoundaryFeature] = []
    for country, name in pairs:
        candidates = provider.features(country, level=level)
        hits = [f for f in candidates if _normalise(f.name) == _normalise(name)]
        if not hits:
            known = sorted({f.name for f in candidates})
            hint = f"Known names: {', '.join(known[:12])}" if known else (
                f"The dataset has no level-{level} features for {country!r}"
            )
            raise ConfigurationError(
                what=f"No boundary matches ({country!r}, {name!r})",
                cause=hint,
                fix="Check the region and country spelling in the configuration",
            )
        matched.extend(hits)

    geometry = unary_union([f.geometry for f in matched])
    logger.info(
        "Resolved region %s from %d feature(s), bounds=%s",
        "+".join(name for _, name in pairs),
        len(matched),
        tuple(round(b, 4) for b in geometry.bounds),
    )
    return Region(features=tuple(matched), geometry=geometry)


def country_union(provider: BoundaryProvider, countries: Iterable[str]) -> BaseGeometry:
    """Return the union of the level-0 outlines of *countries*.

    Unknown countries are skipped with a warning: the result only feeds
    the cosmetic map background.
    """
    geometries: list[BaseGeometry] = []
    for country in countries:
        outlines = provider.features(country, level=0)
        if not outlines:
            logger.warning("No outline found for background country %r", country)
            continue
        geometries.extend(f.geometry for f in outlines)
    return unary_union(geometries)


def export_features(region: Region, per_feature: bool) -> list[BoundaryFeature]:
    """Return the features the exporter reduces over.

    By default the merged region is exported as one feature named after
    its parts. With *per_feature* each admin feature is reduced on its
    own, with duplicate names merged.
    """
    if not per_feature:
        return [
            BoundaryFeature(
                country=region.features[0].country if region.features else "",
                name=region.name,
                geometry=region.geometry,
            )
        ]

    grouped: dict[str, list[BoundaryFeature]] = {}
    for feature in region.features:
        grouped.setdefault(feature.name, []).append(feature)
    return [
        BoundaryFeature(
            country=parts[0].country,
            name=name,
            geometry=unary_union([p.geometry for p in parts]),
        )
        for name, parts in grouped.items()
    ]
