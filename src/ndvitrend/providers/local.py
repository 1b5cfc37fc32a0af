"""Administrative boundaries from a local GeoJSON file.

The file is expected to use FAO GAUL attribute names: ``ADM0_NAME`` for
the country and ``ADM1_NAME`` / ``ADM2_NAME`` for lower levels. A GAUL
level-1 export therefore works unchanged, and level-0 outlines are
dissolved from its features.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from shapely.geometry import shape
from shapely.ops import unary_union

from ndvitrend._types import BoundaryFeature
from ndvitrend.config import Config
from ndvitrend.exceptions import ConfigurationError
from ndvitrend.providers.base import BoundaryProvider, ProviderStatus

logger = logging.getLogger(__name__)

_COUNTRY_FIELD = "ADM0_NAME"
_LEVEL_FIELDS: dict[int, str] = {1: "ADM1_NAME", 2: "ADM2_NAME"}


class LocalBoundaryProvider(BoundaryProvider):
    """Boundary provider reading ``Config.boundary_file``.

    Args:
        config: Frozen configuration snapshot with ``boundary_file`` set.
    """

    _name: str = "local"

    def __init__(self, config: Config) -> None:
        super().__init__(config)
        self._collection: list[dict[str, Any]] | None = None

    @property
    def path(self) -> Path | None:
        return self._config.boundary_file

    def _load(self) -> list[dict[str, Any]]:
        if self._collection is not None:
            return self._collection

        path = self.path
        if path is None:
            raise ConfigurationError(
                what="No boundary file configured",
                cause="boundary_provider is 'local' but boundary_file is unset",
                fix="Set boundary_file to a GeoJSON FeatureCollection",
            )
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigurationError(
                what="Cannot read boundary file",
                cause=f"File not found: {path}",
                fix="Point boundary_file at an existing GeoJSON file",
            ) from None
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                what="Invalid boundary file",
                cause=f"JSON parse error in {path}: {exc}",
                fix="Ensure boundary_file is a GeoJSON FeatureCollection",
            ) from None

        self._collection = [f for f in data.get("features", []) if f.get("geometry")]
        logger.debug("Loaded %d boundary features from %s", len(self._collection), path)
        return self._collection

    def features(self, country: str, level: int = 1) -> list[BoundaryFeature]:
        """Return the features of *country* at *level*.

        Level 0 dissolves every feature of the country into one outline.
        """
        wanted = country.strip().lower()
        matches = [
            f
            for f in self._load()
            if str((f.get("properties") or {}).get(_COUNTRY_FIELD, "")).strip().lower()
            == wanted
        ]
        if not matches:
            return []

        if level == 0:
            outline = unary_union([shape(f["geometry"]) for f in matches])
            return [BoundaryFeature(country=country, name=country, geometry=outline)]

        field = _LEVEL_FIELDS.get(level)
        if field is None:
            raise ConfigurationError(
                what=f"Unsupported admin level: {level}",
                cause=f"Local boundary files carry levels 0-{max(_LEVEL_FIELDS)}",
                fix="Use level 0, 1 or 2",
            )
        return [
            BoundaryFeature(
                country=country,
                name=str(f["properties"].get(field, "")),
                geometry=shape(f["geometry"]),
            )
            for f in matches
        ]

    def check_status(self) -> ProviderStatus:
        path = self.path
        if path is None:
            return ProviderStatus(available=False, message="boundary_file is not set")
        if not path.exists():
            return ProviderStatus(available=False, message=f"{path} does not exist")
        return ProviderStatus(available=True)
