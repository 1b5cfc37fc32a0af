"""Workflow configuration for ndvitrend.

Every parameter of the analysis (years, season months, region names,
QA bit positions, band names, resolution, baseline year, rendering and
export settings) lives on one frozen ``Config`` so it can be adjusted
from a JSON file without code changes.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from ndvitrend.exceptions import ConfigurationError

logger = logging.getLogger("ndvitrend")

_CONFIG_ENV_VAR = "NDVITREND_CONFIG"
_DEFAULT_CONFIG_PATH = Path("~/.ndvitrend/config.json")

_MAX_QA_BIT = 15


class Config(BaseModel):
    """Analysis configuration model.

    Immutable pydantic model. Defaults reproduce the rice-season
    (June--October) NDVI trend over Punjab and Haryana, 2018--2023,
    from Landsat 8 Collection 2 Level-2 surface reflectance.

    Args:
        start_year: First year of the analysis window (inclusive).
        end_year: Last year of the analysis window (inclusive).
        start_month: First month of the season within each year.
        end_month: Last month of the season within each year.
        regions: ``(country, admin-1 name)`` pairs merged into the region.
        background_countries: Countries drawn as the dark map background.
        qa_band: Name of the quality-assessment band.
        cloud_bit: QA bit flagging cloud.
        shadow_bit: QA bit flagging cloud shadow.
        nir_band: Near-infrared band name.
        red_band: Red band name.
        ndvi_band: Name given to the derived NDVI band.
        scale_m: Nominal resolution in metres per pixel.
        crs: Coordinate reference system for the analysis grid.
        baseline_year: Year subtracted in difference layers
            (defaults to ``start_year``).
        vis_min: Lower end of the difference color ramp.
        vis_max: Upper end of the difference color ramp.
        palette: Color stops of the difference ramp.
        chart_title: Title of the time-series chart.
        export_name: CSV file name (without extension).
        export_per_feature: Export one row per admin feature instead of
            one row for the merged region.
        output_dir: Directory for written outputs.
        boundary_provider: Registry name of the boundary provider.
        boundary_file: GeoJSON path for the ``local`` boundary provider.
        scene_provider: Registry name of the imagery provider.
        cloud_cover_max: Scene-level cloud cover ceiling (0.0--1.0)
            applied at catalog search.
        download_workers: Threads used to fetch and index scenes.
        fail_on_data_gap: Raise ``DataGapError`` on a year without scenes.

    Example:
        >>> cfg = Config(start_year=2019, end_year=2021)
        >>> cfg.effective_baseline_year
        2019
    """

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    start_year: int = 2018
    end_year: int = 2023
    start_month: int = 6
    end_month: int = 10
    regions: tuple[tuple[str, str], ...] = (("India", "Punjab"), ("India", "Haryana"))
    background_countries: tuple[str, ...] = ("India", "Pakistan", "Nepal", "China")

    qa_band: str = "QA_PIXEL"
    cloud_bit: int = 3
    shadow_bit: int = 4
    nir_band: str = "SR_B5"
    red_band: str = "SR_B4"
    ndvi_band: str = "NDVI"

    scale_m: float = 500.0
    crs: str = "EPSG:4326"
    baseline_year: int | None = None

    vis_min: float = -0.3
    vis_max: float = 0.3
    palette: tuple[str, ...] = ("yellow", "grey", "red")
    chart_title: str = "NDVI Time Series for Rice Crop (2018-2024) in Punjab and Haryana"

    export_name: str = "Rice_NDVI_TimeSeries_2018_2024"
    export_per_feature: bool = False
    output_dir: Path = Path(".")

    boundary_provider: str = "geoboundaries"
    boundary_file: Path | None = None
    scene_provider: str = "landsat"
    cloud_cover_max: float = 1.0
    download_workers: int = 1
    fail_on_data_gap: bool = False

    @field_validator("start_month", "end_month")
    @classmethod
    def _validate_month(cls, v: int) -> int:
        if not 1 <= v <= 12:
            msg = "month must be between 1 and 12"
            raise ValueError(msg)
        return v

    @field_validator("cloud_bit", "shadow_bit")
    @classmethod
    def _validate_bit(cls, v: int) -> int:
        if not 0 <= v <= _MAX_QA_BIT:
            msg = f"QA bit position must be between 0 and {_MAX_QA_BIT}"
            raise ValueError(msg)
        return v

    @field_validator("scale_m")
    @classmethod
    def _validate_scale(cls, v: float) -> float:
        if v <= 0:
            msg = "scale_m must be greater than 0"
            raise ValueError(msg)
        return v

    @field_validator("crs")
    @classmethod
    def _validate_crs(cls, v: str) -> str:
        """Ensure CRS matches EPSG format."""
        if not re.match(r"^EPSG:\d+$", v):
            msg = "crs must match 'EPSG:<number>' format"
            raise ValueError(msg)
        return v

    @field_validator("regions")
    @classmethod
    def _validate_regions(
        cls, v: tuple[tuple[str, str], ...]
    ) -> tuple[tuple[str, str], ...]:
        if not v:
            msg = "regions must name at least one (country, region) pair"
            raise ValueError(msg)
        return v

    @field_validator("palette")
    @classmethod
    def _validate_palette(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(v) < 2:
            msg = "palette needs at least two colors"
            raise ValueError(msg)
        return v

    @field_validator("cloud_cover_max")
    @classmethod
    def _validate_cloud_cover(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            msg = "cloud_cover_max must be between 0.0 and 1.0"
            raise ValueError(msg)
        return v

    @field_validator("download_workers")
    @classmethod
    def _validate_workers(cls, v: int) -> int:
        if v < 1:
            msg = "download_workers must be at least 1"
            raise ValueError(msg)
        return v

    @field_validator("boundary_file", "output_dir", mode="before")
    @classmethod
    def _expand_paths(cls, v: str | Path | None) -> Path | None:
        """Expand ``~`` in file system paths."""
        if v is None:
            return None
        return Path(v).expanduser()

    @model_validator(mode="after")
    def _validate_ranges(self) -> Config:
        if self.start_year > self.end_year:
            msg = "start_year must not be after end_year"
            raise ValueError(msg)
        # Seasons that wrap across a year boundary (e.g. Dec--Feb) would
        # assign scenes to the wrong composite year.
        if self.start_month > self.end_month:
            msg = "start_month must not be after end_month (cross-year seasons are unsupported)"
            raise ValueError(msg)
        if self.baseline_year is not None and not (
            self.start_year <= self.baseline_year <= self.end_year
        ):
            msg = "baseline_year must fall within [start_year, end_year]"
            raise ValueError(msg)
        if self.cloud_bit == self.shadow_bit:
            msg = "cloud_bit and shadow_bit must differ"
            raise ValueError(msg)
        if self.vis_min >= self.vis_max:
            msg = "vis_min must be lower than vis_max"
            raise ValueError(msg)
        return self

    @property
    def years(self) -> list[int]:
        """Every year in the analysis window, ascending."""
        return list(range(self.start_year, self.end_year + 1))

    @property
    def effective_baseline_year(self) -> int:
        return self.baseline_year if self.baseline_year is not None else self.start_year

    @property
    def qa_bits(self) -> tuple[int, int]:
        return (self.cloud_bit, self.shadow_bit)


_default_config = Config()


def configure(**kwargs: Any) -> None:
    """Set module-level default configuration.

    Creates a new ``Config`` from the current defaults merged with
    the provided keyword arguments.

    Args:
        **kwargs: Any ``Config`` field (e.g. ``start_year``, ``scale_m``).

    Raises:
        ValidationError: If a provided value fails pydantic validation.

    Example:
        >>> configure(start_year=2019, end_year=2022)
    """
    global _default_config  # noqa: PLW0603
    current = _default_config.model_dump()
    current.update(kwargs)
    _default_config = Config(**current)


def get_default_config() -> Config:
    """Return the current module-level default configuration."""
    return _default_config


def resolve_config_path(explicit: Path | None = None) -> Path | None:
    """Resolve the configuration file path.

    Resolution order:
        1. *explicit* argument (highest priority)
        2. ``NDVITREND_CONFIG`` environment variable
        3. Default ``~/.ndvitrend/config.json``

    Args:
        explicit: A path passed on the command line.

    Returns:
        Resolved ``Path``, or ``None`` if no file exists at the chosen
        location.
    """
    if explicit is not None:
        path = Path(explicit).expanduser()
    elif os.environ.get(_CONFIG_ENV_VAR):
        path = Path(os.environ[_CONFIG_ENV_VAR]).expanduser()
    else:
        path = _DEFAULT_CONFIG_PATH.expanduser()

    if not path.exists():
        logger.debug("No configuration file at %s", path)
        return None
    return path


def load_config(path: Path, **overrides: Any) -> Config:
    """Load a ``Config`` from a JSON file.

    Args:
        path: Absolute or ``~``-expanded path to the JSON file.
        **overrides: Field values applied on top of the file contents.

    Returns:
        Validated configuration.

    Raises:
        ConfigurationError: If the file is missing, is not a JSON
            object, or fails validation.
    """
    resolved = Path(path).expanduser()
    try:
        text = resolved.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(
            what="Cannot read configuration file",
            cause=f"File not found: {resolved}",
            fix=f"Create {resolved} or set the {_CONFIG_ENV_VAR} environment variable",
        ) from None
    except PermissionError:
        raise ConfigurationError(
            what="Cannot read configuration file",
            cause=f"Permission denied: {resolved}",
            fix=f"Check file permissions on {resolved}",
        ) from None

    try:
        parsed: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            what="Invalid configuration file format",
            cause=f"JSON parse error in {resolved}: {exc}",
            fix='Ensure the file contains a JSON object such as {"start_year": 2018}',
        ) from None

    if not isinstance(parsed, dict):
        raise ConfigurationError(
            what="Invalid configuration file format",
            cause=f"Expected a JSON object in {resolved}, got {type(parsed).__name__}",
            fix='Ensure the file contains a JSON object such as {"start_year": 2018}',
        )

    parsed.update(overrides)
    return build_config(**parsed)


def build_config(**values: Any) -> Config:
    """Construct a ``Config``, converting validation failures.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    try:
        return Config(**values)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "config" for err in exc.errors()
        )
        raise ConfigurationError(
            what="Invalid analysis configuration",
            cause=f"Rejected field(s): {fields}\n{exc}",
            fix="Correct the listed fields in the configuration file or arguments",
        ) from None
