"""ndvitrend: seasonal NDVI trend analysis from Landsat surface reflectance.

Example:
    >>> import ndvitrend as nt
    >>>
    >>> # Punjab and Haryana, June to October, 2018 onwards
    >>> result = nt.ndvi_trend()
    >>> result.to_csv("out/")
    >>> result.to_html("out/")
"""

from ndvitrend.__about__ import __version__
from ndvitrend.api import ndvi_trend
from ndvitrend.config import Config, configure, load_config
from ndvitrend.exceptions import (
    ConfigurationError,
    DataGapError,
    ExportError,
    NdviTrendError,
    ProviderError,
)
from ndvitrend.results import ResultMetadata, TrendResult

__all__ = [
    # Version
    "__version__",
    # API
    "ndvi_trend",
    # Configuration
    "Config",
    "configure",
    "load_config",
    # Results
    "ResultMetadata",
    "TrendResult",
    # Exceptions
    "ConfigurationError",
    "DataGapError",
    "ExportError",
    "NdviTrendError",
    "ProviderError",
]
