"""Provider interface contracts and shared types.

Remote state (the imagery archive and the administrative boundary
dataset) is reached only through the abstract providers defined here.
Pipeline code receives provider instances by injection, so tests can
substitute in-memory implementations.
"""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import requests

from ndvitrend.config import Config
from ndvitrend.exceptions import ProviderError

if TYPE_CHECKING:
    from ndvitrend._types import BandList, BoundaryFeature, Grid, Region, Scene, TimeRange

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Timeout and retry constants shared by HTTP-backed providers
# ---------------------------------------------------------------------------

_DEFAULT_TIMEOUT = 30  # seconds for connection/request timeout
_STATUS_TIMEOUT = 10  # shorter timeout for status checks
_READ_TIMEOUT = 300  # large GeoJSON downloads

_MAX_RETRIES = 3
_INITIAL_BACKOFF = 1.0  # seconds
_MAX_BACKOFF = 60.0  # seconds
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 408})
_SUCCESS_STATUS_CODES = frozenset({200})


@dataclass
class CatalogEntry:
    """A scene entry from a provider catalog search.

    Args:
        provider: Provider name (e.g., ``"landsat"``).
        product_id: Provider-specific unique product identifier.
        timestamp: ISO-8601 acquisition timestamp.
        cloud_cover: Scene cloud cover fraction (0.0--1.0).
        geometry: GeoJSON footprint of the scene.
        assets: Band name to asset URL.
        metadata: Additional provider-specific metadata.

    Example:
        >>> entry = CatalogEntry(
        ...     provider="landsat",
        ...     product_id="LC08_L2SP_149039_20190615_02_T1",
        ...     timestamp="2019-06-15T05:28:11Z",
        ...     cloud_cover=0.12,
        ... )
        >>> entry.acquired.year
        2019
    """

    provider: str = ""
    product_id: str = ""
    timestamp: str = ""
    cloud_cover: float = 0.0
    geometry: dict[str, Any] = field(default_factory=dict)
    assets: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def acquired(self) -> datetime:
        """Acquisition time parsed from ``timestamp`` (UTC)."""
        parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @property
    def bands_available(self) -> list[str]:
        return sorted(self.assets)


@dataclass
class ProviderStatus:
    """Operational status of a data provider.

    Args:
        available: ``True`` if the provider is operational.
        message: Human-readable status message (empty when healthy).
    """

    available: bool = False
    message: str = ""


class DataProvider(ABC):
    """Common base for scene and boundary providers.

    Holds the configuration snapshot, an optional HTTP session, and the
    retry helper used by HTTP-backed implementations.

    Args:
        config: Frozen configuration for this provider instance.
    """

    _name: str = ""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._session: requests.Session | None = None

    @property
    def name(self) -> str:
        """Provider identifier used in the registry."""
        return self._name

    @abstractmethod
    def check_status(self) -> ProviderStatus:
        """Check provider operational status.

        Never raises. Returns a ``ProviderStatus`` with
        ``available=False`` and a descriptive message on failure.
        """
        ...

    def _retry_request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> requests.Response:
        """Execute HTTP request with retry and exponential backoff.

        Args:
            method: HTTP method (``"get"``, ``"post"``, etc.).
            url: Target URL.
            **kwargs: Additional keyword arguments for ``requests.Session.request``.

        Returns:
            Successful HTTP response.

        Raises:
            ProviderError: On a non-retryable status, or once all
                retries are exhausted.
        """
        if self._session is None:
            self._session = requests.Session()
        kwargs.setdefault("timeout", (_DEFAULT_TIMEOUT, _READ_TIMEOUT))
        label = self._name or type(self).__name__
        last_status: int = 0
        last_exc: requests.RequestException | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                resp = self._session.request(method, url, **kwargs)
            except requests.RequestException as exc:
                last_exc = exc
                if attempt < _MAX_RETRIES - 1:
                    backoff = self._compute_backoff(attempt)
                    logger.warning(
                        "%s request failed (%s, attempt %d/%d), retrying in %.1fs...",
                        label,
                        type(exc).__name__,
                        attempt + 1,
                        _MAX_RETRIES,
                        backoff,
                    )
                    time.sleep(backoff)
                continue

            if resp.status_code in _SUCCESS_STATUS_CODES:
                return resp

            last_status = resp.status_code
            if resp.status_code not in _RETRYABLE_STATUS_CODES:
                raise ProviderError(
                    what=f"{label} request failed",
                    cause=f"HTTP {resp.status_code} from {url}",
                    fix="Check the provider service status and request parameters",
                )

            if attempt < _MAX_RETRIES - 1:
                backoff = self._compute_backoff(attempt)
                logger.warning(
                    "%s request failed (HTTP %d, attempt %d/%d), retrying in %.1fs...",
                    label,
                    resp.status_code,
                    attempt + 1,
                    _MAX_RETRIES,
                    backoff,
                )
                time.sleep(backoff)

        if last_exc is not None:
            raise ProviderError(
                what=f"{label} request failed after retries",
                cause=str(last_exc),
                fix="Check internet connection and try again",
            ) from last_exc

        raise ProviderError(
            what=f"{label} request failed after retries",
            cause=f"HTTP {last_status} after {_MAX_RETRIES} retries",
            fix="Try again later; the provider may be overloaded",
        )

    @staticmethod
    def _compute_backoff(attempt: int) -> float:
        """Compute exponential backoff with jitter.

        Args:
            attempt: Zero-based attempt index.

        Returns:
            Wait time in seconds (randomized).
        """
        base_delay: float = min(_INITIAL_BACKOFF * (2**attempt), _MAX_BACKOFF)
        jitter: float = random.uniform(0, base_delay * 0.1)  # noqa: S311
        return float(base_delay + jitter)


class SceneProvider(DataProvider):
    """Read-only access to a satellite image archive.

    Implementations search a catalog and resample the requested bands
    of a scene onto the analysis ``Grid``.
    """

    @abstractmethod
    def search(
        self,
        region: Region,
        time_range: TimeRange,
        **params: Any,
    ) -> list[CatalogEntry]:
        """Search the archive for scenes intersecting *region*.

        Returns an empty list when no data matches the query. Never
        raises on missing data, only on infrastructure failures.

        Args:
            region: Resolved analysis region.
            time_range: ISO-8601 date pair ``(start, end)``, inclusive.
            **params: Provider-specific search parameters.

        Returns:
            Matching catalog entries, empty if none found.
        """
        ...

    @abstractmethod
    def download(
        self,
        entry: CatalogEntry,
        bands: BandList,
        grid: Grid,
    ) -> Scene:
        """Fetch *bands* of *entry* resampled onto *grid*.

        Raises:
            ProviderError: If the scene cannot be read after retries.
        """
        ...


class BoundaryProvider(DataProvider):
    """Read-only access to an administrative boundary dataset."""

    @abstractmethod
    def features(self, country: str, level: int = 1) -> list[BoundaryFeature]:
        """Return the boundary features of *country* at admin *level*.

        Level 0 yields the country outline as a single feature. Returns
        an empty list for an unknown country.

        Raises:
            ProviderError: If the dataset cannot be fetched.
        """
        ...
