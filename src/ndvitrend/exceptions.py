"""ndvitrend exception hierarchy.

All exceptions follow a three-part message pattern: what failed,
likely cause, and suggested fix.
"""

from __future__ import annotations


class NdviTrendError(Exception):
    """Base exception for all ndvitrend errors.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.

    Example:
        >>> raise NdviTrendError(
        ...     what="Operation failed",
        ...     cause="Unexpected internal state",
        ...     fix="Please report this issue",
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
    ) -> None:
        self.what = what
        self.cause = cause
        self.fix = fix
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Build the multi-line error message from parts."""
        parts = [self.what]
        if self.cause:
            parts.append(f"Cause: {self.cause}")
        if self.fix:
            parts.append(f"Fix: {self.fix}")
        return "\n".join(parts)


class ConfigurationError(NdviTrendError):
    """Raised for invalid workflow parameters or unknown region names.

    Example:
        >>> raise ConfigurationError(
        ...     what="No boundary matches ('India', 'Panjab')",
        ...     cause="Name not present in the boundary dataset",
        ...     fix="Check the spelling against the boundary provider",
        ... )
    """


class ProviderError(NdviTrendError):
    """Raised for data provider failures after retries exhausted.

    Example:
        >>> raise ProviderError(
        ...     what="Landsat catalog search failed",
        ...     cause="HTTP 503 after 3 retries",
        ...     fix="Check Planetary Computer status",
        ... )
    """


class DataGapError(NdviTrendError):
    """Raised (or recorded as a warning) when a period has no usable scenes.

    Non-fatal by default: the pipeline records the message on the
    affected composite and continues. Set ``fail_on_data_gap`` in the
    configuration to raise instead.

    Example:
        >>> raise DataGapError(
        ...     what="No scenes for 2019",
        ...     cause="Catalog returned zero matching acquisitions",
        ...     fix="Widen the month range or raise cloud_cover_max",
        ... )
    """


class ExportError(NdviTrendError):
    """Raised when writing an output file fails.

    Example:
        >>> raise ExportError(
        ...     what="Cannot write CSV export",
        ...     cause="Permission denied: /data/out.csv",
        ...     fix="Choose a writable output directory",
        ... )
    """
