"""Vegetation index computation.

Pure computation module: no HTTP, no provider interaction.
Takes numpy arrays in, returns numpy arrays out.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import numpy as np
import numpy.typing as npt

from ndvitrend._types import MaskedScene


def compute_ndvi(
    red: npt.NDArray[np.floating[Any]],
    nir: npt.NDArray[np.floating[Any]],
) -> npt.NDArray[np.floating[Any]]:
    """Compute Normalised Difference Vegetation Index (NDVI).

    NDVI = (NIR - Red) / (NIR + Red).  Masked (NaN) pixels propagate
    to NaN in the output.  Where ``nir + red == 0`` the result is NaN
    (avoids division-by-zero).

    Parameters:
        red: Red band array (Landsat 8 SR_B4), shape ``(H, W)``.
        nir: Near-infrared band array (Landsat 8 SR_B5), same shape.

    Returns:
        NDVI array with the same shape as the inputs, floating dtype.
        Values are in ``[-1, 1]`` for non-negative inputs and are not
        clipped otherwise; ``NaN`` where no value can be computed.

    Example:
        >>> import numpy as np
        >>> red = np.array([[0.1, 0.2]], dtype=np.float32)
        >>> nir = np.array([[0.5, 0.4]], dtype=np.float32)
        >>> compute_ndvi(red, nir).shape
        (1, 2)
    """
    red_f = red.astype(np.float64)
    nir_f = nir.astype(np.float64)

    denominator = nir_f + red_f

    with np.errstate(divide="ignore", invalid="ignore"):
        ndvi: npt.NDArray[np.floating[Any]] = np.where(
            denominator == 0.0,
            np.nan,
            (nir_f - red_f) / denominator,
        )

    out_dtype = red.dtype if np.issubdtype(red.dtype, np.floating) else np.float64
    return ndvi.astype(out_dtype)


def add_ndvi(
    masked: MaskedScene,
    nir_band: str = "SR_B5",
    red_band: str = "SR_B4",
    name: str = "NDVI",
) -> MaskedScene:
    """Return a copy of *masked* with an NDVI band appended as *name*.

    Raises:
        KeyError: If either input band is missing.
    """
    ndvi = compute_ndvi(masked.bands[red_band], masked.bands[nir_band])
    return replace(masked, bands={**masked.bands, name: ndvi})
