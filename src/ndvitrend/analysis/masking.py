"""Quality-band cloud masking.

Pure computation module: numpy arrays in, numpy arrays out.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from ndvitrend._types import MaskedScene, Scene

# Landsat Collection 2 QA_PIXEL bit positions.
CLOUD_BIT: int = 3
CLOUD_SHADOW_BIT: int = 4


def qa_valid_mask(
    qa: npt.NDArray[Any],
    bits: Sequence[int] = (CLOUD_BIT, CLOUD_SHADOW_BIT),
) -> npt.NDArray[np.bool_]:
    """Return ``True`` where every flag in *bits* is unset.

    Args:
        qa: Quality band, integer or integral float values.
        bits: Bit positions that mark a pixel invalid when set.

    Returns:
        Boolean validity mask with the shape of *qa*.

    Example:
        >>> import numpy as np
        >>> qa_valid_mask(np.array([0, 1 << 3, 1 << 4, 1 << 5]))
        array([ True, False, False,  True])
    """
    flags = 0
    for bit in bits:
        flags |= 1 << bit
    qa_int = np.nan_to_num(np.asarray(qa, dtype=np.float64), nan=0.0).astype(np.int64)
    valid: npt.NDArray[np.bool_] = (qa_int & flags) == 0
    return valid


def mask_scene(
    scene: Scene,
    qa_band: str = "QA_PIXEL",
    bits: Sequence[int] = (CLOUD_BIT, CLOUD_SHADOW_BIT),
) -> MaskedScene:
    """Set pixels flagged in *qa_band* to NaN in every spectral band.

    The quality band itself is dropped from the output because it is
    classification metadata, not reflectance data.

    Args:
        scene: Scene whose ``bands`` include *qa_band*.
        qa_band: Name of the quality band.
        bits: QA bit positions to reject (cloud and cloud shadow).

    Returns:
        ``MaskedScene`` with float spectral bands, the validity mask,
        and the clear-pixel ratio.

    Raises:
        KeyError: If *qa_band* is not among the scene's bands.
    """
    qa = scene.bands[qa_band]
    valid = qa_valid_mask(qa, bits)
    clear_ratio = float(np.count_nonzero(valid)) / valid.size if valid.size else 0.0

    spectral: dict[str, npt.NDArray[np.floating[Any]]] = {}
    for name, array in scene.bands.items():
        if name == qa_band:
            continue
        out_dtype = array.dtype if np.issubdtype(array.dtype, np.floating) else np.float64
        band = array.astype(out_dtype, copy=True)
        band[~valid] = np.nan
        spectral[name] = band

    return MaskedScene(
        scene_id=scene.scene_id,
        acquired=scene.acquired,
        bands=spectral,
        mask=valid,
        clear_ratio=clear_ratio,
    )
