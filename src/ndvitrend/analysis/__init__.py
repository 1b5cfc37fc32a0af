"""Pure transform stages of the NDVI trend workflow."""

from ndvitrend.analysis.change import difference_series
from ndvitrend.analysis.masking import mask_scene, qa_valid_mask
from ndvitrend.analysis.temporal import annual_composites, in_season
from ndvitrend.analysis.vegetation import add_ndvi, compute_ndvi
from ndvitrend.analysis.zonal import reduce_regions

__all__ = [
    "add_ndvi",
    "annual_composites",
    "compute_ndvi",
    "difference_series",
    "in_season",
    "mask_scene",
    "qa_valid_mask",
    "reduce_regions",
]
