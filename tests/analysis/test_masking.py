"""Tests for QA-band cloud and cloud-shadow masking."""

from datetime import datetime, timezone

import numpy as np
import pytest

from ndvitrend._types import Scene
from ndvitrend.analysis.masking import mask_scene, qa_valid_mask

CLOUD = 1 << 3
SHADOW = 1 << 4
# Bit 1 (dilated cloud) and bit 6 (clear) are not tested by the mask.
DILATED = 1 << 1
CLEAR = 1 << 6


def _scene(qa: np.ndarray) -> Scene:
    shape = qa.shape
    return Scene(
        scene_id="LC08_TEST",
        acquired=datetime(2019, 7, 1, tzinfo=timezone.utc),
        bands={
            "QA_PIXEL": qa,
            "SR_B4": np.full(shape, 1000, dtype=np.uint16),
            "SR_B5": np.full(shape, 3000, dtype=np.uint16),
        },
    )


@pytest.mark.unit
class TestQaValidMask:
    def test_cloud_and_shadow_rejected(self) -> None:
        qa = np.array([0, CLOUD, SHADOW, CLOUD | SHADOW])
        assert qa_valid_mask(qa).tolist() == [True, False, False, False]

    def test_other_bits_ignored(self) -> None:
        qa = np.array([DILATED, CLEAR, CLEAR | DILATED, 1])
        assert qa_valid_mask(qa).all()

    def test_float_qa_accepted(self) -> None:
        qa = np.array([float(CLOUD), float(CLEAR), np.nan])
        assert qa_valid_mask(qa).tolist() == [False, True, True]

    def test_custom_bits(self) -> None:
        qa = np.array([CLOUD, 1 << 5])
        assert qa_valid_mask(qa, bits=(5,)).tolist() == [True, False]


@pytest.mark.unit
class TestMaskScene:
    def test_flagged_pixels_become_nan(self) -> None:
        qa = np.array([[CLEAR, CLOUD], [SHADOW, CLEAR]], dtype=np.uint16)

        masked = mask_scene(_scene(qa))

        red = masked.bands["SR_B4"]
        assert np.isnan(red[0, 1])
        assert np.isnan(red[1, 0])
        assert red[0, 0] == 1000.0
        assert masked.clear_ratio == pytest.approx(0.5)
        assert masked.mask is not None
        assert masked.mask.tolist() == [[True, False], [False, True]]

    def test_qa_band_dropped(self) -> None:
        masked = mask_scene(_scene(np.zeros((2, 2), dtype=np.uint16)))
        assert set(masked.bands) == {"SR_B4", "SR_B5"}

    def test_integer_bands_promoted_to_float(self) -> None:
        masked = mask_scene(_scene(np.zeros((2, 2), dtype=np.uint16)))
        assert np.issubdtype(masked.bands["SR_B5"].dtype, np.floating)

    def test_source_scene_untouched(self) -> None:
        qa = np.array([[CLOUD]], dtype=np.uint16)
        scene = _scene(qa)
        mask_scene(scene)
        assert scene.bands["SR_B4"][0, 0] == 1000

    def test_missing_qa_band_raises(self) -> None:
        scene = _scene(np.zeros((1, 1)))
        del scene.bands["QA_PIXEL"]
        with pytest.raises(KeyError):
            mask_scene(scene)
