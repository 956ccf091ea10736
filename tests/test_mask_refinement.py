"""Tests for mask refinement."""

import numpy as np
import pytest

from imagevec.exceptions import MaskDimensionMismatch
from imagevec.models.float_mask import FloatMask
from imagevec.models.image import PixelBuffer
from imagevec.services.mask_refinement_service import MaskRefinementService


def _image(height=30, width=40):
    rng = np.random.default_rng(1)
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    return PixelBuffer(pixels=pixels, has_alpha=False)


def test_output_matches_image_size_for_smaller_mask():
    image = _image(30, 40)
    mask = FloatMask(np.ones((10, 10), dtype=np.float32))

    result = MaskRefinementService().refine(image, mask)

    assert result.pixels.shape == (30, 40, 4)
    assert np.array_equal(result.rgb, image.rgb)
    assert result.has_alpha


def test_full_and_empty_masks():
    image = _image()
    service = MaskRefinementService()

    opaque = service.refine(image, np.ones((30, 40), dtype=np.float32))
    clear = service.refine(image, np.zeros((15, 20), dtype=np.float32))

    assert (opaque.alpha == 255).all()
    assert (clear.alpha == 0).all()


def test_input_alpha_untouched():
    image = _image()
    before = image.pixels.copy()
    MaskRefinementService().refine(image, np.zeros((30, 40), dtype=np.float32))
    assert np.array_equal(image.pixels, before)


def test_to_u8_rounds_and_clips():
    values = np.array([[0.5, 1.5, -1.0, 1.0]], dtype=np.float32)
    assert MaskRefinementService.to_u8(values).tolist() == [[128, 255, 0, 255]]


def test_feathering_pulls_soft_edges_down():
    service = MaskRefinementService(blur_kernel=1, close_kernel=1, feather_power=2.0)
    alpha = service.refine_alpha(np.full((5, 5), 128, dtype=np.uint8))
    # (128/255)^2 * 255 ≈ 64.25
    assert (alpha == 64).all()


def test_invalid_parameters():
    with pytest.raises(ValueError):
        MaskRefinementService(blur_kernel=4)
    with pytest.raises(ValueError):
        MaskRefinementService(close_kernel=5)
    with pytest.raises(ValueError):
        MaskRefinementService(feather_power=0)


def test_mask_must_be_two_dimensional():
    with pytest.raises(MaskDimensionMismatch):
        FloatMask(np.ones((4, 4, 1), dtype=np.float32))
    with pytest.raises(MaskDimensionMismatch):
        FloatMask(np.ones((0, 4), dtype=np.float32))
