"""Tests for the OpenCV heuristic background remover."""

import cv2
import numpy as np

from imagevec.models.image import PixelBuffer
from imagevec.services.heuristic_segmentation_service import (
    METHOD_GRABCUT,
    METHOD_THRESHOLD,
    HeuristicSegmentationService,
)
from imagevec.services.image_service import ImageService


def test_auto_picks_threshold_for_white_bordered_disc(disc_jpeg_bytes):
    """End-to-end: JPEG disc on white → threshold method, transparent corners, opaque centre."""
    image = ImageService().decode(disc_jpeg_bytes, "disc.jpg")
    service = HeuristicSegmentationService()
    bgr = ImageService.to_bgr(image)

    assert service.background_uniformity(bgr) > 0.85
    assert service.detect_method(bgr) == METHOD_THRESHOLD

    result = service.remove_background(image, "auto")

    assert result.has_alpha
    assert result.alpha[0, 0] == 0
    assert result.alpha[99, 99] == 0
    assert result.alpha[50, 50] == 255
    assert np.array_equal(result.rgb, image.rgb)


def test_uniformity_drops_for_noisy_border():
    rng = np.random.default_rng(0)
    noisy = rng.integers(0, 256, size=(60, 60, 3), dtype=np.uint8)
    assert HeuristicSegmentationService.background_uniformity(noisy) < 0.85


def test_edge_ratio_of_flat_image_is_zero():
    flat = np.full((40, 40, 3), 128, dtype=np.uint8)
    assert HeuristicSegmentationService.edge_ratio(flat) == 0.0


def test_contour_fills_largest_shape():
    bgr = np.full((80, 80, 3), 255, dtype=np.uint8)
    cv2.rectangle(bgr, (20, 20), (59, 59), (0, 0, 0), thickness=2)

    mask = HeuristicSegmentationService().contour_mask(bgr)

    assert mask[40, 40] == 255
    assert mask[2, 2] == 0


def test_unknown_method_falls_back_to_grabcut():
    bgr = np.zeros((30, 30, 3), dtype=np.uint8)
    assert HeuristicSegmentationService().resolve_method("magic-wand", bgr) == METHOD_GRABCUT


def test_grabcut_on_tiny_image_keeps_everything():
    image = PixelBuffer(pixels=np.full((2, 2, 4), 128, dtype=np.uint8), has_alpha=False)
    mask, used = HeuristicSegmentationService().create_mask(image, METHOD_GRABCUT)
    assert used == METHOD_GRABCUT
    assert (mask == 255).all()


def _nested_squares():
    """white ⊃ black ⊃ white ⊃ black, each band 10 px wide."""
    binary = np.zeros((100, 100), dtype=np.uint8)
    binary[10:90, 10:90] = 255
    binary[20:80, 20:80] = 0
    binary[30:70, 30:70] = 255
    binary[40:60, 40:60] = 0
    contours, hierarchy = cv2.findContours(binary, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
    tree = hierarchy[0]
    outer = [i for i in range(len(contours)) if tree[i][3] == -1][0]
    return contours, tree, outer


def test_holes_and_islands_alternate_by_depth():
    contours, tree, outer = _nested_squares()
    mask = np.zeros((100, 100), dtype=np.uint8)
    cv2.drawContours(mask, contours, outer, 255, thickness=cv2.FILLED)

    drawn = HeuristicSegmentationService().cut_holes(mask, contours, tree, outer, depth=1)

    assert drawn == 3
    assert mask[15, 15] == 255
    assert mask[25, 25] == 0
    assert mask[35, 35] == 255
    assert mask[50, 50] == 0


def test_hole_recursion_depth_is_bounded():
    contours, tree, outer = _nested_squares()
    mask = np.zeros((100, 100), dtype=np.uint8)
    cv2.drawContours(mask, contours, outer, 255, thickness=cv2.FILLED)

    drawn = HeuristicSegmentationService(max_hole_depth=1).cut_holes(mask, contours, tree, outer, depth=1)

    assert drawn == 1
    assert mask[35, 35] == 0


def test_contour_holes_mask_returns_count():
    bgr = np.full((100, 100, 3), 255, dtype=np.uint8)
    cv2.rectangle(bgr, (20, 20), (79, 79), (0, 0, 0), thickness=-1)

    mask, drawn = HeuristicSegmentationService().contour_holes_mask(bgr)

    assert mask.shape == (100, 100)
    assert isinstance(drawn, int)
    assert mask[2, 2] == 0
