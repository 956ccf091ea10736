"""Tests for contour-based region segmentation and cropping."""

import logging

import cv2
import numpy as np

from imagevec.models.image import PixelBuffer
from imagevec.models.region import BoundingBox
from imagevec.services.cropping_service import CroppingService


def test_two_squares_sorted_top_to_bottom_with_padding(transparent_sheet):
    # the right-hand square sits higher, so it comes first
    sheet = transparent_sheet(120, 200, [(10, 60, 40), (120, 10, 40)])

    regions = CroppingService().segment(sheet)

    assert len(regions) == 2
    first, second = regions
    # one 3×3 dilate pass grows each 40×40 square to 42×42
    assert first.contour_bbox == BoundingBox(119, 9, 42, 42)
    assert first.bbox == BoundingBox(111, 1, 58, 58)
    assert first.image.pixels.shape == (58, 58, 4)
    assert second.contour_bbox == BoundingBox(9, 59, 42, 42)
    assert second.bbox == BoundingBox(1, 51, 58, 58)


def test_small_blobs_are_discarded(transparent_sheet):
    sheet = transparent_sheet(100, 100, [(5, 5, 10), (40, 40, 50)])

    regions = CroppingService().segment(sheet)

    assert len(regions) == 1
    assert regions[0].contour_bbox.x == 39


def test_padding_is_clamped_to_image_bounds(transparent_sheet):
    sheet = transparent_sheet(60, 60, [(0, 0, 45)])

    region = CroppingService(padding=8).segment(sheet)[0]

    assert region.bbox.x == 0 and region.bbox.y == 0
    assert region.bbox.width <= 60 and region.bbox.height <= 60


def test_negative_padding_clamps_to_zero(transparent_sheet):
    sheet = transparent_sheet(100, 100, [(30, 30, 40)])

    region = CroppingService(padding=-5).segment(sheet)[0]

    assert region.bbox == region.contour_bbox


def test_opaque_image_uses_inverted_otsu():
    rgb = np.full((120, 200, 3), 250, dtype=np.uint8)
    cv2.rectangle(rgb, (10, 10), (59, 59), (10, 10, 10), thickness=-1)
    cv2.rectangle(rgb, (100, 50), (159, 109), (10, 10, 10), thickness=-1)
    pixels = np.dstack([rgb, np.full((120, 200), 255, dtype=np.uint8)])
    image = PixelBuffer(pixels=pixels, has_alpha=False)

    regions = CroppingService().segment(image)

    assert len(regions) == 2
    assert regions[0].contour_bbox.y < regions[1].contour_bbox.y


def test_min_area_is_configurable(transparent_sheet):
    sheet = transparent_sheet(100, 100, [(10, 10, 20)])

    assert CroppingService().segment(sheet) == []
    assert len(CroppingService(min_area=100).segment(sheet)) == 1


def test_very_wide_images_fall_back_to_tuple_ordering(transparent_sheet, caplog):
    sheet = transparent_sheet(60, 10050, [(10020 - 45, 10, 40), (100, 5, 40)])

    with caplog.at_level(logging.WARNING):
        regions = CroppingService().segment(sheet)

    assert [r.contour_bbox.x for r in regions] == [99, 9974]
    assert "sort key" in caplog.text


def test_corner_squares_come_out_top_left_first(transparent_sheet):
    sheet = transparent_sheet(200, 200, [(140, 140, 50), (10, 10, 50)])

    regions = CroppingService().segment(sheet)

    assert len(regions) == 2
    top_left, bottom_right = regions
    assert top_left.contour_bbox.x < bottom_right.contour_bbox.x
    assert top_left.contour_bbox.y < bottom_right.contour_bbox.y
    for region in regions:
        assert region.bbox.width >= 50 and region.bbox.height >= 50
        assert region.image.pixels.shape[:2] == (region.bbox.height, region.bbox.width)
