# services/cropping_service.py
import logging
from typing import List

import cv2
import numpy as np

from ..models.image import PixelBuffer
from ..models.region import SORT_KEY_ROW_STRIDE, BoundingBox, Region
from .image_service import ImageService

logger = logging.getLogger(__name__)

ALPHA_VISIBLE_MIN = 10  # alpha above this counts as foreground
DEFAULT_MIN_AREA = 1500
DEFAULT_PADDING = 8


class CroppingService:
    """
    Splits a sheet of stickers / icons into one Region per foreground blob.

    • Alpha images: foreground = alpha > 10.
    • Opaque images: inverted Otsu threshold on grayscale (dark ink on light paper).
    """

    def __init__(self, min_area: int = DEFAULT_MIN_AREA, padding: int = DEFAULT_PADDING,
                 dilate_iterations: int = 1):
        self.min_area = min_area
        self.padding = max(0, padding)
        self.dilate_iterations = dilate_iterations

    # ---------- private helpers ----------
    @staticmethod
    def foreground_mask(image: PixelBuffer) -> np.ndarray:
        if image.has_alpha:
            _, mask = cv2.threshold(np.ascontiguousarray(image.alpha), ALPHA_VISIBLE_MIN, 255, cv2.THRESH_BINARY)
            return mask
        gray = ImageService.to_grayscale(image)
        _, mask = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
        return mask

    def _connect(self, mask: np.ndarray) -> np.ndarray:
        """Bridge tiny gaps, then grow slightly so anti-aliased edges stay inside."""
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)
        if self.dilate_iterations > 0:
            mask = cv2.dilate(mask, kernel, iterations=self.dilate_iterations)
        return mask

    @staticmethod
    def _sorted(boxes: List[tuple], image_width: int) -> List[tuple]:
        """Top-to-bottom, then left-to-right."""
        if image_width >= SORT_KEY_ROW_STRIDE:
            logger.warning(
                f"Image width {image_width} exceeds packed sort key range; ordering by (y, x) instead"
            )
            return sorted(boxes, key=lambda item: (item[0].y, item[0].x))
        return sorted(boxes, key=lambda item: item[0].sort_key)

    # ---------- public API ----------
    def segment(self, image: PixelBuffer) -> List[Region]:
        logger.info(f"Starting contour-based cropping on {image.width}x{image.height} image "
                    f"(alpha={image.has_alpha})")
        mask = self._connect(self.foreground_mask(image))
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        logger.info(f"Found {len(contours)} contours")

        boxes = []
        for contour in contours:
            bbox = BoundingBox(*cv2.boundingRect(contour))
            if bbox.area < self.min_area:
                logger.debug(f"Skipping small contour with area {bbox.area}")
                continue
            boxes.append((bbox, cv2.contourArea(contour)))

        regions = []
        for bbox, contour_area in self._sorted(boxes, image.width):
            padded = bbox.padded(self.padding, image.width, image.height)
            cropped = ImageService.crop_pixels(
                image,
                bound_r=padded.x + padded.width,
                bound_l=padded.x,
                bound_t=padded.y,
                bound_b=padded.y + padded.height,
            )
            logger.info(f"Region {len(regions) + 1}: {bbox.width}x{bbox.height} at ({bbox.x}, {bbox.y}) "
                        f"padded to {padded.width}x{padded.height} at ({padded.x}, {padded.y})")
            regions.append(Region(image=cropped, bbox=padded, contour_bbox=bbox, contour_area=contour_area))

        logger.info(f"Cropped {len(regions)} valid region(s)")
        return regions
