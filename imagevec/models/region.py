from __future__ import annotations
from dataclasses import dataclass

from .image import PixelBuffer

# Packed sort key assumes bbox.x < SORT_KEY_ROW_STRIDE.
SORT_KEY_ROW_STRIDE = 10_000


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def sort_key(self) -> int:
        """Top-to-bottom, then left-to-right. Valid for images < 10,000 px wide."""
        return self.y * SORT_KEY_ROW_STRIDE + self.x

    def padded(self, padding: int, image_width: int, image_height: int) -> "BoundingBox":
        """Grow by *padding* on every side, clamped to the image bounds."""
        x = max(0, self.x - padding)
        y = max(0, self.y - padding)
        width = min(image_width - x, self.width + 2 * padding)
        height = min(image_height - y, self.height + 2 * padding)
        return BoundingBox(x, y, width, height)


@dataclass
class Region:
    """One foreground blob cut out of a larger image."""
    image: PixelBuffer
    bbox: BoundingBox  # padded crop rectangle in source coordinates
    contour_bbox: BoundingBox  # tight rectangle around the contour
    contour_area: float
