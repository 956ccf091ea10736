from pathlib import Path
from typing import Union
import logging

import cv2
import numpy as np

from ..exceptions import MaskDimensionMismatch
from ..models.image import PixelBuffer
from ..repositories.image_repository import ImageRepository

logger = logging.getLogger(__name__)

# alpha below this counts as "transparent" when sniffing for prior cutouts
TRANSPARENT_ALPHA_MAX = 250


class ImageService:
    """Pixel helpers shared by every stage.  No strategy logic here."""

    def __init__(self):
        self.image_repository = ImageRepository()

    # ─── I/O passthroughs ─────────────────────────────────────────────
    def decode(self, data: bytes, source: str = None) -> PixelBuffer:
        return self.image_repository.decode(data, source)

    def load(self, path: Union[str, Path]) -> PixelBuffer:
        """Load a single image from disk into a PixelBuffer."""
        return self.image_repository.load(path)

    def encode_png(self, image: PixelBuffer) -> bytes:
        return self.image_repository.encode_png(image)

    def save(self, image: PixelBuffer, path: Union[str, Path] = None) -> Path:
        return self.image_repository.save(image, path)

    # ─── conversions ──────────────────────────────────────────────────
    @staticmethod
    def to_bgr(image: PixelBuffer) -> np.ndarray:
        return cv2.cvtColor(image.pixels, cv2.COLOR_RGBA2BGR)

    @staticmethod
    def to_grayscale(image: PixelBuffer) -> np.ndarray:
        return cv2.cvtColor(image.pixels, cv2.COLOR_RGBA2GRAY)

    @staticmethod
    def with_alpha(image: PixelBuffer, alpha_u8: np.ndarray) -> PixelBuffer:
        """
        New buffer with *alpha_u8* as the alpha channel; RGB untouched.
        """
        if alpha_u8.shape != (image.height, image.width):
            raise MaskDimensionMismatch(alpha_u8.shape, (image.height, image.width))
        pixels = image.pixels.copy()
        pixels[:, :, 3] = alpha_u8
        return PixelBuffer(pixels=pixels, has_alpha=True, path=image.path)

    @staticmethod
    def resize_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
        """Bilinear resize of a 2-D mask; a no-op copy when sizes already match."""
        if mask.ndim != 2 or mask.size == 0:
            raise MaskDimensionMismatch(mask.shape, (height, width))
        if mask.shape == (height, width):
            return mask.copy()
        return cv2.resize(mask, (width, height), interpolation=cv2.INTER_LINEAR)

    # ─── inspection ───────────────────────────────────────────────────
    @staticmethod
    def has_transparency(image: PixelBuffer) -> bool:
        """True when the buffer carries alpha and any pixel is below 250."""
        if not image.has_alpha:
            return False
        return bool((image.alpha < TRANSPARENT_ALPHA_MAX).any())

    @staticmethod
    def transparency_ratio(image: PixelBuffer) -> float:
        """
        Fraction of transparent pixels.

        > 0.4        background already removed
        0.05 – 0.4   icon / cutout
        < 0.05       background still present
        """
        if not image.has_alpha:
            return 0.0
        return float((image.alpha < TRANSPARENT_ALPHA_MAX).mean())

    # ─── geometry ─────────────────────────────────────────────────────
    @staticmethod
    def crop_pixels(image: PixelBuffer, bound_r, bound_l, bound_t, bound_b) -> PixelBuffer:
        width = bound_r - bound_l
        height = bound_b - bound_t
        if bound_l >= bound_r or bound_t >= bound_b:
            raise ValueError(f"Invalid crop bounds would create {width}x{height} image")

        pixels = image.pixels[bound_t:bound_b, bound_l:bound_r].copy()
        return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)
