from typing import Union
import logging

import cv2
import numpy as np

from ..models.float_mask import FloatMask
from ..models.image import PixelBuffer
from .image_service import ImageService

logger = logging.getLogger(__name__)


class MaskRefinementService:
    """
    Turns a soft model mask into a clean alpha channel.

    • blur_kernel   odd Gaussian kernel size (5 keeps edges crisp)
    • close_kernel  elliptical close size, 1‑3 (1 disables the close)
    • feather_power >1 pulls semi‑transparent edges toward transparent
    """

    def __init__(self, blur_kernel: int = 5, close_kernel: int = 3, feather_power: float = 1.2):
        if blur_kernel < 1 or blur_kernel % 2 == 0:
            raise ValueError(f"blur_kernel must be a positive odd number, got {blur_kernel}")
        if not 1 <= close_kernel <= 3:
            raise ValueError(f"close_kernel must be between 1 and 3, got {close_kernel}")
        if feather_power <= 0:
            raise ValueError(f"feather_power must be positive, got {feather_power}")
        self.blur_kernel = blur_kernel
        self.close_kernel = close_kernel
        self.feather_power = feather_power

    @staticmethod
    def to_u8(values: np.ndarray) -> np.ndarray:
        """Float confidence in [0, 1] → uint8, round(clip(v) * 255)."""
        clipped = np.clip(values.astype(np.float32), 0.0, 1.0)
        return np.floor(clipped * 255.0 + 0.5).astype(np.uint8)

    def refine_alpha(self, mask: np.ndarray) -> np.ndarray:
        """Blur, close and feather an 8‑bit mask; returns a new uint8 array."""
        alpha = cv2.GaussianBlur(mask, (self.blur_kernel, self.blur_kernel), 0)

        if self.close_kernel > 1:
            kernel = cv2.getStructuringElement(
                cv2.MORPH_ELLIPSE, (self.close_kernel, self.close_kernel)
            )
            alpha = cv2.morphologyEx(alpha, cv2.MORPH_CLOSE, kernel)

        feathered = np.power(alpha.astype(np.float32) / 255.0, self.feather_power)
        return np.clip(np.floor(feathered * 255.0 + 0.5), 0, 255).astype(np.uint8)

    def refine(self, image: PixelBuffer, mask: Union[FloatMask, np.ndarray]) -> PixelBuffer:
        """
        Apply *mask* as the alpha channel of *image*.

        The mask is resized bilinearly when its shape differs; the output
        always has the image's dimensions and untouched RGB.
        """
        values = mask.values if isinstance(mask, FloatMask) else FloatMask(mask).values
        if values.shape != (image.height, image.width):
            logger.info(f"Resizing mask {values.shape[1]}x{values.shape[0]} → {image.width}x{image.height}")
            values = ImageService.resize_mask(values, image.width, image.height)

        alpha = self.refine_alpha(self.to_u8(values))
        return ImageService.with_alpha(image, alpha)
