import logging
from typing import Callable, Dict, List, Optional

import cv2
import numpy as np

from ..exceptions import PreprocessFailed, PreprocessStepUnknown
from ..models.configs import PreprocessConfig, PreprocessStep
from ..models.image import PixelBuffer
from .color_quantization_service import ColorQuantizationService

logger = logging.getLogger(__name__)

StepObserver = Callable[[PreprocessStep, PixelBuffer], None]


class PreprocessService:
    """
    Applies a recipe's pixel steps in order.

    Every step takes a PixelBuffer and returns a new one; the input buffer
    is never written to.
    """

    def __init__(self, quantization_service: Optional[ColorQuantizationService] = None):
        self.quantization_service = quantization_service or ColorQuantizationService()
        self._dispatch: Dict[PreprocessStep, Callable[[PixelBuffer, PreprocessConfig], PixelBuffer]] = {
            PreprocessStep.K_MEANS_QUANTIZATION: self._k_means,
            PreprocessStep.ADJUST_CONTRAST: self._contrast,
            PreprocessStep.SHARPEN: self._sharpen,
            PreprocessStep.REMOVE_OUTLINE: self._remove_outline,
        }

    # ─── public API ───────────────────────────────────────────────────
    @staticmethod
    def resolve_steps(names) -> List[PreprocessStep]:
        """Map recipe step names onto the enum, failing on the first unknown one."""
        steps = []
        for name in names:
            step = PreprocessStep.from_string(name)
            if step is None:
                raise PreprocessStepUnknown(str(name))
            steps.append(step)
        return steps

    def run(self, image: PixelBuffer, config: PreprocessConfig,
            observer: Optional[StepObserver] = None) -> PixelBuffer:
        """
        Args:
            image: source buffer.
            config: recipe; ``config.steps`` is applied in order.
            observer: optional callback invoked with every intermediate result.

        Returns:
            The processed buffer (a copy when the recipe has no steps).
        """
        steps = self.resolve_steps(config.steps)
        if not steps:
            logger.info("No preprocess steps configured")
            return PixelBuffer(pixels=image.pixels.copy(), has_alpha=image.has_alpha)

        current = image
        for step in steps:
            logger.info(f"Applying preprocess step {step.name}")
            try:
                current = self._dispatch[step](current, config)
            except (cv2.error, ValueError, FloatingPointError, MemoryError) as err:
                raise PreprocessFailed(str(err), step.name) from err
            if observer is not None:
                observer(step, current)
        return current

    # ─── individual steps ─────────────────────────────────────────────
    def _k_means(self, image: PixelBuffer, config: PreprocessConfig) -> PixelBuffer:
        return self.quantization_service.quantize(
            image, config.k_colors, config.iterations, seed=config.seed
        )

    def _contrast(self, image: PixelBuffer, config: PreprocessConfig) -> PixelBuffer:
        return self.adjust_contrast(image, config.contrast_factor)

    def _sharpen(self, image: PixelBuffer, config: PreprocessConfig) -> PixelBuffer:
        return self.sharpen(image, config.sharpen_kernel)

    def _remove_outline(self, image: PixelBuffer, config: PreprocessConfig) -> PixelBuffer:
        return self.remove_outline(image, config.outline_radius)

    @staticmethod
    def adjust_contrast(image: PixelBuffer, factor: float) -> PixelBuffer:
        """out = clamp(round((in - 128) * factor + 128)) on RGB, alpha untouched."""
        pixels = image.pixels.copy()
        if factor == 1.0:
            return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)

        rgb = pixels[:, :, :3].astype(np.float64)
        adjusted = np.floor((rgb - 128.0) * factor + 128.0 + 0.5)
        pixels[:, :, :3] = np.clip(adjusted, 0, 255).astype(np.uint8)
        return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)

    @staticmethod
    def sharpen(image: PixelBuffer, kernel) -> PixelBuffer:
        """
        3×3 correlation on R, G, B of interior pixels.

        Sums are truncated toward zero and clamped to [0, 255]; the one-pixel
        border and the alpha channel are copied as-is.
        """
        pixels = image.pixels.copy()
        if image.height < 3 or image.width < 3:
            return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)

        kernel = np.asarray(kernel, dtype=np.float32)
        rgb = np.ascontiguousarray(image.pixels[:, :, :3], dtype=np.float32)
        # filter2D computes correlation, matching a direct neighbourhood sum
        filtered = cv2.filter2D(rgb, cv2.CV_32F, kernel, borderType=cv2.BORDER_REPLICATE)
        interior = np.clip(np.trunc(filtered[1:-1, 1:-1]), 0, 255).astype(np.uint8)
        pixels[1:-1, 1:-1, :3] = interior
        return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)

    @staticmethod
    def remove_outline(image: PixelBuffer, radius: int) -> PixelBuffer:
        """
        Clear alpha on visible pixels that have a fully transparent pixel
        within *radius* (square neighbourhood, in-bounds only).
        """
        pixels = image.pixels.copy()
        if not image.has_alpha or radius <= 0:
            return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)

        alpha = image.alpha
        transparent = (alpha == 0).astype(np.uint8)
        if not transparent.any():
            return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)

        size = 2 * radius + 1
        kernel = np.ones((size, size), dtype=np.uint8)
        # default border value for dilate never introduces "transparent" outside the image
        near_transparent = cv2.dilate(transparent, kernel)
        strip = (alpha > 0) & (near_transparent > 0)
        pixels[:, :, 3][strip] = 0
        logger.info(f"Outline removal cleared {int(strip.sum())} pixel(s) at radius {radius}")
        return PixelBuffer(pixels=pixels, has_alpha=image.has_alpha)
