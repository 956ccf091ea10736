from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import numpy as np


@dataclass
class PixelBuffer:
    """
    Simple data object: RGBA pixels (+ optional source path for bookkeeping).
    No OpenCV logic outside the services.

    Every pipeline stage consumes one buffer and returns a new one; nobody
    writes into ``pixels`` of a buffer they did not create.
    """
    pixels: np.ndarray  # Shape (H, W, 4), dtype uint8, RGBA order.
    has_alpha: bool = True  # False for sources decoded without an alpha channel.
    path: Path | None = None  # Source of the image.

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"PixelBuffer expects (H, W, 4) pixels, got {self.pixels.shape}")
        if self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise ValueError("PixelBuffer width and height must be > 0")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"PixelBuffer expects uint8 pixels, got {self.pixels.dtype}")

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]
