from __future__ import annotations
from dataclasses import dataclass
import numpy as np

from ..exceptions import MaskDimensionMismatch


@dataclass
class FloatMask:
    """
    Soft segmentation confidence, row-major (H, W) float32.

    Values are nominally in [0, 1]; raw model outputs may overshoot and are
    clipped by the refiner, not here.
    """
    values: np.ndarray

    def __post_init__(self) -> None:
        values = np.asarray(self.values)
        if values.ndim != 2 or values.size == 0:
            raise MaskDimensionMismatch(values.shape)
        self.values = values.astype(np.float32, copy=False)

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def shape(self) -> tuple:
        return self.height, self.width
