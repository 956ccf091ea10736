# repositories/segmentation_repository.py
import logging
from typing import Any, Tuple

import cv2
import numpy as np
from onnxruntime.capi.onnxruntime_pybind11_state import Fail, InvalidArgument

from ..exceptions import InferenceFailed
from ..models.segmentation_engine import InferenceSessionCache

logger = logging.getLogger(__name__)

_RUN_ERRORS = (Fail, InvalidArgument)


class SegmentationRepository:
    """
    One-image inference against a cached ONNX session.

    • Resolves the model input resolution.
    • Builds the [1, 3, H, W] normalised tensor.
    • Returns the raw float mask at model resolution.
    """

    def __init__(self, session_cache: InferenceSessionCache) -> None:
        self.session_cache = session_cache

    # ---------- private helpers ----------
    @staticmethod
    def _positive_dim(value: Any) -> int:
        """Model dims may be ints, None, or symbolic strings ('height')."""
        if isinstance(value, (int, np.integer)) and value > 0:
            return int(value)
        return 0

    @classmethod
    def resolve_input_size(cls, session: Any, fallback: int) -> Tuple[int, int]:
        """
        Returns (height, width).

        Model-declared positive dims win; zero/negative/symbolic dims are
        dynamic and fall back to the configured preset.
        """
        shape = None
        inputs = session.get_inputs()
        if inputs:
            shape = inputs[0].shape
        height = width = fallback
        if shape is not None and len(shape) >= 4:
            height = cls._positive_dim(shape[2]) or fallback
            width = cls._positive_dim(shape[3]) or fallback
        logger.info(f"Model input shape={shape} → using {width}x{height}")
        return height, width

    @staticmethod
    def to_tensor(rgb: np.ndarray, height: int, width: int) -> np.ndarray:
        """
        RGB uint8 (H, W, 3) → float32 (1, 3, height, width), values (x/255 - 0.5) / 0.5.
        """
        resized = cv2.resize(np.ascontiguousarray(rgb), (width, height), interpolation=cv2.INTER_LINEAR)
        normalised = (resized.astype(np.float32) / 255.0 - 0.5) / 0.5
        return np.ascontiguousarray(normalised.transpose(2, 0, 1)[np.newaxis, ...])

    @staticmethod
    def _squeeze_mask(output: np.ndarray) -> np.ndarray:
        """[1, 1, H, W] / [1, H, W] / [H, W] → (H, W)."""
        mask = np.asarray(output, dtype=np.float32)
        while mask.ndim > 2:
            mask = mask[0]
        return mask

    # ---------- public API ----------
    def retrieve_mask(self, model_path: str, rgb: np.ndarray, fallback_size: int) -> np.ndarray:
        """
        Returns float32 mask (h, w) at model resolution.
        """
        session = self.session_cache.get(model_path)
        height, width = self.resolve_input_size(session, fallback_size)

        tensor = self.to_tensor(rgb, height, width)
        input_name = session.get_inputs()[0].name
        logger.info("Running inference to get mask...")
        try:
            outputs = session.run(None, {input_name: tensor})
        except _RUN_ERRORS as err:
            raise InferenceFailed(model_path, str(err)) from err
        return self._squeeze_mask(outputs[0])
