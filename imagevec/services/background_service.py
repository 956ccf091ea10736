from typing import Any, Dict, Mapping, Optional, Tuple, Union
import logging

import cv2
import numpy as np

from .. import settings
from ..exceptions import ImageVecError, NotConfigured
from ..models.configs import OnnxInputSize, RembgConfig, RembgStrategy
from ..models.float_mask import FloatMask
from ..models.image import PixelBuffer
from ..models.segmentation_engine import InferenceSessionCache, default_session_cache
from ..repositories.segmentation_repository import SegmentationRepository
from .heuristic_segmentation_service import METHOD_AUTO, HeuristicSegmentationService
from .image_service import ImageService
from .mask_refinement_service import MaskRefinementService

logger = logging.getLogger(__name__)

DEFAULT_HEX_THRESHOLD = 0.98
_MAX_HSV_DISTANCE = np.sqrt(3.0)


class BackgroundRemover:
    """
    Strategy base.  ``configure`` must be called before ``remove_background``.
    """

    name = "BackgroundRemover"
    # legacy parameter spellings still found in older recipe files
    aliases: Dict[str, str] = {}

    def __init__(self):
        self.params: Optional[Dict[str, Any]] = None

    def configure(self, params: Mapping[str, Any]) -> "BackgroundRemover":
        merged = dict(params or {})
        for legacy, key in self.aliases.items():
            if legacy in merged and key not in merged:
                merged[key] = merged[legacy]
        self.params = merged
        return self

    def _require(self, key: str) -> Any:
        if self.params is None:
            raise NotConfigured(self.name)
        value = self.params.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise NotConfigured(self.name, key)
        return value

    def _param(self, key: str, default: Any = None) -> Any:
        if self.params is None:
            raise NotConfigured(self.name)
        value = self.params.get(key)
        return default if value is None else value

    def remove_background(self, image: PixelBuffer) -> Union[PixelBuffer, FloatMask]:
        raise NotImplementedError


class NeuralMaskRemover(BackgroundRemover):
    """Salient-object model (U²-Net / IS-Net family) run through ONNX Runtime."""

    name = "NeuralMaskRemover"
    aliases = {"onnxModelPath": "model_path", "onnxInputSize": "input_size"}

    def __init__(self, session_cache: InferenceSessionCache = None):
        super().__init__()
        self.segmentation_repository = SegmentationRepository(session_cache or default_session_cache())

    def remove_background(self, image: PixelBuffer) -> FloatMask:
        model_path = str(self._require("model_path"))
        preset = OnnxInputSize.resolve(
            self._param("input_size"),
            OnnxInputSize.resolve(settings.ONNX_INPUT_SIZE),
        )
        logger.info(f"Starting ONNX background removal using {model_path} (preset {preset.name})")

        raw = FloatMask(self.segmentation_repository.retrieve_mask(model_path, image.rgb, preset.value))
        logger.info(f"Upsampling mask {raw.width}x{raw.height} → {image.width}x{image.height}")
        return FloatMask(ImageService.resize_mask(raw.values, image.width, image.height))


class HexSimilarityRemover(BackgroundRemover):
    """Hard cutoff on HSV distance to one background colour."""

    name = "HexSimilarityRemover"
    aliases = {"hexColorToRemove": "hex_color"}

    @staticmethod
    def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
        value = hex_color.strip().lstrip("#")
        if len(value) != 6:
            raise ValueError(f"Invalid hex colour: {hex_color}")
        return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)

    @staticmethod
    def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
        """(…, 3) uint8 RGB → (…, 3) float HSV with H/360, S and V all in [0, 1]."""
        rgb = rgb.astype(np.float64) / 255.0
        r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
        v = rgb.max(axis=-1)
        delta = v - rgb.min(axis=-1)

        safe = np.where(delta == 0, 1.0, delta)
        hue = np.where(
            v == r, np.mod((g - b) / safe, 6.0),
            np.where(v == g, (b - r) / safe + 2.0, (r - g) / safe + 4.0),
        )
        hue = np.where(delta == 0, 0.0, hue * 60.0) / 360.0
        sat = np.where(v == 0, 0.0, delta / np.where(v == 0, 1.0, v))
        return np.stack([hue, sat, v], axis=-1)

    def similarity(self, image: PixelBuffer, hex_color: str) -> np.ndarray:
        """1 - dist / √3 per pixel, in [0, 1]."""
        target = self.rgb_to_hsv(np.array(self.hex_to_rgb(hex_color), dtype=np.uint8))
        hsv = self.rgb_to_hsv(image.rgb)
        distance = np.sqrt(((hsv - target) ** 2).sum(axis=-1))
        return 1.0 - distance / _MAX_HSV_DISTANCE

    def remove_background(self, image: PixelBuffer) -> PixelBuffer:
        hex_color = str(self._require("hex_color"))
        threshold = float(self._param("threshold", DEFAULT_HEX_THRESHOLD))

        remove = self.similarity(image, hex_color) >= threshold
        pixels = image.pixels.copy()
        pixels[:, :, 3] = 255
        pixels[remove] = 0
        logger.info(f"Hex {hex_color} removal cleared {int(remove.sum())} pixel(s) at threshold {threshold}")
        return PixelBuffer(pixels=pixels, has_alpha=True, path=image.path)


class HeuristicCvRemover(BackgroundRemover):
    name = "HeuristicCvRemover"

    def __init__(self, segmentation_service: HeuristicSegmentationService = None):
        super().__init__()
        self.segmentation_service = segmentation_service or HeuristicSegmentationService()

    def remove_background(self, image: PixelBuffer) -> PixelBuffer:
        method = str(self._param("method", METHOD_AUTO))
        return self.segmentation_service.remove_background(image, method)


class BackgroundService:
    """
    Business‑level entry point for background removal.

    • Builds the remover for a RembgConfig (one mapping per strategy).
    • Soft masks from the neural remover go through MaskRefinementService.
    • A failing ONNX / HEX remover falls back to the heuristic remover in
      auto mode; a failing heuristic remover propagates.
    """

    _FALLBACK_ERRORS = (ImageVecError, RuntimeError, ValueError, OSError, cv2.error)

    def __init__(self, session_cache: InferenceSessionCache = None,
                 refinement_service: MaskRefinementService = None):
        self.session_cache = session_cache or default_session_cache()
        self.refinement_service = refinement_service or MaskRefinementService()
        self._factories = {
            RembgStrategy.ONNX: lambda: NeuralMaskRemover(self.session_cache),
            RembgStrategy.HEX: HexSimilarityRemover,
            RembgStrategy.OPENCV_HEURISTIC: HeuristicCvRemover,
        }

    def create_remover(self, config: RembgConfig) -> BackgroundRemover:
        remover = self._factories[config.strategy]()
        return remover.configure(config.params)

    def _run(self, remover: BackgroundRemover, image: PixelBuffer) -> PixelBuffer:
        result = remover.remove_background(image)
        if isinstance(result, FloatMask):
            return self.refinement_service.refine(image, result)
        return result

    def remove_background(self, image: PixelBuffer, config: RembgConfig) -> PixelBuffer:
        remover = self.create_remover(config)
        logger.info(f"Removing background with {remover.name}")
        if config.strategy is RembgStrategy.OPENCV_HEURISTIC:
            return self._run(remover, image)

        try:
            return self._run(remover, image)
        except self._FALLBACK_ERRORS as err:
            logger.warning(f"{remover.name} failed ({err}); falling back to heuristic removal")
            fallback = HeuristicCvRemover().configure({"method": METHOD_AUTO})
            return self._run(fallback, image)
