# services/heuristic_segmentation_service.py
"""
Classical OpenCV foreground extraction for stickers and icons.

Methods
-------
threshold      light, flat backgrounds (HSV in-range on bright / unsaturated)
contour        clear object outlines (Canny → dilate → largest external contour)
contour-holes  as contour, but carves enclosed background back out
grabcut        everything else (rectangle-initialised GrabCut)
auto           picks one of the above from border uniformity and edge density
"""
import logging
from typing import List, Tuple

import cv2
import numpy as np

from ..models.image import PixelBuffer
from .image_service import ImageService

logger = logging.getLogger(__name__)

METHOD_AUTO = "auto"
METHOD_THRESHOLD = "threshold"
METHOD_CONTOUR = "contour"
METHOD_CONTOUR_HOLES = "contour-holes"
METHOD_GRABCUT = "grabcut"
METHODS = (METHOD_AUTO, METHOD_THRESHOLD, METHOD_CONTOUR, METHOD_CONTOUR_HOLES, METHOD_GRABCUT)

# ─── auto-detection ──────────────────────────────────────────────────
UNIFORMITY_THRESHOLD = 0.85
EDGE_RATIO_THRESHOLD = 0.05
BORDER_SAMPLE_STEP = 5
LIGHT_BACKGROUND_BOOST = 1.2

CANNY_LOW = 50
CANNY_HIGH = 150

GRABCUT_MARGIN = 10
GRABCUT_ITERATIONS = 5

MAX_HOLE_DEPTH = 32

# hierarchy row layout from cv2.findContours
_NEXT, _PREV, _CHILD, _PARENT = 0, 1, 2, 3


class HeuristicSegmentationService:
    """Produces an 8-bit (0 / 255) foreground mask with plain OpenCV."""

    def __init__(self, max_hole_depth: int = MAX_HOLE_DEPTH):
        self.max_hole_depth = max_hole_depth

    # ─── analysis ─────────────────────────────────────────────────────
    @staticmethod
    def sample_border(hsv: np.ndarray, step: int = BORDER_SAMPLE_STEP) -> np.ndarray:
        """HSV pixels every *step* px along the top, bottom, left and right edges."""
        rows, cols = hsv.shape[:2]
        samples = [
            hsv[0, 0:cols:step],
            hsv[rows - 1, 0:cols:step],
            hsv[0:rows:step, 0],
            hsv[0:rows:step, cols - 1],
        ]
        return np.concatenate(samples, axis=0).astype(np.float64)

    @classmethod
    def background_uniformity(cls, bgr: np.ndarray) -> float:
        """
        0 (noisy border) … 1 (flat border).

        Light, unsaturated borders (mean V > 200, mean S < 30) get a 1.2 boost
        before capping at 1.
        """
        hsv = cv2.cvtColor(bgr, cv2.COLOR_BGR2HSV)
        border = cls.sample_border(hsv)
        saturation, brightness = border[:, 1], border[:, 2]

        brightness_uniformity = 1.0 - min(brightness.std() / 128.0, 1.0)
        saturation_uniformity = 1.0 - min(saturation.std() / 128.0, 1.0)
        uniformity = (brightness_uniformity + saturation_uniformity) / 2.0

        if brightness.mean() > 200 and saturation.mean() < 30:
            uniformity *= LIGHT_BACKGROUND_BOOST
        return min(uniformity, 1.0)

    @staticmethod
    def edge_ratio(bgr: np.ndarray) -> float:
        gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
        edges = cv2.Canny(gray, CANNY_LOW, CANNY_HIGH)
        return cv2.countNonZero(edges) / float(edges.size)

    def detect_method(self, bgr: np.ndarray) -> str:
        uniformity = self.background_uniformity(bgr)
        edge_ratio = self.edge_ratio(bgr)
        logger.info(f"Background uniformity={uniformity:.3f}, edge ratio={edge_ratio:.3f}")

        if uniformity > UNIFORMITY_THRESHOLD:
            return METHOD_THRESHOLD
        if edge_ratio > EDGE_RATIO_THRESHOLD:
            return METHOD_CONTOUR
        return METHOD_GRABCUT

    # ─── masks ────────────────────────────────────────────────────────
    @staticmethod
    def threshold_mask(bgr: np.ndarray) -> np.ndarray:
        hsv = cv2.cvtColor(bgr, cv2.COLOR_BGR2HSV)
        background = cv2.inRange(hsv, (0, 0, 200), (180, 30, 255))
        mask = cv2.bitwise_not(background)

        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (5, 5))
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)
        return cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel)

    @staticmethod
    def _edges(bgr: np.ndarray) -> np.ndarray:
        gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
        gray = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(gray, CANNY_LOW, CANNY_HIGH)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
        return cv2.dilate(edges, kernel)

    def contour_mask(self, bgr: np.ndarray) -> np.ndarray:
        edges = self._edges(bgr)
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        mask = np.zeros(bgr.shape[:2], dtype=np.uint8)
        if not contours:
            logger.warning("No contours found; mask is empty")
            return mask

        areas = [cv2.contourArea(c) for c in contours]
        largest = int(np.argmax(areas))
        cv2.drawContours(mask, contours, largest, 255, thickness=cv2.FILLED)
        logger.info(f"Filled largest contour #{largest} with area {areas[largest]:.0f}")
        return mask

    def contour_holes_mask(self, bgr: np.ndarray) -> Tuple[np.ndarray, int]:
        """
        Largest top-level contour filled, enclosed holes cut out and islands
        inside those holes restored, alternating by nesting depth.

        Returns (mask, number of holes + islands drawn).
        """
        edges = self._edges(bgr)
        contours, hierarchy = cv2.findContours(edges, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)

        mask = np.zeros(bgr.shape[:2], dtype=np.uint8)
        if not contours or hierarchy is None:
            logger.warning("No contours found; mask is empty")
            return mask, 0

        tree = hierarchy[0]
        outer = [i for i in range(len(contours)) if tree[i][_PARENT] == -1]
        largest = max(outer, key=lambda i: cv2.contourArea(contours[i]))
        cv2.drawContours(mask, contours, largest, 255, thickness=cv2.FILLED)

        drawn = self.cut_holes(mask, contours, tree, largest, depth=1)
        logger.info(f"Filled outer contour #{largest}; carved {drawn} hole(s)/island(s)")
        return mask, drawn

    # ---------- hole / island recursion ----------
    @staticmethod
    def _children(tree: np.ndarray, parent: int) -> List[int]:
        children = []
        child = tree[parent][_CHILD]
        while child != -1:
            children.append(int(child))
            child = tree[child][_NEXT]
        return children

    def cut_holes(self, mask, contours, tree, parent: int, depth: int) -> int:
        """Fill every child of *parent* with background, then restore their islands."""
        if depth > self.max_hole_depth:
            logger.warning(f"Hole nesting deeper than {self.max_hole_depth}; ignoring the rest")
            return 0
        drawn = 0
        for child in self._children(tree, parent):
            cv2.drawContours(mask, contours, child, 0, thickness=cv2.FILLED)
            drawn += 1 + self.restore_islands(mask, contours, tree, child, depth + 1)
        return drawn

    def restore_islands(self, mask, contours, tree, parent: int, depth: int) -> int:
        """Fill every child of hole *parent* with foreground, then cut their holes."""
        if depth > self.max_hole_depth:
            logger.warning(f"Island nesting deeper than {self.max_hole_depth}; ignoring the rest")
            return 0
        drawn = 0
        for child in self._children(tree, parent):
            cv2.drawContours(mask, contours, child, 255, thickness=cv2.FILLED)
            drawn += 1 + self.cut_holes(mask, contours, tree, child, depth + 1)
        return drawn

    @staticmethod
    def grabcut_mask(bgr: np.ndarray) -> np.ndarray:
        height, width = bgr.shape[:2]
        margin = min(GRABCUT_MARGIN, (min(width, height) - 1) // 2)
        if margin < 1:
            logger.warning(f"Image {width}x{height} too small for GrabCut; keeping everything")
            return np.full((height, width), 255, dtype=np.uint8)

        rect = (margin, margin, width - 2 * margin, height - 2 * margin)
        gc_mask = np.zeros((height, width), dtype=np.uint8)
        bg_model = np.zeros((1, 65), dtype=np.float64)
        fg_model = np.zeros((1, 65), dtype=np.float64)
        cv2.grabCut(bgr, gc_mask, rect, bg_model, fg_model, GRABCUT_ITERATIONS, cv2.GC_INIT_WITH_RECT)

        foreground = (gc_mask == cv2.GC_FGD) | (gc_mask == cv2.GC_PR_FGD)
        return np.where(foreground, 255, 0).astype(np.uint8)

    # ─── public API ───────────────────────────────────────────────────
    def resolve_method(self, method: str, bgr: np.ndarray) -> str:
        method = (method or METHOD_AUTO).strip().lower()
        if method == METHOD_AUTO:
            method = self.detect_method(bgr)
            logger.info(f"Auto-detected method: {method}")
        elif method not in METHODS:
            logger.warning(f"Unknown heuristic method '{method}', using {METHOD_GRABCUT}")
            method = METHOD_GRABCUT
        return method

    def create_mask(self, image: PixelBuffer, method: str = METHOD_AUTO) -> Tuple[np.ndarray, str]:
        """Returns (uint8 mask at source resolution, method actually used)."""
        bgr = ImageService.to_bgr(image)
        method = self.resolve_method(method, bgr)

        if method == METHOD_THRESHOLD:
            mask = self.threshold_mask(bgr)
        elif method == METHOD_CONTOUR:
            mask = self.contour_mask(bgr)
        elif method == METHOD_CONTOUR_HOLES:
            mask, _ = self.contour_holes_mask(bgr)
        else:
            mask = self.grabcut_mask(bgr)

        if mask.shape != (image.height, image.width):
            mask = cv2.resize(mask, (image.width, image.height), interpolation=cv2.INTER_LINEAR)
        return mask, method

    def remove_background(self, image: PixelBuffer, method: str = METHOD_AUTO) -> PixelBuffer:
        """Binary mask applied as alpha; no feathering."""
        logger.info(f"Starting OpenCV background removal on {image.width}x{image.height} image")
        mask, used = self.create_mask(image, method)
        logger.info(f"Removed background using OpenCV method: {used}")
        return ImageService.with_alpha(image, mask)
