"""K-means colour quantization that leaves transparent pixels alone."""
import logging
from typing import Optional, Tuple

import numpy as np

from .. import settings
from ..models.image import PixelBuffer

logger = logging.getLogger(__name__)

# alpha <= this is skipped by clustering so holes are never "filled"
TRANSPARENT_THRESHOLD = 8


class ColorQuantizationService:
    """Reduce the palette of an image to *k* representative colours."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = settings.RANDOM_SEED if seed is None else seed

    @staticmethod
    def _assign(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Index of the nearest centroid (squared Euclidean RGB) for every point."""
        # |p|² - 2 p·c + |c|², the |p|² term is constant per row
        cross = points @ centroids.T
        dist = (centroids ** 2).sum(axis=1)[np.newaxis, :] - 2.0 * cross
        return np.argmin(dist, axis=1)

    def cluster(
        self,
        points: np.ndarray,
        k: int,
        iterations: int,
        rng: np.random.Generator,
    ) -> Tuple[np.ndarray, np.ndarray, int]:
        """
        Lloyd iterations over (N, 3) float points.

        Returns (centroids, labels, rounds_run).
        """
        n = points.shape[0]
        k = min(max(k, 1), n)
        centroids = points[rng.integers(0, n, size=k)].copy()

        rounds = 0
        for _ in range(iterations):
            rounds += 1
            labels = self._assign(points, centroids)
            counts = np.bincount(labels, minlength=k)

            new_centroids = np.empty_like(centroids)
            for channel in range(3):
                sums = np.bincount(labels, weights=points[:, channel], minlength=k)
                with np.errstate(invalid="ignore", divide="ignore"):
                    new_centroids[:, channel] = sums / counts

            empty = counts == 0
            if empty.any():
                # reseed starving clusters with random pixels
                new_centroids[empty] = points[rng.integers(0, n, size=int(empty.sum()))]

            changed = bool(empty.any()) or not np.array_equal(new_centroids, centroids)
            centroids = new_centroids
            if not changed:
                break

        labels = self._assign(points, centroids)
        return centroids, labels, rounds

    def quantize(self, image: PixelBuffer, k: int, iterations: int, seed: Optional[int] = None) -> PixelBuffer:
        """
        Args
        ----
        image      : source buffer (not modified)
        k          : number of colours, clamped to [1, opaque pixel count]
        iterations : cap on Lloyd rounds; stops early once centroids settle

        Returns
        -------
        New PixelBuffer whose opaque pixels carry their cluster colour and
        original alpha.  Pixels with alpha <= 8 are copied through untouched.
        """
        rng = np.random.default_rng(self.seed if seed is None else seed)

        flat = image.pixels.reshape(-1, 4)
        if image.has_alpha:
            selected = flat[:, 3] > TRANSPARENT_THRESHOLD
        else:
            selected = np.ones(flat.shape[0], dtype=bool)

        out = flat.copy()
        if not selected.any():
            logger.info("No opaque pixels to quantize; returning a copy")
            return PixelBuffer(pixels=out.reshape(image.pixels.shape), has_alpha=image.has_alpha)

        points = flat[selected, :3].astype(np.float64)
        centroids, labels, rounds = self.cluster(points, k, iterations, rng)
        logger.info(f"K-means finished after {rounds} round(s) with {len(centroids)} cluster(s)")

        palette = np.clip(np.floor(centroids + 0.5), 0, 255).astype(np.uint8)
        out[selected, :3] = palette[labels]
        return PixelBuffer(pixels=out.reshape(image.pixels.shape), has_alpha=image.has_alpha)
