from io import BytesIO
from pathlib import Path
from typing import Union, Iterable, Iterator
import logging

import numpy as np
from PIL import Image as PILImage, UnidentifiedImageError

from ..exceptions import DecodeFailed, TempIOFailed
from ..models.image import PixelBuffer

logger = logging.getLogger(__name__)

# R+G+B at or below this is "black" in the P1 bitmap (half of 765).
PBM_BLACK_MAX_SUM = 382


class ImageRepository:
    """
    Handles byte/file I/O for PixelBuffer entities.
    """

    @staticmethod
    def decode(data: bytes, source: str = None) -> PixelBuffer:
        """Decode PNG/JPEG/... bytes into an RGBA PixelBuffer."""
        if not data:
            raise DecodeFailed("empty input", source)
        try:
            with PILImage.open(BytesIO(data)) as pil_img:
                pil_img.load()
                has_alpha = pil_img.mode in ("RGBA", "LA", "PA") or "transparency" in pil_img.info
                rgba = np.array(pil_img.convert("RGBA"), dtype=np.uint8)
        except (UnidentifiedImageError, OSError, ValueError) as err:
            raise DecodeFailed(str(err), source) from err

        return PixelBuffer(pixels=rgba, has_alpha=has_alpha,
                           path=Path(source) if source else None)

    def load(self, path: Union[str, Path]) -> PixelBuffer:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as err:
            raise DecodeFailed(f"unreadable file ({err.strerror})", str(path)) from err
        return self.decode(data, str(path))

    @staticmethod
    def encode_png(image: PixelBuffer) -> bytes:
        # (H, W, 4) → RGBA, (H, W, 3) → RGB
        pixels = image.pixels if image.has_alpha else image.rgb
        buffer = BytesIO()
        PILImage.fromarray(np.ascontiguousarray(pixels)).save(buffer, format="PNG")
        return buffer.getvalue()

    @staticmethod
    def encode_pbm(image: PixelBuffer) -> bytes:
        """
        Plain (P1) bitmap for potrace-style tracers.

        ``1`` = black when R+G+B <= 382.  Fully transparent pixels count as
        white so a removed background is never traced.
        """
        sums = image.rgb.astype(np.int32).sum(axis=2)
        black = sums <= PBM_BLACK_MAX_SUM
        if image.has_alpha:
            black &= image.alpha > 0

        lines = ["P1", f"{image.width} {image.height}"]
        lines.extend(" ".join("1" if v else "0" for v in row) for row in black)
        return ("\n".join(lines) + "\n").encode("ascii")

    def save(self, image: PixelBuffer, path: Union[str, Path] = None) -> Path:
        path = Path(path or image.path)
        if path.suffix.lower() == ".pbm":
            data = self.encode_pbm(image)
        else:
            data = self.encode_png(image)
        try:
            path.write_bytes(data)
        except OSError as err:
            raise TempIOFailed(err.strerror or str(err), str(path)) from err
        return path

    def iter_dir(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] = ("png", "jpg", "jpeg"),
    ) -> Iterator[Path]:
        """
        Yield image paths one at a time.  Nothing accumulates in memory.
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise NotADirectoryError(folder)

        allowed = {e.lower().lstrip(".") for e in exts}
        pattern = "**/*" if recursive else "*"

        for p in sorted(folder.glob(pattern)):
            if not p.is_file():
                continue
            if p.suffix.lower().lstrip(".") not in allowed:
                logger.debug(f"Skipping due to extension: {p}")
                continue
            yield p
