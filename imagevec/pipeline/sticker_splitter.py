# pipeline/sticker_splitter.py
import io
import logging
import zipfile
from pathlib import Path
from typing import List, Optional, Union

from ..models.region import Region
from ..repositories.config_repository import ConfigRepository
from ..services.background_service import BackgroundService
from ..services.cropping_service import DEFAULT_MIN_AREA, DEFAULT_PADDING, CroppingService
from ..services.image_service import ImageService
from .svg_converter import check_extension, resolve_rembg_config, strip_background

logger = logging.getLogger(__name__)

REGION_NAME_TEMPLATE = "region_{index:03d}.png"


def split_stickers(
    image_bytes: bytes,
    filename: Optional[str],
    *,
    rembg_code: Optional[str] = None,
    remove_background: bool = True,
    min_area: int = DEFAULT_MIN_AREA,
    padding: int = DEFAULT_PADDING,
    config_repository: ConfigRepository = None,
    image_service: ImageService = None,
    background_service: BackgroundService = None,
    cropping_service: CroppingService = None,
) -> List[Region]:
    """
    Cut a sticker sheet into one Region per sticker.

    Without transparency the background is removed first (when enabled) so
    the segmenter can work off the alpha channel.
    """
    image_service = image_service or ImageService()
    cropping_service = cropping_service or CroppingService(min_area=min_area, padding=padding)

    check_extension(filename)
    image = image_service.decode(image_bytes, filename)

    if remove_background:
        config_repository = config_repository or ConfigRepository()
        background_service = background_service or BackgroundService()
        rembg_config = resolve_rembg_config(config_repository, rembg_code)
        image = strip_background(image, rembg_config, background_service=background_service)

    regions = cropping_service.segment(image)
    logger.info(f"Split '{filename}' into {len(regions)} region(s)")
    return regions


def export_regions_zip(regions: List[Region], image_service: ImageService = None) -> bytes:
    """PNG per region (region_001.png, …) bundled into an in-memory zip archive."""
    image_service = image_service or ImageService()
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for index, region in enumerate(regions, 1):
            name = REGION_NAME_TEMPLATE.format(index=index)
            data = image_service.encode_png(region.image)
            logger.debug(f"Adding {name} to zip ({len(data)} bytes)")
            archive.writestr(name, data)
    logger.info(f"Zipped {len(regions)} region(s)")
    return buffer.getvalue()


def export_regions(regions: List[Region], directory: Union[str, Path],
                   image_service: ImageService = None) -> List[Path]:
    """Write each region as its own PNG into *directory*."""
    image_service = image_service or ImageService()
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return [
        image_service.save(region.image, directory / REGION_NAME_TEMPLATE.format(index=index))
        for index, region in enumerate(regions, 1)
    ]
