# pipeline/svg_converter.py
"""
Raster upload → SVG.

    decode → [background removal] → [preprocess steps] → vectorize

Intermediates can be copied to ARTIFACTS_DIR/<request-id>/ for inspection.
"""
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .. import settings
from ..exceptions import ConfigNotFound, TempIOFailed, UnsupportedExtension
from ..models.configs import PreprocessStep, RembgConfig, RembgStrategy, VectorizerBackend
from ..models.image import PixelBuffer
from ..repositories.config_repository import ConfigRepository
from ..repositories.workspace_repository import WorkspaceRepository
from ..services.background_service import BackgroundService
from ..services.image_service import ImageService
from ..services.preprocess_service import PreprocessService
from ..services.vectorize_service import VectorizeService

logger = logging.getLogger(__name__)

# used when the configured default rembg recipe is absent from the recipe file
FALLBACK_REMBG_CONFIG = RembgConfig(strategy=RembgStrategy.OPENCV_HEURISTIC, params={"method": "auto"})


@dataclass
class ConversionResult:
    svg: bytes
    request_id: str
    artifacts: List[str] = field(default_factory=list)  # file names under ARTIFACTS_DIR/<request_id>/


class ArtifactRecorder:
    """Copies pipeline intermediates to disk.  A no-op when no directory is configured."""

    def __init__(self, root: Union[str, Path, None], request_id: str,
                 image_service: ImageService):
        self.directory = Path(root) / request_id if root else None
        self.image_service = image_service
        self.names: List[str] = []

    def record_bytes(self, name: str, data: bytes) -> None:
        if self.directory is None:
            return
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            WorkspaceRepository.write_bytes(self.directory / name, data)
        except (OSError, TempIOFailed) as err:
            logger.warning(f"Failed to store artifact {name}: {err}")
            return
        self.names.append(name)

    def record_image(self, name: str, image: PixelBuffer) -> None:
        if self.directory is None:
            return
        self.record_bytes(name, self.image_service.encode_png(image))


# ─── stages ──────────────────────────────────────────────────────────
def check_extension(filename: Optional[str], allowed: Iterable[str] = None) -> str:
    """Lower-case extension of *filename*; an empty extension is accepted."""
    allowed = set(settings.ALLOWED_EXTENSIONS if allowed is None else allowed)
    ext = Path(filename or "").suffix.lower().lstrip(".")
    if ext and ext not in allowed:
        logger.info(f"Unsupported file extension: {ext}")
        raise UnsupportedExtension(ext, allowed)
    return ext


def resolve_rembg_config(config_repository: ConfigRepository, rembg_code: Optional[str]) -> RembgConfig:
    """
    An explicit code must exist.  Without one, the DEFAULT_REMBG_CODE recipe
    is used, or the built-in heuristic when that recipe is missing too.
    """
    if rembg_code:
        return config_repository.get_rembg_config(rembg_code)
    try:
        return config_repository.get_rembg_config(settings.DEFAULT_REMBG_CODE)
    except ConfigNotFound:
        logger.info("No default rembg recipe; using the OpenCV heuristic in auto mode")
        return FALLBACK_REMBG_CONFIG


def strip_background(
    image: PixelBuffer,
    rembg_config: RembgConfig,
    *,
    background_service: BackgroundService,
) -> PixelBuffer:
    """Remove the background unless the image already carries real transparency."""
    if ImageService.has_transparency(image):
        logger.info("Image already has transparency; skipping background removal")
        return image
    logger.info("Image has no transparency; removing background")
    return background_service.remove_background(image, rembg_config)


def run_preprocess(
    image: PixelBuffer,
    preprocess_code: Optional[str],
    *,
    config_repository: ConfigRepository,
    preprocess_service: PreprocessService,
    recorder: ArtifactRecorder = None,
) -> PixelBuffer:
    """A missing recipe skips the stage; an unknown or failing step aborts."""
    if not preprocess_code:
        return image
    try:
        config = config_repository.get_preprocess_config(preprocess_code)
    except ConfigNotFound:
        logger.info(f"No preprocess recipe '{preprocess_code}'; skipping preprocessing")
        return image

    counter = itertools.count(1)

    def _record(step: PreprocessStep, current: PixelBuffer) -> None:
        if recorder is not None:
            recorder.record_image(f"preprocess-{next(counter):02d}-{step.name.lower()}.png", current)

    return preprocess_service.run(image, config, observer=_record)


# ─── entry point ─────────────────────────────────────────────────────
def convert_to_svg(
    image_bytes: bytes,
    filename: Optional[str],
    *,
    vectorize_code: Optional[str],
    preprocess_code: Optional[str] = None,
    rembg_code: Optional[str] = None,
    backend: VectorizerBackend = VectorizerBackend.VTRACER,
    remove_background: bool = True,
    config_repository: ConfigRepository = None,
    image_service: ImageService = None,
    background_service: BackgroundService = None,
    preprocess_service: PreprocessService = None,
    vectorize_service: VectorizeService = None,
    workspace: WorkspaceRepository = None,
    artifacts_dir: Union[str, Path, None] = None,
) -> ConversionResult:
    """
    Convert one uploaded raster image into SVG bytes.

    Args:
        image_bytes: raw PNG/JPEG upload.
        filename: original name, used for the extension check only.
        vectorize_code: vtracer recipe; required for VTRACER, ignored otherwise.
        preprocess_code: optional preprocess recipe; unknown codes skip the stage.
        rembg_code: background-removal recipe (DEFAULT_REMBG_CODE when omitted).
        backend: external tracer to run.
        remove_background: disable to trace the decoded image as-is.
        artifacts_dir: overrides ARTIFACTS_DIR.

    Returns:
        ConversionResult with the SVG, the request id and stored artifact names.
    """
    config_repository = config_repository or ConfigRepository()
    image_service = image_service or ImageService()
    workspace = workspace or WorkspaceRepository()
    vectorize_service = vectorize_service or VectorizeService(workspace=workspace)
    preprocess_service = preprocess_service or PreprocessService()

    ext = check_extension(filename)
    request_id = uuid.uuid4().hex[:12]
    logger.info(f"[{request_id}] Starting SVG conversion of '{filename}' using {backend.value}")

    # recipes first so a bad code fails before any heavy work
    vectorize_config = None
    if backend is VectorizerBackend.VTRACER:
        vectorize_config = config_repository.get_vectorize_config(vectorize_code)
    elif vectorize_code:
        logger.info(f"[{request_id}] {backend.value} ignores vectorize recipe '{vectorize_code}'")

    recorder = ArtifactRecorder(
        artifacts_dir if artifacts_dir is not None else settings.ARTIFACTS_DIR,
        request_id,
        image_service,
    )
    image = image_service.decode(image_bytes, filename)
    recorder.record_bytes(f"original.{ext or 'img'}", image_bytes)

    if remove_background:
        background_service = background_service or BackgroundService()
        rembg_config = resolve_rembg_config(config_repository, rembg_code)
        stripped = strip_background(image, rembg_config, background_service=background_service)
        if stripped is not image:
            recorder.record_image("rembg.png", stripped)
        image = stripped

    image = run_preprocess(
        image,
        preprocess_code,
        config_repository=config_repository,
        preprocess_service=preprocess_service,
        recorder=recorder,
    )

    with workspace.request_scope(request_id) as scratch:
        input_path = image_service.save(image, scratch / "input.png")
        svg = vectorize_service.vectorize(input_path, vectorize_config, backend, directory=scratch)

    recorder.record_bytes("result.svg", svg)
    logger.info(f"[{request_id}] Conversion finished ({len(svg)} bytes)")
    return ConversionResult(svg=svg, request_id=request_id, artifacts=list(recorder.names))
