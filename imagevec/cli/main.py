"""Command line entry point: ``imagevec <command> ...``."""
import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables first so settings picks them up
load_dotenv()

# --- Centralized Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
    datefmt='%H:%M:%S'
)
# ───────────────────────────────────────────

from tqdm import tqdm

from .. import settings
from ..exceptions import ImageVecError
from ..models.configs import PreprocessConfig, VectorizerBackend
from ..repositories.config_repository import ConfigRepository
from ..repositories.image_repository import ImageRepository
from ..repositories.workspace_repository import WorkspaceRepository
from ..services.background_service import BackgroundService
from ..services.image_service import ImageService
from ..services.preprocess_service import PreprocessService
from ..pipeline.svg_converter import convert_to_svg, resolve_rembg_config
from ..pipeline.sticker_splitter import export_regions, export_regions_zip, split_stickers

logger = logging.getLogger("imagevec.cli")


# ─── helpers ─────────────────────────────────────────────────────────
def _inputs(path: Path, recursive: bool):
    """A single file, or every allowed image inside a directory."""
    if path.is_dir():
        files = list(ImageRepository().iter_dir(path, recursive=recursive,
                                                exts=settings.ALLOWED_EXTENSIONS))
        return tqdm(files, desc=f"Processing {path.name}", unit="img"), True
    return [path], False


def _run_each(files, handle) -> int:
    """Run *handle* per file; a failing file is logged and the batch moves on."""
    failed = 0
    for source in files:
        try:
            handle(source)
        except ImageVecError as e:
            failed += 1
            logger.error(f"{source.name}: {e.error_code}: {e.message}")
    if failed:
        logger.error(f"{failed} file(s) failed")
    return 1 if failed else 0


def _target(output: Path, source: Path, batch: bool, suffix: str) -> Path:
    if batch or output.is_dir():
        output.mkdir(parents=True, exist_ok=True)
        return output / f"{source.stem}{suffix}"
    output.parent.mkdir(parents=True, exist_ok=True)
    return output


# ─── commands ────────────────────────────────────────────────────────
def cmd_convert(args) -> int:
    config_repository = ConfigRepository(args.recipes) if args.recipes else ConfigRepository()
    backend = VectorizerBackend.from_string(args.backend)
    files, batch = _inputs(Path(args.input), args.recursive)

    def _convert(source: Path) -> None:
        result = convert_to_svg(
            source.read_bytes(),
            source.name,
            vectorize_code=args.vectorize,
            preprocess_code=args.preprocess,
            rembg_code=args.rembg,
            backend=backend,
            remove_background=not args.keep_background,
            config_repository=config_repository,
        )
        target = _target(Path(args.output), source, batch, ".svg")
        target.write_bytes(result.svg)
        logger.info(f"Wrote {target} (request {result.request_id})")

    return _run_each(files, _convert)


def cmd_remove_bg(args) -> int:
    config_repository = ConfigRepository(args.recipes) if args.recipes else ConfigRepository()
    rembg_config = resolve_rembg_config(config_repository, args.rembg)
    image_service = ImageService()
    background_service = BackgroundService()
    files, batch = _inputs(Path(args.input), args.recursive)

    def _remove(source: Path) -> None:
        image = image_service.load(source)
        result = background_service.remove_background(image, rembg_config)
        target = image_service.save(result, _target(Path(args.output), source, batch, ".png"))
        logger.info(f"Wrote {target}")

    return _run_each(files, _remove)


def cmd_preprocess(args) -> int:
    config_repository = ConfigRepository(args.recipes) if args.recipes else ConfigRepository()
    if args.steps:
        config = PreprocessConfig(
            steps=tuple(s.strip() for s in args.steps.split(",") if s.strip()),
            k_colors=args.k_colors,
            contrast_factor=args.contrast,
            iterations=args.iterations,
            seed=args.seed,
        )
    else:
        config = config_repository.get_preprocess_config(args.recipe)

    image_service = ImageService()
    preprocess_service = PreprocessService()
    files, batch = _inputs(Path(args.input), args.recursive)

    def _preprocess(source: Path) -> None:
        result = preprocess_service.run(image_service.load(source), config)
        target = image_service.save(result, _target(Path(args.output), source, batch, ".png"))
        logger.info(f"Wrote {target}")

    return _run_each(files, _preprocess)


def cmd_split(args) -> int:
    config_repository = ConfigRepository(args.recipes) if args.recipes else ConfigRepository()
    source = Path(args.input)
    regions = split_stickers(
        source.read_bytes(),
        source.name,
        rembg_code=args.rembg,
        remove_background=not args.keep_background,
        min_area=args.min_area,
        padding=args.padding,
        config_repository=config_repository,
    )
    output = Path(args.output)
    if output.suffix.lower() == ".zip":
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(export_regions_zip(regions))
        logger.info(f"Wrote {len(regions)} region(s) to {output}")
    else:
        paths = export_regions(regions, output)
        logger.info(f"Wrote {len(paths)} region(s) to {output}/")
    return 0


def cmd_cleanup(args) -> int:
    workspace = WorkspaceRepository(args.directory) if args.directory else WorkspaceRepository()
    removed = workspace.cleanup_old_files(args.max_age_hours, force=bool(args.directory))
    logger.info(f"Removed {removed} old file(s) from {workspace.root}")
    return 0


# ─── parser ──────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imagevec",
        description="Background removal, preprocessing and raster → SVG vectorization",
    )
    parser.add_argument("--recipes", default=None, help="Recipe JSON file (default: RECIPES_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # convert
    p = sub.add_parser("convert", help="Convert an image (or a folder of images) to SVG")
    p.add_argument("input", help="Input image or directory")
    p.add_argument("output", help="Output SVG path or directory")
    p.add_argument("--vectorize", default="default", help="Vectorize recipe code")
    p.add_argument("--preprocess", default=None, help="Preprocess recipe code")
    p.add_argument("--rembg", default=None, help="Background-removal recipe code")
    p.add_argument("--backend", choices=[b.value for b in VectorizerBackend],
                   default=VectorizerBackend.VTRACER.value, help="Vectorizer backend")
    p.add_argument("--keep-background", action="store_true", help="Skip background removal")
    p.add_argument("--recursive", action="store_true", help="Recurse into sub-directories")
    p.set_defaults(func=cmd_convert)

    # remove-bg
    p = sub.add_parser("remove-bg", help="Remove the background and write a PNG")
    p.add_argument("input")
    p.add_argument("output")
    p.add_argument("--rembg", default=None, help="Background-removal recipe code")
    p.add_argument("--recursive", action="store_true")
    p.set_defaults(func=cmd_remove_bg)

    # preprocess
    p = sub.add_parser("preprocess", help="Apply preprocess steps and write a PNG")
    p.add_argument("input")
    p.add_argument("output")
    p.add_argument("--recipe", default="sticker", help="Preprocess recipe code")
    p.add_argument("--steps", default=None,
                   help="Comma-separated steps, overrides --recipe (e.g. K_MEANS_QUANTIZATION,SHARPEN)")
    p.add_argument("--k-colors", type=int, default=5)
    p.add_argument("--contrast", type=float, default=1.0)
    p.add_argument("--iterations", type=int, default=10)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--recursive", action="store_true")
    p.set_defaults(func=cmd_preprocess)

    # split
    p = sub.add_parser("split", help="Cut a sticker sheet into separate PNGs (or one .zip)")
    p.add_argument("input")
    p.add_argument("output", help="Directory, or a path ending in .zip")
    p.add_argument("--rembg", default=None)
    p.add_argument("--keep-background", action="store_true")
    p.add_argument("--min-area", type=int, default=1500)
    p.add_argument("--padding", type=int, default=8)
    p.set_defaults(func=cmd_split)

    # cleanup
    p = sub.add_parser("cleanup", help="Delete old temporary files from the output directory")
    p.add_argument("--directory", default=None, help="Override OUTPUT_DIRECTORY")
    p.add_argument("--max-age-hours", type=float, default=None)
    p.set_defaults(func=cmd_cleanup)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return args.func(args)
    except ImageVecError as e:
        logger.error(f"{e.error_code}: {e.message}")
        return 1
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
