# services/vectorize_service.py
"""
Raster → SVG through external tracers.

    vtracer   <bin> --input <png> --output <svg> [knobs]
    inkscape  <bin> <png> --batch-process --actions=… --export-filename=<svg>
    potrace   <bin> <pbm> -s -o <svg>

See https://github.com/visioncortex/vtracer for the vtracer knobs.
"""
import logging
import subprocess
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .. import settings
from ..exceptions import SubprocessFailed, VectorizeFailed
from ..models.configs import ColorMode, CurveFittingMode, VectorizeConfig, VectorizerBackend
from ..repositories.image_repository import ImageRepository
from ..repositories.workspace_repository import WorkspaceRepository

logger = logging.getLogger(__name__)

INKSCAPE_ACTIONS = "SelectAll;TraceBitmap;Delete;ExportPlainSVG"


def build_vtracer_arguments(config: VectorizeConfig) -> List[str]:
    """
    Flag/value pairs in a fixed order.

    • --hierarchical only in COLOR mode
    • --segment_length / --splice_threshold / --corner_threshold only in SPLINE mode
    • knobs set to None are left out
    """
    pairs = [("--colormode", config.color_mode.value)]
    if config.color_mode is ColorMode.COLOR:
        pairs.append(("--hierarchical", config.hierarchical.value))
    pairs += [
        ("--filter_speckle", config.filter_speckle),
        ("--color_precision", config.color_precision),
        ("--gradient_step", config.gradient_step),
        ("--mode", config.curve_fitting_mode.value),
    ]
    if config.curve_fitting_mode is CurveFittingMode.SPLINE:
        pairs += [
            ("--segment_length", config.segment_length),
            ("--splice_threshold", config.splice_threshold),
            ("--corner_threshold", config.corner_threshold),
        ]

    args: List[str] = []
    for flag, value in pairs:
        if value is None:
            continue
        args += [flag, str(value).strip()]
    return args


class ProcessRunner:
    """Runs one external command to completion, stdout and stderr merged."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.VECTORIZER_TIMEOUT_SECONDS if timeout is None else timeout

    @staticmethod
    def _text(output: Union[str, bytes, None]) -> str:
        if output is None:
            return ""
        if isinstance(output, bytes):
            return output.decode("utf-8", errors="replace")
        return output

    def run(self, command: Sequence[str], name: str) -> str:
        command = [str(part) for part in command]
        logger.info(f"Executing {name} command: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as err:
            # subprocess.run has already killed the child at this point
            logger.error(f"{name} timed out after {self.timeout}s")
            raise SubprocessFailed(name, command, None, self._text(err.output), timed_out=True) from err
        except OSError as err:
            logger.error(f"{name} could not be started: {err}")
            raise SubprocessFailed(name, command, None, str(err)) from err

        output = self._text(result.stdout)
        logger.info(f"{name} output: \n{output}")
        if result.returncode != 0:
            raise SubprocessFailed(name, command, result.returncode, output)
        return output


class VectorizeService:
    """Chooses the backend command line, runs it and returns the SVG bytes."""

    def __init__(self, workspace: WorkspaceRepository = None, runner: ProcessRunner = None,
                 image_repository: ImageRepository = None):
        self.workspace = workspace or WorkspaceRepository()
        self.runner = runner or ProcessRunner()
        self.image_repository = image_repository or ImageRepository()

    # ---------- command builders ----------
    @staticmethod
    def vtracer_command(image_path: Path, output_path: Path, config: VectorizeConfig) -> List[str]:
        return [
            settings.VTRACER_BIN,
            "--input", str(Path(image_path).absolute()),
            "--output", str(output_path),
        ] + build_vtracer_arguments(config)

    @staticmethod
    def inkscape_command(image_path: Path, output_path: Path) -> List[str]:
        return [
            settings.INKSCAPE_BIN,
            str(Path(image_path).absolute()),
            "--batch-process",
            f"--actions={INKSCAPE_ACTIONS}",
            f"--export-filename={Path(output_path).absolute()}",
        ]

    @staticmethod
    def potrace_command(pbm_path: Path, output_path: Path) -> List[str]:
        return [settings.POTRACE_BIN, str(pbm_path), "-s", "-o", str(output_path)]

    def _to_pbm(self, image_path: Path, directory: Path) -> Path:
        image = self.image_repository.load(image_path)
        return self.workspace.create_temp_file(
            "potrace-", ".pbm", self.image_repository.encode_pbm(image), directory
        )

    # ---------- public API ----------
    def vectorize(self, image_path: Union[str, Path], config: Optional[VectorizeConfig] = None,
                  backend: VectorizerBackend = VectorizerBackend.VTRACER,
                  directory: Union[str, Path, None] = None) -> bytes:
        """
        Args:
            image_path: PNG/JPEG to trace.
            config: vtracer knobs; ignored by inkscape and potrace.
            backend: which tracer to run.
            directory: where intermediate and output files go (workspace root by default).

        Returns:
            The SVG document as bytes.  The output file is deleted afterwards.
        """
        image_path = Path(image_path)
        directory = Path(directory) if directory else self.workspace.root
        output_path = directory / f"vectorized-{uuid.uuid4().hex}.svg"
        config = config or VectorizeConfig()
        name = backend.value
        logger.info(f"Starting {name} vectorization of {image_path.name}")

        pbm_path = None
        if backend is VectorizerBackend.VTRACER:
            command = self.vtracer_command(image_path, output_path, config)
        elif backend is VectorizerBackend.INKSCAPE:
            command = self.inkscape_command(image_path, output_path)
        else:
            pbm_path = self._to_pbm(image_path, directory)
            command = self.potrace_command(pbm_path, output_path)

        try:
            self.runner.run(command, name)
        except SubprocessFailed as err:
            raise VectorizeFailed(name, err.command, err.returncode, err.output, err.timed_out) from err
        finally:
            if pbm_path is not None:
                pbm_path.unlink(missing_ok=True)

        if not output_path.is_file():
            raise VectorizeFailed(name, command, 0, f"{name} exited cleanly but wrote no {output_path.name}")

        svg = self.workspace.read_and_delete(output_path)
        logger.info(f"Vectorization completed: {len(svg)} bytes of SVG")
        return svg
