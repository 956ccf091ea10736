# repositories/workspace_repository.py
import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from .. import settings
from ..exceptions import TempIOFailed

logger = logging.getLogger(__name__)


class WorkspaceRepository:
    """
    Owns the on-disk output directory: temp files for external tools,
    per-request scratch directories, and age-based cleanup.

    • OUTPUT_DIRECTORY set   → that directory, never cleaned automatically.
    • OUTPUT_DIRECTORY empty → <tmp>/imagevec-output, eligible for cleanup.
    """

    def __init__(self, output_directory: Union[str, Path, None] = None) -> None:
        configured = output_directory if output_directory is not None else settings.OUTPUT_DIRECTORY
        if configured and str(configured).strip():
            self.root = Path(str(configured).strip())
            self.is_temporary = False
        else:
            self.root = settings.DEFAULT_OUTPUT_DIRECTORY
            self.is_temporary = True

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise TempIOFailed(f"cannot create output directory ({err.strerror})", str(self.root)) from err

    # ---------- files ----------
    def create_temp_file(self, prefix: str, suffix: str, data: bytes = None,
                         directory: Union[str, Path, None] = None) -> Path:
        """Create (and optionally fill) a uniquely named file; never returns None."""
        directory = Path(directory) if directory else self.root
        try:
            with tempfile.NamedTemporaryFile(prefix=prefix, suffix=suffix,
                                             dir=directory, delete=False) as fh:
                if data is not None:
                    fh.write(data)
                return Path(fh.name)
        except OSError as err:
            raise TempIOFailed(err.strerror or str(err), str(directory)) from err

    @staticmethod
    def write_bytes(path: Union[str, Path], data: bytes) -> Path:
        path = Path(path)
        try:
            path.write_bytes(data)
        except OSError as err:
            raise TempIOFailed(err.strerror or str(err), str(path)) from err
        return path

    @staticmethod
    def read_and_delete(path: Union[str, Path]) -> bytes:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as err:
            raise TempIOFailed(err.strerror or str(err), str(path)) from err
        path.unlink(missing_ok=True)
        return data

    # ---------- scratch directories ----------
    @contextmanager
    def request_scope(self, request_id: str) -> Iterator[Path]:
        """Scratch directory removed on every exit path, errors included."""
        try:
            tmpdir = tempfile.mkdtemp(prefix=f"req-{request_id}-", dir=self.root)
        except OSError as err:
            raise TempIOFailed(err.strerror or str(err), str(self.root)) from err
        try:
            yield Path(tmpdir)
        finally:
            shutil.rmtree(tmpdir, ignore_errors=True)

    # ---------- housekeeping ----------
    def cleanup_old_files(self, max_age_hours: float = None, force: bool = False) -> int:
        """Delete files older than *max_age_hours*. Returns the number removed."""
        if not self.is_temporary and not force:
            logger.info(f"Skipping cleanup of configured output directory {self.root}")
            return 0

        max_age_hours = settings.TEMP_FILE_MAX_AGE_HOURS if max_age_hours is None else max_age_hours
        cutoff = time.time() - max_age_hours * 3600
        removed = 0
        for path in self.root.rglob("*"):
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
                    logger.info(f"Deleted old file: {path.name}")
            except OSError as err:
                logger.warning(f"Failed to delete file {path}: {err}")
        return removed
