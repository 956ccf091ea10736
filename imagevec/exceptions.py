"""
Exceptions raised by the imagevec pipeline.
"""

from typing import Optional, Sequence


class ImageVecError(Exception):
    """Base exception for every pipeline failure."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class UnsupportedExtension(ImageVecError):
    """Raised when an upload carries an extension outside the allow-list."""

    def __init__(self, extension: str, allowed: Sequence[str] = ()):
        self.extension = extension
        self.allowed = sorted(allowed)
        message = f"Unsupported file extension: .{extension}"
        if self.allowed:
            message += f" (allowed: {', '.join(self.allowed)})"
        super().__init__(message, "EXTENSION_NOT_SUPPORTED")


class DecodeFailed(ImageVecError):
    """Raised when image bytes cannot be decoded."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        full_message = f"Failed to decode image: {message}"
        if source:
            full_message += f" (source: {source})"
        super().__init__(full_message, "DECODE_FAILED")


class NotConfigured(ImageVecError):
    """Raised when a strategy runs before its parameters are set."""

    def __init__(self, component: str, missing: Optional[str] = None):
        self.component = component
        self.missing = missing
        message = f"{component} not configured yet"
        if missing:
            message += f" (missing parameter: {missing})"
        super().__init__(message, "NOT_CONFIGURED")


class ConfigNotFound(ImageVecError):
    """Raised when a recipe code has no matching record."""

    def __init__(self, kind: str, code: Optional[str]):
        self.kind = kind
        self.code = code
        super().__init__(f"No {kind} config found for code '{code}'", "CONFIG_NOT_FOUND")


class PreprocessStepUnknown(ImageVecError):
    """Raised when a recipe names a preprocessing step that does not exist."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Unknown preprocess step: {step}", "PREPROCESS_STEP_UNKNOWN")


class PreprocessFailed(ImageVecError):
    """Raised when a preprocessing step fails while running."""

    def __init__(self, message: str, step: Optional[str] = None):
        self.step = step
        full_message = f"Preprocess failed: {message}"
        if step:
            full_message += f" (step: {step})"
        super().__init__(full_message, "PREPROCESS_FAILED")


class MaskDimensionMismatch(ImageVecError):
    """Raised when a mask cannot be laid over its image."""

    def __init__(self, mask_shape: tuple, image_shape: Optional[tuple] = None):
        self.mask_shape = tuple(mask_shape)
        self.image_shape = tuple(image_shape) if image_shape is not None else None
        message = f"Invalid mask shape {self.mask_shape}"
        if self.image_shape is not None:
            message += f" for image of shape {self.image_shape}"
        super().__init__(message, "MASK_DIMENSION_MISMATCH")


class ModelLoadFailed(ImageVecError):
    """Raised when an inference model file is missing or cannot be parsed."""

    def __init__(self, model_path: str, message: str):
        self.model_path = model_path
        super().__init__(f"Failed to load model {model_path}: {message}", "MODEL_LOAD_FAILED")


class InferenceFailed(ImageVecError):
    """Raised when a loaded model rejects its input or fails while running."""

    def __init__(self, model_path: str, message: str):
        self.model_path = model_path
        super().__init__(f"Inference with {model_path} failed: {message}", "INFERENCE_FAILED")


class SubprocessFailed(ImageVecError):
    """Raised when an external tool exits non-zero, times out, or cannot start."""

    def __init__(
        self,
        name: str,
        command: Sequence[str],
        returncode: Optional[int],
        output: str = "",
        timed_out: bool = False,
        error_code: str = "SUBPROCESS_FAILED",
    ):
        self.name = name
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        self.timed_out = timed_out
        if timed_out:
            message = f"{name} timed out"
        elif returncode is None:
            message = f"{name} could not be started"
        else:
            message = f"{name} failed with exit code {returncode}"
        if output:
            message += f". Output:\n{output}"
        super().__init__(message, error_code)


class VectorizeFailed(SubprocessFailed):
    """Raised when the vectorizer backend does not produce an SVG."""

    def __init__(self, name, command, returncode, output="", timed_out=False):
        super().__init__(name, command, returncode, output, timed_out, "VECTORIZE_FAILED")


class TempIOFailed(ImageVecError):
    """Raised when a temporary or output file cannot be created or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        full_message = f"Temp file I/O failed: {message}"
        if path:
            full_message += f" (path: {path})"
        super().__init__(full_message, "TEMP_IO_FAILED")
