"""Shared fixtures: synthetic images and fakes for the inference session / subprocess runner."""

from io import BytesIO

import cv2
import numpy as np
import pytest
from PIL import Image as PILImage

from imagevec.models.image import PixelBuffer


@pytest.fixture
def solid_image():
    """Factory: (height, width, rgba) → opaque or translucent PixelBuffer of one colour."""

    def _make(height, width, rgba=(255, 255, 255, 255), has_alpha=True):
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = rgba
        return PixelBuffer(pixels=pixels, has_alpha=has_alpha)

    return _make


@pytest.fixture
def transparent_sheet():
    """Factory: transparent canvas with opaque red squares at the given (x, y, size) spots."""

    def _make(height, width, squares):
        pixels = np.zeros((height, width, 4), dtype=np.uint8)
        for x, y, size in squares:
            pixels[y:y + size, x:x + size] = (200, 30, 30, 255)
        return PixelBuffer(pixels=pixels, has_alpha=True)

    return _make


@pytest.fixture
def disc_jpeg_bytes():
    """100×100 JPEG: white background with a saturated red disc in the middle."""
    rgb = np.full((100, 100, 3), 255, dtype=np.uint8)
    cv2.circle(rgb, (50, 50), 30, (220, 20, 20), thickness=-1)
    buffer = BytesIO()
    PILImage.fromarray(rgb).save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    """Factory: PixelBuffer → PNG bytes (RGBA)."""

    def _encode(image):
        buffer = BytesIO()
        PILImage.fromarray(np.ascontiguousarray(image.pixels)).save(buffer, format="PNG")
        return buffer.getvalue()

    return _encode


class FakeInput:
    def __init__(self, name="input", shape=(1, 3, "height", "width")):
        self.name = name
        self.shape = list(shape)


class FakeSession:
    """Mimics ``onnxruntime.InferenceSession`` for one-input / one-output models."""

    def __init__(self, input_shape=(1, 3, "height", "width"), mask_value=1.0):
        self.inputs = [FakeInput(shape=input_shape)]
        self.mask_value = mask_value
        self.calls = []

    def get_inputs(self):
        return self.inputs

    def run(self, output_names, feeds):
        self.calls.append(feeds)
        tensor = next(iter(feeds.values()))
        _, _, height, width = tensor.shape
        return [np.full((1, 1, height, width), self.mask_value, dtype=np.float32)]


@pytest.fixture
def fake_session():
    return FakeSession


class FakeRunner:
    """Stands in for ProcessRunner: records commands and writes a tiny SVG to the output path."""

    def __init__(self, svg=b"<svg xmlns='http://www.w3.org/2000/svg'/>", fail_with=None, write=True):
        self.svg = svg
        self.fail_with = fail_with
        self.write = write
        self.commands = []

    @staticmethod
    def output_path(command):
        for i, part in enumerate(command):
            if part in ("--output", "-o"):
                return command[i + 1]
            if part.startswith("--export-filename="):
                return part.split("=", 1)[1]
        raise AssertionError(f"no output in {command}")

    def run(self, command, name):
        self.commands.append(list(command))
        if self.fail_with is not None:
            raise self.fail_with
        if self.write:
            with open(self.output_path(command), "wb") as fh:
                fh.write(self.svg)
        return ""


@pytest.fixture
def fake_runner():
    return FakeRunner
