# imagevec/settings.py
"""
Environment-backed configuration.

Every knob is read once at import time from the process environment
(optionally seeded from a local ``.env`` file).
"""
import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_PACKAGE_DIR = Path(__file__).parent

# ─── input ───────────────────────────────────────────────────────────
ALLOWED_EXTENSIONS = {
    ext.strip().lower()
    for ext in os.getenv("ALLOWED_EXTENSIONS", "png,jpg,jpeg").split(",")
    if ext.strip()
}

# ─── recipes ─────────────────────────────────────────────────────────
RECIPES_PATH = Path(os.getenv("RECIPES_PATH") or _PACKAGE_DIR / "data" / "recipes.json")
DEFAULT_REMBG_CODE = os.getenv("DEFAULT_REMBG_CODE") or "default"

# ─── files ───────────────────────────────────────────────────────────
OUTPUT_DIRECTORY = os.getenv("OUTPUT_DIRECTORY", "")
DEFAULT_OUTPUT_DIRECTORY = Path(tempfile.gettempdir()) / "imagevec-output"
ARTIFACTS_DIR = os.getenv("ARTIFACTS_DIR", "")
TEMP_FILE_MAX_AGE_HOURS = int(os.getenv("TEMP_FILE_MAX_AGE_HOURS", "24"))

# ─── external tools ──────────────────────────────────────────────────
VTRACER_BIN = os.getenv("VTRACER_BIN", "vtracer")
INKSCAPE_BIN = os.getenv("INKSCAPE_BIN", "inkscape")
POTRACE_BIN = os.getenv("POTRACE_BIN", "potrace")
VECTORIZER_TIMEOUT_SECONDS = float(os.getenv("VECTORIZER_TIMEOUT_SECONDS", "300"))

# ─── neural background removal ───────────────────────────────────────
ONNX_MODEL_PATH = os.getenv("ONNX_MODEL_PATH", "data/onnx-model/isnet-anime.onnx")
ONNX_INPUT_SIZE = os.getenv("ONNX_INPUT_SIZE", "INPUT_SIZE_320")
ONNX_PROVIDERS = [
    p.strip()
    for p in os.getenv("ONNX_PROVIDERS", "CPUExecutionProvider").split(",")
    if p.strip()
]

# ─── determinism ─────────────────────────────────────────────────────
_seed = os.getenv("RANDOM_SEED", "")
RANDOM_SEED = int(_seed) if _seed else None
