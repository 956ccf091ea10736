from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class _NamedEnum(Enum):
    """Enum resolvable from its case-insensitive name."""

    @classmethod
    def from_string(cls, name: Optional[str], default=None):
        if name is None:
            return default
        for member in cls:
            if member.name.lower() == str(name).strip().lower():
                return member
        return default


# ─── vectorizer knobs ────────────────────────────────────────────────
class ColorMode(_NamedEnum):
    BW = "bw"
    COLOR = "color"


class Hierarchical(_NamedEnum):
    """Only meaningful when ColorMode.COLOR is selected."""
    STACKED = "stacked"
    CUTOUT = "cutout"


class CurveFittingMode(_NamedEnum):
    PIXEL = "pixel"
    POLYGON = "polygon"
    SPLINE = "spline"


class VectorizerBackend(_NamedEnum):
    VTRACER = "vtracer"
    INKSCAPE = "inkscape"
    POTRACE = "potrace"


# ─── background removal ──────────────────────────────────────────────
class RembgStrategy(_NamedEnum):
    ONNX = "onnx"
    HEX = "hex"
    OPENCV_HEURISTIC = "opencv_heuristic"


class OnnxInputSize(_NamedEnum):
    INPUT_SIZE_320 = 320
    INPUT_SIZE_512 = 512
    INPUT_SIZE_1024 = 1024

    @classmethod
    def resolve(cls, value: Any, default: "OnnxInputSize" = None) -> "OnnxInputSize":
        """Accept an enum member, its name, or the bare pixel size (320/512/1024)."""
        default = default or cls.INPUT_SIZE_320
        if isinstance(value, cls):
            return value
        if value is None:
            return default
        for member in cls:
            if str(member.value) == str(value).strip():
                return member
        member = cls.from_string(str(value))
        if member is None:
            raise ValueError(f"Unknown OnnxInputSize: {value}")
        return member


# ─── preprocessing ───────────────────────────────────────────────────
class PreprocessStep(_NamedEnum):
    K_MEANS_QUANTIZATION = "k_means_quantization"
    ADJUST_CONTRAST = "adjust_contrast"
    SHARPEN = "sharpen"
    REMOVE_OUTLINE = "remove_outline"


DEFAULT_SHARPEN_KERNEL: Tuple[Tuple[float, ...], ...] = (
    (0.0, -1.0, 0.0),
    (-1.0, 5.0, -1.0),
    (0.0, -1.0, 0.0),
)


@dataclass(frozen=True)
class PreprocessConfig:
    """
    Value-object for one preprocessing recipe.  Immutable for the whole run.
    """
    k_colors: int = 5             # recommended 4-6
    contrast_factor: float = 1.0  # 1.0 = no-op, 1.1-1.3 typical
    iterations: int = 10          # k-means iteration cap
    sharpen_kernel: Tuple[Tuple[float, ...], ...] = DEFAULT_SHARPEN_KERNEL
    steps: Tuple[str, ...] = ()
    outline_radius: int = 2
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.k_colors < 1:
            raise ValueError(f"k_colors must be >= 1, got {self.k_colors}")
        if self.iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {self.iterations}")
        if self.outline_radius < 0:
            raise ValueError(f"outline_radius must be >= 0, got {self.outline_radius}")
        kernel = tuple(tuple(float(v) for v in row) for row in self.sharpen_kernel)
        if len(kernel) != 3 or any(len(row) != 3 for row in kernel):
            raise ValueError("sharpen_kernel must be a 3x3 matrix")
        object.__setattr__(self, "sharpen_kernel", kernel)
        object.__setattr__(self, "steps", tuple(self.steps))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PreprocessConfig":
        return cls(
            k_colors=int(data.get("k_colors", 5)),
            contrast_factor=float(data.get("contrast_factor", data.get("contrast", 1.0))),
            iterations=int(data.get("iterations", 10)),
            sharpen_kernel=data.get("sharpen_kernel") or DEFAULT_SHARPEN_KERNEL,
            steps=tuple(data.get("steps", ())),
            outline_radius=int(data.get("outline_radius", 2)),
            seed=data.get("seed"),
        )


# ─── vectorization ───────────────────────────────────────────────────
@dataclass(frozen=True)
class VectorizeConfig:
    """
    vtracer knobs.  See https://github.com/visioncortex/vtracer for semantics.
    ``None`` numeric knobs are left to the tool's own defaults.
    """
    color_mode: ColorMode = ColorMode.COLOR
    hierarchical: Hierarchical = Hierarchical.STACKED
    curve_fitting_mode: CurveFittingMode = CurveFittingMode.SPLINE
    filter_speckle: Optional[int] = 4
    color_precision: Optional[int] = 6
    gradient_step: Optional[int] = 16
    corner_threshold: Optional[int] = 60
    segment_length: Optional[float] = 4.0
    splice_threshold: Optional[int] = 45

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VectorizeConfig":
        # unknown / missing modes fall back to COLOR, STACKED, SPLINE;
        # absent knobs take the class defaults, an explicit null leaves the flag out
        return cls(
            color_mode=ColorMode.from_string(data.get("color_mode"), ColorMode.COLOR),
            hierarchical=Hierarchical.from_string(data.get("hierarchical"), Hierarchical.STACKED),
            curve_fitting_mode=CurveFittingMode.from_string(
                data.get("curve_fitting_mode"), CurveFittingMode.SPLINE
            ),
            filter_speckle=data.get("filter_speckle", cls.filter_speckle),
            color_precision=data.get("color_precision", cls.color_precision),
            gradient_step=data.get("gradient_step", cls.gradient_step),
            corner_threshold=data.get("corner_threshold", cls.corner_threshold),
            segment_length=data.get("segment_length", cls.segment_length),
            splice_threshold=data.get("splice_threshold", cls.splice_threshold),
        )


@dataclass(frozen=True)
class RembgConfig:
    """Strategy selector plus a free-form parameter bag."""
    strategy: RembgStrategy
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RembgConfig":
        strategy = RembgStrategy.from_string(data.get("strategy"))
        if strategy is None:
            raise ValueError(f"Unknown rembg strategy: {data.get('strategy')}")
        params: Dict[str, Any] = dict(data.get("params") or {})
        return cls(strategy=strategy, params=params)
