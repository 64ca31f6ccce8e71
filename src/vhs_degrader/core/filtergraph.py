"""
Compile VHS settings into an ffmpeg filter-graph for batch processing.

The graph is stateless, so ghosting (needs the previous frame) and tracking
error (random per-frame bands) have no stage here.
"""

import math
from dataclasses import dataclass

from ..errors import UnsupportedSettingError
from . import DATE_STAMP_MARGIN, DATE_STAMP_OUTLINE, SCAN_LINE_SPACING, VIGNETTE_MAX_ANGLE
from .mapping import EffectParameters, date_stamp_font_size, effect_parameters
from .settings import VHSSettings

# Characters escaped at each level of ffmpeg's filter-graph syntax
_OPTION_SPECIALS = "\\':"
_GRAPH_SPECIALS = "\\',;[]"


def _escape(text: str, specials: str) -> str:
    return "".join(f"\\{ch}" if ch in specials else ch for ch in text)


def escape_filter_text(text: str) -> str:
    """
    Escape free text for use as a filter option value inside a graph.

    Applies the option-level escaping (quotes, colons, backslashes) and then
    the graph-level escaping (commas, semicolons, brackets) on top.
    """
    return _escape(_escape(text, _OPTION_SPECIALS), _GRAPH_SPECIALS)


def _number(value: float) -> str:
    """Compact decimal form for filter options."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


@dataclass(frozen=True)
class FilterStage:
    """One ffmpeg filter with its options, in order."""

    name: str
    options: tuple[tuple[str, str], ...] = ()

    def serialize(self) -> str:
        if not self.options:
            return self.name
        return self.name + "=" + ":".join(f"{key}={value}" for key, value in self.options)

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class FilterGraph:
    """Ordered filter stages; ``str()`` gives the ``-vf`` argument."""

    stages: tuple[FilterStage, ...] = ()

    @property
    def names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def serialize(self) -> str:
        if not self.stages:
            return "null"
        return ",".join(stage.serialize() for stage in self.stages)

    def __str__(self) -> str:
        return self.serialize()

    def __len__(self) -> int:
        return len(self.stages)

    def __iter__(self):
        return iter(self.stages)


def _require(stage: str, option: str, value: float, low: float, high: float) -> float:
    if not math.isfinite(value) or value < low or value > high:
        raise UnsupportedSettingError(
            f"{option}={value!r} is outside the representable range [{low}, {high}]",
            stage=stage,
        )
    return value


def _blur_stage(p: EffectParameters) -> FilterStage:
    sigma = _require("blur", "sigma", p.blur_sigma, 0.0, 1024.0)
    return FilterStage("gblur", (("sigma", _number(sigma)),))


def _noise_stage(p: EffectParameters) -> FilterStage:
    strength = _require("noise", "alls", p.noise_filter_strength, 0, 100)
    return FilterStage("noise", (("alls", str(int(strength))), ("allf", "t+u")))


def _color_grade_stages(p: EffectParameters) -> list[FilterStage]:
    stages = []
    contrast = _require("color_grade", "contrast", p.contrast, 0.0, 1000.0)
    brightness = _require("color_grade", "brightness", p.brightness, 0.0, 1000.0)
    if contrast != 1.0 or brightness != 1.0:
        expr = f"((val/255-0.5)*{_number(contrast)}+0.5)*255*{_number(brightness)}"
        stages.append(FilterStage("lutrgb", (("r", expr), ("g", expr), ("b", expr))))

    saturation = _require("color_grade", "saturation", p.saturation, 0.0, 3.0)
    if saturation != 1.0:
        stages.append(FilterStage("eq", (("saturation", _number(saturation)),)))
    return stages


def _color_shift_stage(p: EffectParameters) -> FilterStage:
    options = []
    for channel, bias in zip("rgb", p.color_bias):
        _require("color_shift", channel, bias, -255.0, 255.0)
        options.append((channel, f"val{bias:+.6f}".rstrip("0").rstrip(".")))
    return FilterStage("lutrgb", tuple(options))


def _chromatic_stage(p: EffectParameters) -> FilterStage:
    offset = int(_require("chromatic_aberration", "rh", p.aberration_offset, 0, 255))
    return FilterStage("rgbashift", (("rh", str(offset)), ("bh", str(-offset)), ("edge", "smear")))


def _scan_line_stage(p: EffectParameters) -> FilterStage:
    alpha = _require("scan_lines", "color", p.scan_line_alpha, 0.0, 1.0)
    return FilterStage(
        "drawgrid",
        (
            # A cell one column wider than the frame, offset by -1, keeps the
            # vertical grid line off-screen so only even rows are drawn
            ("x", "-1"),
            ("y", "0"),
            ("w", "iw+1"),
            ("h", str(SCAN_LINE_SPACING)),
            ("t", "1"),
            ("color", f"black@{_number(alpha)}"),
        ),
    )


def _vignette_stage(p: EffectParameters) -> FilterStage:
    angle = _require("vignette", "angle", p.vignette_angle, 0.0, VIGNETTE_MAX_ANGLE)
    return FilterStage("vignette", (("angle", _number(angle)),))


def _date_stamp_stage(p: EffectParameters, frame_height: int | None) -> FilterStage:
    font_size = str(date_stamp_font_size(frame_height)) if frame_height else "24"
    return FilterStage(
        "drawtext",
        (
            ("text", escape_filter_text(p.date_stamp_text)),
            ("expansion", "none"),
            ("fontcolor", "white@0.9"),
            ("fontsize", font_size),
            ("borderw", str(DATE_STAMP_OUTLINE)),
            ("bordercolor", "black@0.8"),
            ("x", str(DATE_STAMP_MARGIN)),
            ("y", f"h-{DATE_STAMP_MARGIN}-ascent"),
        ),
    )


def compile_filtergraph(settings: VHSSettings, frame_height: int | None = None) -> FilterGraph:
    """
    Translate settings into ordered ffmpeg filter stages.

    Order: blur, noise, color grade, color shift, chromatic split, scan
    lines, vignette, date stamp. Inactive effects produce no stage.

    Args:
        settings: Degradation settings (clamped here)
        frame_height: Source height, used to size the date stamp like the
            frame pipeline does; a fixed size is used when unknown

    Returns:
        FilterGraph ready to serialize for ``-vf``
    """
    p = effect_parameters(settings)
    stages: list[FilterStage] = []

    if p.blur_sigma > 0:
        stages.append(_blur_stage(p))
    if p.noise_filter_strength > 0:
        stages.append(_noise_stage(p))
    stages.extend(_color_grade_stages(p))
    if any(p.color_bias):
        stages.append(_color_shift_stage(p))
    if p.aberration_offset > 0:
        stages.append(_chromatic_stage(p))
    if p.scan_line_alpha > 0:
        stages.append(_scan_line_stage(p))
    if p.vignette_strength > 0:
        stages.append(_vignette_stage(p))
    if p.date_stamp_text:
        stages.append(_date_stamp_stage(p, frame_height))

    return FilterGraph(tuple(stages))
