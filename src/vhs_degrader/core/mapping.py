"""
Settings-to-effect-parameter mapping shared by the frame pipeline and the
filter-graph compiler.

Every scaling constant lives here so both execution strategies interpret a
setting the same way.
"""

import math
from dataclasses import dataclass
from functools import lru_cache

from . import (
    COLOR_SHIFT_BIAS,
    DATE_STAMP_FONT_DIVISOR,
    DATE_STAMP_MIN_FONT_SIZE,
    GHOST_DIVISOR,
    NOISE_FILTER_MAX_STRENGTH,
    NOISE_MAX_AMPLITUDE,
    SCAN_LINE_DIVISOR,
    TRACKING_OFFSET_SCALE,
    VIGNETTE_MAX_ANGLE,
)
from .settings import VHSSettings


@dataclass(frozen=True)
class EffectParameters:
    """Numeric effect constants derived from one (clamped) settings value."""

    contrast: float  # multiplier around the 0.5 midpoint
    brightness: float  # multiplier
    saturation: float  # 0 = grayscale, 1 = unchanged
    color_bias: tuple[float, float, float]  # RGB offsets in 0-255 units
    aberration_offset: int  # pixels
    noise_amplitude: float  # +/- range in 0-255 units
    ghost_weight: float  # weight of the previous frame
    blur_sigma: float  # pixels
    scan_line_alpha: float
    tracking_bands: int
    tracking_max_offset: float  # pixels, either direction
    vignette_strength: float  # darkening at the corners, 0-1
    date_stamp_text: str  # empty when the overlay is disabled
    target_fps: float

    @property
    def color_grade_is_identity(self) -> bool:
        return (
            self.contrast == 1.0
            and self.brightness == 1.0
            and self.saturation == 1.0
            and not any(self.color_bias)
        )

    @property
    def noise_filter_strength(self) -> int:
        """ffmpeg ``noise`` strength; its uniform noise spans +/- strength / 2."""
        return min(NOISE_FILTER_MAX_STRENGTH, int(round(self.noise_amplitude * 2)))

    @property
    def vignette_angle(self) -> float:
        """ffmpeg ``vignette`` lens angle for this strength."""
        return VIGNETTE_MAX_ANGLE * self.vignette_strength


@lru_cache(maxsize=64)
def effect_parameters(settings: VHSSettings) -> EffectParameters:
    """Clamp settings and derive the effect constants (cached per value)."""
    s = settings.clamped()
    shift = s.color_shift / 10.0
    text = s.date_stamp_text.strip() if s.date_stamp else ""

    return EffectParameters(
        contrast=s.contrast / 100.0,
        brightness=s.brightness / 100.0,
        saturation=s.saturation / 100.0,
        color_bias=tuple(c * shift for c in COLOR_SHIFT_BIAS),
        aberration_offset=int(math.floor(s.chromatic_aberration)),
        noise_amplitude=s.noise / 100.0 * NOISE_MAX_AMPLITUDE,
        ghost_weight=s.ghosting / GHOST_DIVISOR,
        blur_sigma=s.blur,
        scan_line_alpha=s.scan_lines / SCAN_LINE_DIVISOR,
        tracking_bands=int(math.floor(s.tracking_error)),
        tracking_max_offset=s.tracking_error * TRACKING_OFFSET_SCALE / 2.0,
        vignette_strength=s.vignette / 100.0,
        date_stamp_text=text,
        target_fps=s.target_fps,
    )


def date_stamp_font_size(height: int) -> int:
    return max(DATE_STAMP_MIN_FONT_SIZE, height // DATE_STAMP_FONT_DIVISOR)
