"""
Pixel effects for VHS degradation.

Every effect takes an RGBA uint8 frame (H, W, 4) and returns a new frame;
inputs are never modified and the alpha channel is carried through as-is.
"""

from functools import lru_cache

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageDraw, ImageFont
from scipy.ndimage import gaussian_filter

from . import (
    DATE_STAMP_FILL,
    DATE_STAMP_FONTS,
    DATE_STAMP_MARGIN,
    DATE_STAMP_OUTLINE,
    DATE_STAMP_STROKE,
    LUMA_WEIGHTS,
    SCAN_LINE_SPACING,
    TRACKING_BAND_MAX_HEIGHT,
    TRACKING_BAND_MIN_HEIGHT,
    VIGNETTE_INNER_RADIUS,
)
from .mapping import date_stamp_font_size, effect_parameters
from .settings import VHSSettings


def ensure_rgba(frame: NDArray[np.uint8]) -> NDArray[np.uint8]:
    """Promote an (H, W, 3) RGB frame to opaque RGBA; RGBA frames pass through."""
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise ValueError(f"Expected an (H, W, 3|4) frame, got shape {frame.shape}")
    if frame.shape[2] == 4:
        return frame
    alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([frame.astype(np.uint8, copy=False), alpha], axis=2)


def _to_uint8(rgb: NDArray[np.float32], alpha: NDArray[np.uint8]) -> NDArray[np.uint8]:
    """Round, clamp and reattach alpha."""
    out = np.empty(rgb.shape[:2] + (4,), dtype=np.uint8)
    out[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    out[:, :, 3] = alpha
    return out


def color_grade(frame: NDArray[np.uint8], settings: VHSSettings) -> NDArray[np.uint8]:
    """
    Contrast, brightness, saturation and VHS color cast, per pixel.

    Applied in that order: contrast around the 0.5 midpoint, brightness
    scale, desaturation toward luminance, then the warm/cool bias.
    """
    p = effect_parameters(settings)
    if p.color_grade_is_identity:
        return frame.copy()

    rgb = frame[:, :, :3].astype(np.float32) / 255.0
    rgb = ((rgb - 0.5) * p.contrast + 0.5) * 255.0 * p.brightness

    gray = rgb @ np.asarray(LUMA_WEIGHTS, dtype=np.float32)
    gray = gray[:, :, np.newaxis]
    rgb = gray + (rgb - gray) * p.saturation

    rgb += np.asarray(p.color_bias, dtype=np.float32)

    return _to_uint8(rgb, frame[:, :, 3])


def chromatic_aberration(frame: NDArray[np.uint8], settings: VHSSettings) -> NDArray[np.uint8]:
    """
    Split red and blue horizontally.

    Output red at x comes from input x - offset, blue from x + offset, both
    clamped to the frame edge. Green is untouched.
    """
    offset = effect_parameters(settings).aberration_offset
    result = frame.copy()
    if offset == 0:
        return result

    width = frame.shape[1]
    columns = np.arange(width)
    red_src = np.clip(columns - offset, 0, width - 1)
    blue_src = np.clip(columns + offset, 0, width - 1)

    result[:, :, 0] = frame[:, red_src, 0]
    result[:, :, 2] = frame[:, blue_src, 2]
    return result


def add_noise(
    frame: NDArray[np.uint8],
    settings: VHSSettings,
    rng: np.random.Generator | None = None,
) -> NDArray[np.uint8]:
    """Add independent uniform noise in +/- amplitude to each R, G, B value."""
    amplitude = effect_parameters(settings).noise_amplitude
    if amplitude == 0:
        return frame.copy()

    rng = rng if rng is not None else np.random.default_rng()
    h, w = frame.shape[:2]
    noise = rng.uniform(-amplitude, amplitude, size=(h, w, 3)).astype(np.float32)
    rgb = frame[:, :, :3].astype(np.float32) + noise

    return _to_uint8(rgb, frame[:, :, 3])


def ghost(
    frame: NDArray[np.uint8],
    settings: VHSSettings,
    previous: NDArray[np.uint8] | None,
) -> NDArray[np.uint8]:
    """
    Blend the frame with its predecessor: cur * (1 - w) + prev * w.

    No-op without a previous frame, at zero weight, or when the previous
    frame has a different size.
    """
    weight = effect_parameters(settings).ghost_weight
    if weight == 0 or previous is None or previous.shape != frame.shape:
        return frame.copy()

    current = frame[:, :, :3].astype(np.float32)
    prior = previous[:, :, :3].astype(np.float32)
    rgb = current * (1.0 - weight) + prior * weight

    return _to_uint8(rgb, frame[:, :, 3])


def blur(frame: NDArray[np.uint8], settings: VHSSettings) -> NDArray[np.uint8]:
    """Gaussian blur with sigma equal to the blur radius in pixels."""
    sigma = effect_parameters(settings).blur_sigma
    if sigma == 0:
        return frame.copy()

    rgb = gaussian_filter(
        frame[:, :, :3].astype(np.float32),
        sigma=(sigma, sigma, 0),
        mode="nearest",
    )
    return _to_uint8(rgb, frame[:, :, 3])


def scan_lines(frame: NDArray[np.uint8], settings: VHSSettings) -> NDArray[np.uint8]:
    """Darken every other row by the scan-line alpha."""
    alpha = effect_parameters(settings).scan_line_alpha
    if alpha == 0:
        return frame.copy()

    rgb = frame[:, :, :3].astype(np.float32)
    rgb[::SCAN_LINE_SPACING] *= 1.0 - alpha

    return _to_uint8(rgb, frame[:, :, 3])


def tracking_error(
    frame: NDArray[np.uint8],
    settings: VHSSettings,
    rng: np.random.Generator | None = None,
) -> NDArray[np.uint8]:
    """
    Displace random horizontal bands, like a mistracked tape.

    Each band is copied from the pre-glitch frame and shifted sideways;
    pixels the shifted band does not cover keep their current content.
    Bands are drawn fresh on every call.
    """
    p = effect_parameters(settings)
    result = frame.copy()
    if p.tracking_bands == 0:
        return result

    rng = rng if rng is not None else np.random.default_rng()
    h, w = frame.shape[:2]

    for _ in range(p.tracking_bands):
        top = int(rng.uniform(0, h))
        band_height = int(rng.uniform(TRACKING_BAND_MIN_HEIGHT, TRACKING_BAND_MAX_HEIGHT))
        offset = int(round(rng.uniform(-p.tracking_max_offset, p.tracking_max_offset)))

        bottom = min(h, top + band_height)
        if bottom <= top or offset == 0 or abs(offset) >= w:
            continue

        band = frame[top:bottom]
        if offset > 0:
            result[top:bottom, offset:] = band[:, : w - offset]
        else:
            result[top:bottom, : w + offset] = band[:, -offset:]

    return result


@lru_cache(maxsize=16)
def vignette_mask(height: int, width: int, strength: float) -> NDArray[np.float32]:
    """
    Per-pixel brightness multiplier for a radial vignette.

    1.0 inside the inner radius, falling smoothly to 1 - strength at the
    corners.
    """
    cy, cx = height / 2.0, width / 2.0
    radius = float(np.hypot(cx, cy))
    inner = radius * VIGNETTE_INNER_RADIUS

    y, x = np.mgrid[0:height, 0:width].astype(np.float32)
    distance = np.hypot(x + 0.5 - cx, y + 0.5 - cy)

    t = np.clip((distance - inner) / max(radius - inner, 1e-6), 0.0, 1.0)
    falloff = t * t * (3.0 - 2.0 * t)  # smoothstep

    mask = (1.0 - strength * falloff).astype(np.float32)
    mask.setflags(write=False)
    return mask


def vignette(frame: NDArray[np.uint8], settings: VHSSettings) -> NDArray[np.uint8]:
    """Radial corner darkening."""
    strength = effect_parameters(settings).vignette_strength
    if strength == 0:
        return frame.copy()

    h, w = frame.shape[:2]
    mask = vignette_mask(h, w, strength)
    rgb = frame[:, :, :3].astype(np.float32) * mask[:, :, np.newaxis]

    return _to_uint8(rgb, frame[:, :, 3])


@lru_cache(maxsize=8)
def load_stamp_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """First available monospace font from DATE_STAMP_FONTS, else Pillow's default."""
    for name in DATE_STAMP_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def date_stamp(frame: NDArray[np.uint8], settings: VHSSettings) -> NDArray[np.uint8]:
    """Camcorder-style date text in the bottom-left corner."""
    text = effect_parameters(settings).date_stamp_text
    if not text:
        return frame.copy()

    h, w = frame.shape[:2]
    font = load_stamp_font(date_stamp_font_size(h))

    base = Image.fromarray(np.ascontiguousarray(frame))
    overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    draw.text(
        (DATE_STAMP_MARGIN, h - DATE_STAMP_MARGIN),
        text,
        font=font,
        fill=DATE_STAMP_FILL,
        anchor="ls",  # left, baseline
        stroke_width=DATE_STAMP_OUTLINE,
        stroke_fill=DATE_STAMP_STROKE,
    )

    stamped = np.array(Image.alpha_composite(base, overlay), dtype=np.uint8)
    stamped[:, :, 3] = frame[:, :, 3]
    return stamped
