"""VHS settings value object, built-in presets and settings loading."""

import json
import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from ..errors import InvalidSettingsError, UnknownPresetError
from . import (
    BLUR_RANGE,
    BRIGHTNESS_RANGE,
    CHROMATIC_ABERRATION_RANGE,
    COLOR_SHIFT_RANGE,
    CONTRAST_RANGE,
    DEFAULT_TARGET_FPS,
    GHOSTING_RANGE,
    NOISE_RANGE,
    SATURATION_RANGE,
    SCAN_LINES_RANGE,
    SHARPEN_RANGE,
    TARGET_FPS_RANGE,
    TRACKING_ERROR_RANGE,
    VIGNETTE_RANGE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VHSSettings:
    """
    Degradation parameters for one processing run.

    The default instance is neutral: every artifact is off and the color
    grade leaves pixels unchanged.
    """

    chromatic_aberration: float = 0.0  # horizontal RGB split in pixels
    color_shift: float = 0.0  # negative = cool, positive = warm
    saturation: float = 100.0  # percent of original
    brightness: float = 100.0
    contrast: float = 100.0
    noise: float = 0.0
    scan_lines: float = 0.0
    tracking_error: float = 0.0
    ghosting: float = 0.0
    sharpen: float = 0.0  # reserved, not applied by either strategy
    blur: float = 0.0
    vignette: float = 0.0
    date_stamp: bool = False
    date_stamp_text: str = ""
    target_fps: float = DEFAULT_TARGET_FPS

    def clamped(self) -> "VHSSettings":
        """Return a copy with every numeric field inside its documented range."""
        changes = {}
        for name, (low, high) in FIELD_RANGES.items():
            value = getattr(self, name)
            try:
                clamped = clamp_value(value, low, high, getattr(NEUTRAL, name))
            except (TypeError, ValueError) as e:
                raise InvalidSettingsError(
                    f"'{JSON_KEYS[name]}' must be a number, got {value!r}", stage="settings"
                ) from e
            if clamped != value or isinstance(value, int):
                changes[name] = clamped
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON wire format."""
        return {JSON_KEYS[key]: value for key, value in asdict(self).items()}


NEUTRAL = VHSSettings()

FIELD_RANGES: dict[str, tuple[float, float]] = {
    "chromatic_aberration": CHROMATIC_ABERRATION_RANGE,
    "color_shift": COLOR_SHIFT_RANGE,
    "saturation": SATURATION_RANGE,
    "brightness": BRIGHTNESS_RANGE,
    "contrast": CONTRAST_RANGE,
    "noise": NOISE_RANGE,
    "scan_lines": SCAN_LINES_RANGE,
    "tracking_error": TRACKING_ERROR_RANGE,
    "ghosting": GHOSTING_RANGE,
    "sharpen": SHARPEN_RANGE,
    "blur": BLUR_RANGE,
    "vignette": VIGNETTE_RANGE,
    "target_fps": TARGET_FPS_RANGE,
}

JSON_KEYS: dict[str, str] = {
    "chromatic_aberration": "chromaticAberration",
    "color_shift": "colorShift",
    "saturation": "saturation",
    "brightness": "brightness",
    "contrast": "contrast",
    "noise": "noise",
    "scan_lines": "scanLines",
    "tracking_error": "trackingError",
    "ghosting": "ghosting",
    "sharpen": "sharpen",
    "blur": "blur",
    "vignette": "vignette",
    "date_stamp": "dateStamp",
    "date_stamp_text": "dateStampText",
    "target_fps": "targetFPS",
}

# Accept both wire (camelCase) and attribute (snake_case) spellings
_FIELD_BY_KEY: dict[str, str] = {**{v: k for k, v in JSON_KEYS.items()}, **{k: k for k in JSON_KEYS}}

_FIELD_TYPES: dict[str, type] = {f.name: type(getattr(NEUTRAL, f.name)) for f in fields(VHSSettings)}


def clamp_value(value: float, low: float, high: float, default: float) -> float:
    """Clamp to [low, high]; NaN falls back to the neutral default."""
    value = float(value)
    if math.isnan(value):
        return float(default)
    return max(low, min(high, value))


# Presets run from "cleanliness" to "degradation": every artifact field is
# non-decreasing and saturation/brightness non-increasing along this order.
PRESETS: dict[str, VHSSettings] = {
    "clean": VHSSettings(
        chromatic_aberration=1,
        color_shift=2,
        saturation=95,
        brightness=100,
        contrast=105,
        noise=5,
        scan_lines=10,
        tracking_error=0,
        ghosting=1,
        sharpen=0,
        blur=0.5,
        vignette=15,
        date_stamp=False,
        date_stamp_text="",
    ),
    "authentic": VHSSettings(
        chromatic_aberration=3,
        color_shift=5,
        saturation=85,
        brightness=95,
        contrast=110,
        noise=15,
        scan_lines=30,
        tracking_error=2,
        ghosting=3,
        sharpen=2,
        blur=1,
        vignette=30,
        date_stamp=True,
        date_stamp_text="JAN 15 1997",
    ),
    "worn": VHSSettings(
        chromatic_aberration=6,
        color_shift=8,
        saturation=75,
        brightness=90,
        contrast=115,
        noise=35,
        scan_lines=50,
        tracking_error=5,
        ghosting=6,
        sharpen=3,
        blur=2,
        vignette=45,
        date_stamp=True,
        date_stamp_text="AUG 03 1988",
    ),
    "degraded": VHSSettings(
        chromatic_aberration=10,
        color_shift=10,
        saturation=65,
        brightness=85,
        contrast=125,
        noise=60,
        scan_lines=70,
        tracking_error=8,
        ghosting=9,
        sharpen=5,
        blur=3,
        vignette=60,
        date_stamp=True,
        date_stamp_text="DEC 24 1982",
    ),
}

PRESET_NAMES: tuple[str, ...] = tuple(PRESETS)


def resolve_preset(name: str) -> VHSSettings:
    """Return a fresh copy of a built-in preset."""
    key = name.strip().lower()
    if key not in PRESETS:
        raise UnknownPresetError(name, PRESET_NAMES)
    return replace(PRESETS[key])


def merge_overrides(base: VHSSettings, partial: dict[str, Any]) -> VHSSettings:
    """
    Return a new settings object with the provided fields overriding base.

    Keys may use the wire or attribute spelling. ``None`` values are skipped
    and unknown keys are ignored. No range validation happens here; effects
    clamp what they consume.
    """
    changes = {}
    for key, value in partial.items():
        if value is None:
            continue
        name = _FIELD_BY_KEY.get(key)
        if name is None:
            logger.warning("Ignoring unknown setting '%s'", key)
            continue
        changes[name] = value
    return replace(base, **changes)


def _coerce(name: str, value: Any) -> Any:
    expected = _FIELD_TYPES[name]
    if expected is bool:
        if not isinstance(value, bool):
            raise InvalidSettingsError(f"'{JSON_KEYS[name]}' must be true or false, got {value!r}", stage="settings")
        return value
    if expected is str:
        if not isinstance(value, str):
            raise InvalidSettingsError(f"'{JSON_KEYS[name]}' must be a string, got {value!r}", stage="settings")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidSettingsError(f"'{JSON_KEYS[name]}' must be a number, got {value!r}", stage="settings")
    return float(value)


def settings_from_dict(data: dict[str, Any], base: VHSSettings | None = None) -> VHSSettings:
    """
    Build settings from a JSON-style mapping.

    An optional ``"preset"`` key selects the base; remaining keys override it.
    """
    if not isinstance(data, dict):
        raise InvalidSettingsError("Settings must be a JSON object", stage="settings")

    data = dict(data)
    preset = data.pop("preset", None)
    if preset is not None:
        base = resolve_preset(str(preset))
    elif base is None:
        base = NEUTRAL

    partial = {}
    for key, value in data.items():
        name = _FIELD_BY_KEY.get(key)
        if name is None:
            logger.warning("Ignoring unknown setting '%s'", key)
            continue
        if value is not None:
            partial[name] = _coerce(name, value)

    return merge_overrides(base, partial)


def load_settings(path: Path, base: VHSSettings | None = None) -> VHSSettings:
    """Load settings from a JSON file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise InvalidSettingsError(f"Cannot read settings file {path}: {e}", stage="settings") from e
    except json.JSONDecodeError as e:
        raise InvalidSettingsError(f"Invalid JSON in {path}: {e}", stage="settings") from e
    return settings_from_dict(data, base)


def parse_override(text: str) -> tuple[str, Any]:
    """Parse a ``key=value`` override; values are decoded as JSON when possible."""
    key, sep, raw = text.partition("=")
    key = key.strip()
    if not sep or not key:
        raise InvalidSettingsError(f"Override must look like key=value, got '{text}'", stage="settings")
    if key not in _FIELD_BY_KEY:
        raise InvalidSettingsError(f"Unknown setting '{key}'", stage="settings")

    raw = raw.strip()
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw  # bare strings like JAN 15 1997

    name = _FIELD_BY_KEY[key]
    if _FIELD_TYPES[name] is str:
        value = raw
    return name, _coerce(name, value)
