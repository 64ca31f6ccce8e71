"""Tests for the settings model, presets and settings loading."""

import json
import math

import pytest

from vhs_degrader.core.settings import (
    NEUTRAL,
    PRESET_NAMES,
    PRESETS,
    VHSSettings,
    load_settings,
    merge_overrides,
    parse_override,
    resolve_preset,
    settings_from_dict,
)
from vhs_degrader.errors import InvalidSettingsError, UnknownPresetError


class TestPresets:
    def test_preset_order(self):
        assert PRESET_NAMES == ("clean", "authentic", "worn", "degraded")

    @pytest.mark.parametrize(
        "field",
        ["noise", "scan_lines", "tracking_error", "ghosting", "chromatic_aberration", "vignette", "blur"],
    )
    def test_artifacts_non_decreasing(self, field):
        values = [getattr(PRESETS[name], field) for name in PRESET_NAMES]
        assert values == sorted(values)

    @pytest.mark.parametrize("field", ["saturation", "brightness"])
    def test_color_fidelity_non_increasing(self, field):
        values = [getattr(PRESETS[name], field) for name in PRESET_NAMES]
        assert values == sorted(values, reverse=True)

    def test_presets_are_within_range(self):
        for preset in PRESETS.values():
            assert preset.clamped() == preset

    def test_resolve_is_case_insensitive(self):
        assert resolve_preset("  Worn ") == PRESETS["worn"]

    def test_unknown_preset(self):
        with pytest.raises(UnknownPresetError) as excinfo:
            resolve_preset("betamax")
        assert isinstance(excinfo.value, InvalidSettingsError)
        assert "betamax" in str(excinfo.value)
        assert "authentic" in str(excinfo.value)


class TestClamping:
    def test_out_of_range_values_are_clamped(self):
        settings = VHSSettings(saturation=-50, noise=500, blur=99, target_fps=240, color_shift=-30).clamped()
        assert settings.saturation == 0
        assert settings.noise == 100
        assert settings.blur == 5
        assert settings.target_fps == 60
        assert settings.color_shift == -10

    def test_nan_falls_back_to_neutral(self):
        settings = VHSSettings(contrast=float("nan"), noise=float("nan")).clamped()
        assert settings.contrast == 100.0
        assert settings.noise == 0.0

    def test_ints_become_floats(self):
        settings = VHSSettings(noise=20).clamped()
        assert isinstance(settings.noise, float)

    def test_non_numeric_rejected(self):
        with pytest.raises(InvalidSettingsError):
            VHSSettings(noise="loud").clamped()

    def test_neutral_is_unchanged(self):
        assert NEUTRAL.clamped() == NEUTRAL


class TestMerge:
    def test_accepts_both_spellings(self):
        merged = merge_overrides(NEUTRAL, {"scanLines": 40, "tracking_error": 3})
        assert merged.scan_lines == 40
        assert merged.tracking_error == 3

    def test_base_unchanged_and_none_skipped(self):
        base = resolve_preset("clean")
        merged = merge_overrides(base, {"noise": 50, "blur": None})
        assert base.noise == 5
        assert merged.noise == 50
        assert merged.blur == base.blur

    def test_unknown_keys_ignored(self, caplog):
        merged = merge_overrides(NEUTRAL, {"wobble": 3})
        assert merged == NEUTRAL
        assert "wobble" in caplog.text

    def test_no_validation_on_merge(self):
        merged = merge_overrides(NEUTRAL, {"noise": 900})
        assert merged.noise == 900
        assert merged.clamped().noise == 100


class TestFromDict:
    def test_preset_key_selects_base(self):
        settings = settings_from_dict({"preset": "worn", "noise": 10, "dateStampText": "MAY 01 1991"})
        assert settings.scan_lines == PRESETS["worn"].scan_lines
        assert settings.noise == 10.0
        assert settings.date_stamp_text == "MAY 01 1991"

    def test_default_base_is_neutral(self):
        assert settings_from_dict({}) == NEUTRAL

    def test_round_trip_through_wire_format(self):
        preset = PRESETS["degraded"]
        data = preset.to_dict()
        assert data["targetFPS"] == 30.0
        assert data["dateStamp"] is True
        assert settings_from_dict(data) == preset

    @pytest.mark.parametrize(
        "data",
        [
            {"noise": "high"},
            {"noise": True},
            {"dateStamp": "yes"},
            {"dateStampText": 1997},
        ],
    )
    def test_wrong_types_rejected(self, data):
        with pytest.raises(InvalidSettingsError):
            settings_from_dict(data)

    def test_not_an_object(self):
        with pytest.raises(InvalidSettingsError):
            settings_from_dict([1, 2, 3])

    def test_unknown_preset_in_file(self):
        with pytest.raises(UnknownPresetError):
            settings_from_dict({"preset": "vhs-c"})


class TestLoadSettings:
    def test_load_file(self, tmp_path):
        path = tmp_path / "look.json"
        path.write_text(json.dumps({"preset": "clean", "vignette": 80}))
        settings = load_settings(path)
        assert settings.vignette == 80
        assert settings.noise == PRESETS["clean"].noise

    def test_load_onto_base(self, tmp_path):
        path = tmp_path / "look.json"
        path.write_text(json.dumps({"ghosting": 7}))
        settings = load_settings(path, base=PRESETS["authentic"])
        assert settings.ghosting == 7
        assert settings.date_stamp_text == "JAN 15 1997"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{noise: 3")
        with pytest.raises(InvalidSettingsError, match="Invalid JSON"):
            load_settings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidSettingsError, match="Cannot read"):
            load_settings(tmp_path / "absent.json")


class TestParseOverride:
    def test_number(self):
        assert parse_override("noise=40") == ("noise", 40.0)

    def test_camel_case_key(self):
        assert parse_override("scanLines = 12.5") == ("scan_lines", 12.5)

    def test_bool(self):
        assert parse_override("dateStamp=true") == ("date_stamp", True)

    def test_text_kept_verbatim(self):
        assert parse_override("dateStampText=MAY 01 1991") == ("date_stamp_text", "MAY 01 1991")
        assert parse_override("dateStampText=1991") == ("date_stamp_text", "1991")

    def test_nan_is_a_number(self):
        name, value = parse_override("blur=NaN")
        assert name == "blur"
        assert math.isnan(value)

    @pytest.mark.parametrize("text", ["noise", "=3", "wobble=2", "noise=abc"])
    def test_rejected(self, text):
        with pytest.raises(InvalidSettingsError):
            parse_override(text)
