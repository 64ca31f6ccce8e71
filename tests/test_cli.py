"""Tests for the command line interface."""

import json

import numpy as np
from PIL import Image
from typer.testing import CliRunner

from vhs_degrader.cli import app, build_settings, get_files_to_process
from vhs_degrader.core.settings import PRESETS

runner = CliRunner()


def test_presets_lists_every_preset():
    result = runner.invoke(app, ["presets"])
    assert result.exit_code == 0
    for name in PRESETS:
        assert name in result.output
    assert "scanLines" in result.output


def test_graph_for_preset():
    result = runner.invoke(app, ["graph", "--preset", "clean"])
    assert result.exit_code == 0
    assert "gblur=sigma=0.5" in result.output
    assert "drawtext" not in result.output


def test_graph_with_overrides():
    result = runner.invoke(app, ["graph", "-p", "clean", "--set", "blur=0", "--set", "noise=0"])
    assert result.exit_code == 0
    assert "gblur" not in result.output
    assert "noise=" not in result.output


def test_graph_unknown_preset():
    result = runner.invoke(app, ["graph", "--preset", "betamax"])
    assert result.exit_code == 2
    assert "Unknown preset" in result.output


def test_graph_bad_override():
    result = runner.invoke(app, ["graph", "--set", "noise=loud"])
    assert result.exit_code == 2


def test_info():
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "batch" in result.output


def test_build_settings_merge_order(tmp_path):
    path = tmp_path / "look.json"
    path.write_text(json.dumps({"noise": 20, "vignette": 10}))

    settings = build_settings("worn", path, ["vignette=70"], 24.0)

    assert settings.noise == 20
    assert settings.vignette == 70
    assert settings.target_fps == 24.0
    assert settings.scan_lines == PRESETS["worn"].scan_lines


def test_get_files_to_process(tmp_path):
    (tmp_path / "a.png").write_bytes(b"")
    (tmp_path / "b.mp4").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("")
    nested = tmp_path / "more"
    nested.mkdir()
    (nested / "c.mov").write_bytes(b"")

    assert [p.name for p in get_files_to_process(tmp_path)] == ["a.png", "b.mp4"]
    assert len(get_files_to_process(tmp_path, recursive=True)) == 3


def test_process_image(tmp_path):
    source = tmp_path / "photo.png"
    pixels = np.full((60, 80, 3), 120, dtype=np.uint8)
    Image.fromarray(pixels).save(source)

    result = runner.invoke(app, ["process", str(source), "-p", "worn", "--seed", "3"])

    assert result.exit_code == 0, result.output
    output = tmp_path / "photo_vhs.png"
    assert output.exists()
    with Image.open(output) as img:
        assert img.size == (80, 60)
        assert img.mode == "RGBA"


def test_process_image_to_jpeg(tmp_path):
    source = tmp_path / "photo.png"
    Image.fromarray(np.full((40, 40, 3), 200, dtype=np.uint8)).save(source)
    target = tmp_path / "tape.jpg"

    result = runner.invoke(app, ["process", str(source), "-o", str(target), "--set", "scanLines=80"])

    assert result.exit_code == 0, result.output
    with Image.open(target) as img:
        assert img.mode == "RGB"


def test_process_rejects_unknown_strategy(tmp_path):
    source = tmp_path / "photo.png"
    Image.fromarray(np.zeros((8, 8, 3), dtype=np.uint8)).save(source)
    result = runner.invoke(app, ["process", str(source), "--strategy", "turbo"])
    assert result.exit_code == 2
