from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import floorplan_preview
from floorplan_compiler import SAMPLE_SOURCE, FloorPlanCompiler, main, run_tests


def test_compile_sample_report():
    json_out, css, report, model = FloorPlanCompiler("sample").compile(SAMPLE_SOURCE, verbose=False)
    assert report["is_valid"] is True
    assert report["errors"] == []
    assert report["canvas"] == (18.0, 10.0)
    assert (report["rooms"], report["walls"], report["doors"], report["grids"]) == (6, 2, 1, 1)
    assert json.loads(json_out)["scale"] == 48.0
    assert css.startswith("/* Generated by floorplan-compiler */")
    assert model.scale == 48.0


def test_lex_error_is_reported_not_raised():
    json_out, css, report, model = FloorPlanCompiler().compile("@draw T { $ }", verbose=False)
    assert (json_out, css, model) == (None, None, None)
    assert report["is_valid"] is False
    assert report["errors"][0].startswith("Unexpected character '$'")
    assert report["canvas"] is None


def test_syntax_errors_still_produce_output():
    json_out, css, report, model = FloorPlanCompiler().compile("@draw T { }", verbose=False)
    assert report["is_valid"] is False
    assert "@canvas is required inside @draw" in report["errors"]
    assert model is not None
    assert css


def test_warnings_keep_report_valid():
    _, _, report, _ = FloorPlanCompiler().compile(
        "@draw T { @canvas 2U x 2U; room a at (1zz, 1zz) size (1zz, 1zz); }", verbose=False)
    assert report["is_valid"] is True
    assert report["warnings"] == ["Unknown unit: zz, using value as-is"]


def test_compiler_warnings_are_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="floorplan_compiler"):
        FloorPlanCompiler().compile(
            "@draw T { @canvas 2U x 2U; repeat P from (0U, 0U) to (1U, 0U) space 0U; }", verbose=False)
    assert any("Repeat spacing must be positive" in r.getMessage() for r in caplog.records)


def test_verbose_prints_phases(capsys):
    FloorPlanCompiler().compile(SAMPLE_SOURCE, verbose=True)
    out = capsys.readouterr().out
    for phase in ("[PHASE 1: LEXICAL ANALYSIS]", "[PHASE 2: PARSING]",
                  "[PHASE 3: SEMANTIC COMPILATION]", "[PHASE 4: CODE GENERATION]"):
        assert phase in out
    assert "Scale: 48px per U" in out


def test_builtin_self_check_passes(capsys):
    passed, failed = run_tests()
    assert failed == 0
    assert passed > 0


def test_cli_writes_outputs(tmp_path):
    code = main(["--code", SAMPLE_SOURCE, "--output-dir", str(tmp_path), "--name", "home", "--quiet"])
    assert code == 0
    for suffix in (".css", ".json", ".svg"):
        assert (tmp_path / f"home{suffix}").exists()
    assert json.loads((tmp_path / "home.json").read_text(encoding="utf-8"))["canvas"] == {
        "cols": 18.0, "rows": 10.0}
    assert not (tmp_path / "home.png").exists()


def test_cli_input_file_names_outputs(tmp_path):
    source = tmp_path / "cottage.fp"
    source.write_text("@draw Cottage { @canvas 4U x 4U; }", encoding="utf-8")
    out_dir = tmp_path / "out"
    assert main(["--input", str(source), "--output-dir", str(out_dir), "--quiet"]) == 0
    assert (out_dir / "cottage.css").exists()


def test_cli_default_output_dir_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOORPLAN_OUTPUT_DIR", str(tmp_path / "env-out"))
    assert main(["--quiet"]) == 0
    assert (tmp_path / "env-out" / "floorplan.css").exists()


def test_cli_error_diagnostics_exit_nonzero(tmp_path):
    code = main(["--code", "@draw T { }", "--output-dir", str(tmp_path), "--quiet"])
    assert code == 1
    assert (tmp_path / "floorplan.css").exists()


def test_cli_lex_error_writes_nothing(tmp_path, capsys):
    code = main(["--code", "@draw T { $ }", "--output-dir", str(tmp_path), "--quiet"])
    assert code == 1
    assert list(tmp_path.iterdir()) == []
    assert "Unexpected character" in capsys.readouterr().err


def test_cli_test_flag(capsys):
    assert main(["--test"]) == 0


def test_cli_png_without_cairosvg_is_skipped(tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(floorplan_preview, "HAS_CAIROSVG", False)
    with caplog.at_level(logging.WARNING):
        code = main(["--code", SAMPLE_SOURCE, "--output-dir", str(tmp_path), "--png", "--quiet"])
    assert code == 0
    assert not (tmp_path / "floorplan.png").exists()
    assert any("cairosvg not installed" in r.getMessage() for r in caplog.records)


@pytest.mark.skipif(not floorplan_preview.HAS_CAIROSVG, reason="cairosvg not available")
def test_cli_png(tmp_path):
    code = main(["--code", SAMPLE_SOURCE, "--output-dir", str(tmp_path), "--png", "--quiet"])
    assert code == 0
    assert (tmp_path / "floorplan.png").read_bytes()[:4] == b"\x89PNG"
