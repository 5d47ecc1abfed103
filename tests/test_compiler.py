from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from floorplan_compiler import (
    SAMPLE_SOURCE,
    Diagnostics,
    ErrorKind,
    RepeatPattern,
    Severity,
    compile_model,
    expand_repeats,
    generate_css,
    parse_source,
)


def _compile(source):
    diagnostics = Diagnostics()
    model = compile_model(parse_source(source).ast, diagnostics)
    return model, diagnostics


def _plan(body="", units="@unit U = 50px;", canvas="@canvas 10U x 10U;"):
    return f"{units} @draw Test {{ {canvas} {body} }}"


def test_sample_model():
    model, diagnostics = _compile(SAMPLE_SOURCE)
    assert diagnostics.items == []
    assert model.scale == 48.0
    assert (model.canvas.cols, model.canvas.rows) == (18.0, 10.0)
    assert model.units == {"U": 48.0}
    assert [r.id for r in model.rooms] == [
        "living", "kitchen", "bedroom", "window_0", "window_1", "window_2"]


def test_repeat_rooms_follow_authored_rooms():
    model, _ = _compile(SAMPLE_SOURCE)
    windows = model.rooms[3:]
    assert [(r.x, r.y) for r in windows] == [(8.0, 1.0), (10.0, 1.0), (12.0, 1.0)]
    assert all(r.w == 0.3 and r.h == 0.3 for r in windows)
    assert all(r.label == "Window" for r in windows)


def test_named_unit_geometry_is_normalised():
    model, _ = _compile(_plan(
        "room a at (1m, 2m) size (3m, 4m);",
        units="@unit U = 50px; @unit m = 100px;",
    ))
    room = model.rooms[0]
    assert (room.x, room.y, room.w, room.h) == (2.0, 4.0, 6.0, 8.0)


def test_wall_length_and_angle():
    model, _ = _compile(_plan("wall from (1U, 5U) to (13U, 5U); wall from (7U, 1U) to (7U, 4U);"))
    horizontal, vertical = model.walls
    assert horizontal.length == 12.0
    assert horizontal.angle == 0.0
    assert vertical.length == 3.0
    assert vertical.angle == pytest.approx(90.0)


def test_diagonal_wall():
    model, _ = _compile(_plan("wall from (0U, 0U) to (3U, 4U);"))
    assert model.walls[0].length == 5.0
    assert model.walls[0].angle == pytest.approx(53.13010235415598)


def test_door_width_uses_coordinate_unit():
    model, _ = _compile(_plan(
        "door from (2m, 0m) to (2m, 1m) width 1U;",
        units="@unit U = 50px; @unit m = 100px;",
    ))
    door = model.doors[0]
    assert door.width == 2.0
    assert (door.x1, door.y1, door.x2, door.y2) == (4.0, 0.0, 4.0, 2.0)
    assert door.length == 2.0


def test_grid_sizes_are_normalised():
    model, _ = _compile(_plan(
        "@grid dotted size 1m x 2m color red alpha 0.3;",
        units="@unit U = 50px; @unit m = 25px;",
    ))
    grid = model.grids[0]
    assert (grid.mode, grid.sx, grid.sy, grid.color, grid.alpha) == ("dotted", 0.5, 1.0, "red", 0.3)


def test_unknown_unit_warns_once_and_passes_through():
    model, diagnostics = _compile(_plan("room a at (1zz, 2zz) size (3zz, 4zz);"))
    room = model.rooms[0]
    assert (room.x, room.y, room.w, room.h) == (1.0, 2.0, 3.0, 4.0)
    assert [d.message for d in diagnostics.warnings] == ["Unknown unit: zz, using value as-is"]
    assert diagnostics.warnings[0].kind is ErrorKind.SEMANTIC
    assert not diagnostics.has_errors()


def test_unknown_unit_warned_per_declaration():
    _, diagnostics = _compile(_plan(
        "room a at (1zz, 2zz) size (3zz, 4zz); room b at (1zz, 2zz) size (3zz, 4zz);"))
    assert len(diagnostics.warnings) == 2


def test_unresolvable_unit_is_reported_then_passes_through():
    model, diagnostics = _compile(_plan(
        "room a at (1a, 1a) size (1a, 1a);",
        units="@unit a = 2b; @unit b = 2a;",
    ))
    messages = [d.message for d in diagnostics.warnings]
    assert "Could not resolve unit: a" in messages
    assert "Could not resolve unit: b" in messages
    assert "Unknown unit: a, using value as-is" in messages
    assert model.rooms[0].x == 1.0


def test_zero_sized_base_passes_values_through():
    model, diagnostics = _compile("@unit U = 0px; @draw T { @canvas 4U x 3U; }")
    assert (model.canvas.cols, model.canvas.rows) == (4.0, 3.0)
    assert [d.message for d in diagnostics.warnings] == ["Unit U resolves to 0px, using value as-is"]


def test_zero_spacing_repeat_is_skipped():
    model, diagnostics = _compile(_plan("repeat Post from (0U, 0U) to (4U, 0U) space 0U;"))
    assert model.rooms == ()
    assert diagnostics.warnings[0].severity is Severity.WARNING
    assert "Post" in diagnostics.warnings[0].message


def test_css_properties_are_copied():
    ast = parse_source(_plan("room k at (0U, 0U) size (1U, 1U) { background: red; }")).ast
    model = compile_model(ast)
    assert model.rooms[0].css == {"background": "red"}
    assert model.rooms[0].css is not ast.rooms[0].properties


def test_reserved_nodes_do_not_affect_output():
    model, diagnostics = _compile(_plan("use Ground at (0U, 0U);"))
    assert model.rooms == ()
    assert diagnostics.items == []


def test_expand_repeats_diagonal():
    pattern = RepeatPattern("Window", 0.0, 0.0, 3.0, 4.0, 2.5, "U")
    rooms = expand_repeats([pattern])
    assert [r.id for r in rooms] == ["window_0", "window_1", "window_2"]
    assert [(r.x, r.y) for r in rooms] == [(0.0, 0.0), (1.5, 2.0), (3.0, 4.0)]
    assert all(r.unit == "U" for r in rooms)


@pytest.mark.parametrize(
    "end, spacing, count",
    [((8.0, 0.0), 2.0, 5), ((0.0, 6.0), 2.0, 4), ((0.0, 0.0), 2.0, 1), ((3.0, 0.0), 2.0, 2)],
)
def test_expand_repeats_counts(end, spacing, count):
    pattern = RepeatPattern("Post", 0.0, 0.0, end[0], end[1], spacing, "U")
    assert len(expand_repeats([pattern])) == count


def test_expand_repeats_inherits_span():
    pattern = parse_source(_plan("repeat Post from (0U, 0U) to (2U, 0U) space 1U;")).ast.repeats[0]
    rooms = expand_repeats([pattern])
    assert all(r.span == pattern.span for r in rooms)


def test_negative_spacing_warns():
    diagnostics = Diagnostics()
    rooms = expand_repeats([RepeatPattern("Post", 0.0, 0.0, 1.0, 0.0, -1.0, "U")], diagnostics)
    assert rooms == []
    assert len(diagnostics.warnings) == 1


def test_to_dict_shape():
    model, _ = _compile(_plan(
        'room a at (0U, 0U) size (1U, 1U) { label: "A"; }'
        "room b at (0U, 0U) size (1U, 1U);"
        "@grid;"
    ))
    data = model.to_dict()
    assert set(data) == {"scale", "canvas", "units", "rooms", "walls", "doors", "grids"}
    assert data["canvas"] == {"cols": 10.0, "rows": 10.0}
    assert data["rooms"][0] == {"id": "a", "x": 0.0, "y": 0.0, "w": 1.0, "h": 1.0, "label": "A"}
    assert "label" not in data["rooms"][1]
    assert "css" not in data["rooms"][1]
    assert data["grids"] == [{"mode": "grid", "sx": 1.0, "sy": 1.0}]


def test_to_json_round_trips():
    model, _ = _compile(SAMPLE_SOURCE)
    assert json.loads(model.to_json()) == model.to_dict()


def test_compile_does_not_mutate_ast():
    ast = parse_source(SAMPLE_SOURCE).ast
    compile_model(ast)
    assert len(ast.rooms) == 3


def test_declared_cm_shadows_physical_unit_in_chain():
    model, diagnostics = _compile(
        "@unit U = 50px; @unit cm = 37.795px; @unit m = 100cm;"
        "@draw T { @canvas 10m x 8m; }"
    )
    assert model.units["cm"] == pytest.approx(37.795)
    assert model.units["m"] == pytest.approx(3779.5)
    assert model.canvas.cols == pytest.approx(755.9)
    assert model.canvas.rows == pytest.approx(604.72)
    assert diagnostics.items == []


def test_compiling_same_ast_twice_gives_equal_models():
    ast = parse_source(SAMPLE_SOURCE).ast
    first, second = compile_model(ast), compile_model(ast)
    assert first == second
    assert generate_css(first) == generate_css(second)


def test_warnings_without_collector_are_logged(caplog):
    ast = parse_source(_plan("room a at (1zz, 1zz) size (1zz, 1zz);")).ast
    with caplog.at_level(logging.WARNING, logger="floorplan_compiler"):
        model = compile_model(ast)
    assert model.rooms[0].x == 1.0
    assert any("Unknown unit: zz" in r.getMessage() for r in caplog.records)
