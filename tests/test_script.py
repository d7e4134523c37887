import json

import pytest

from sketchreel.errors import ValidationError
from sketchreel.script import (
    ArrowElement,
    CircleElement,
    RectangleElement,
    TextElement,
    UnknownElement,
    load_script,
    parse,
)


def test_parse_fills_defaults(raw_script):
    script = parse(raw_script)
    first, second = script.scenes

    assert first.narration == raw_script["scenes"][0]["voiceover"]
    assert second.id == "scene2"
    assert second.title == "Quiet"
    assert second.duration_seconds == 2.5
    assert script.total_duration == 7.5


def test_element_variants_and_geometry(raw_script):
    script = parse(raw_script)
    text, rect, arrow = script.scenes[0].elements
    (circle,) = script.scenes[1].elements

    assert isinstance(text, TextElement) and text.font_size == 32
    assert isinstance(rect, RectangleElement) and (rect.width, rect.height) == (150, 100)
    assert isinstance(arrow, ArrowElement) and (arrow.x2, arrow.y2) == (800, 350)
    assert isinstance(circle, CircleElement) and circle.radius == 50
    assert circle.color == "#ff0000"
    assert rect.color == "#000000" and rect.stroke_width == 2


def test_line_end_defaults_from_start():
    script = parse({"scenes": [{"elements": [{"type": "line", "x": 10, "y": 20}]}]})
    line = script.scenes[0].elements[0]
    assert (line.x1, line.y1, line.x2, line.y2) == (10, 20, 110, 70)


@pytest.mark.parametrize("duration", [None, 0, -3, ""])
def test_missing_or_non_positive_duration_defaults_to_five(duration):
    script = parse({"scenes": [{"durationSeconds": duration}]})
    assert script.scenes[0].duration_seconds == 5


def test_non_numeric_duration_rejected():
    with pytest.raises(ValidationError):
        parse({"scenes": [{"durationSeconds": "soon"}]})


@pytest.mark.parametrize("raw", [
    "{not json",
    "[]",
    "{}",
    '{"scenes": []}',
    '{"scenes": "nope"}',
])
def test_invalid_documents_rejected(raw):
    with pytest.raises(ValidationError):
        parse(raw)


def test_duplicate_scene_ids_rejected():
    with pytest.raises(ValidationError, match="duplicate"):
        parse({"scenes": [{"id": "a"}, {"id": "a"}]})


@pytest.mark.parametrize("scene_id", ["../../escaped", "a/b", "a\\b", "..", "."])
def test_path_like_scene_ids_rejected(scene_id):
    with pytest.raises(ValidationError, match="path separators"):
        parse({"scenes": [{"id": scene_id}]})


def test_dotted_scene_id_allowed():
    assert parse({"scenes": [{"id": "intro.v2"}]}).scenes[0].id == "intro.v2"


def test_default_ids_do_not_collide_with_explicit_ones():
    with pytest.raises(ValidationError):
        parse({"scenes": [{"id": "scene2"}, {}]})


def test_unknown_elements_and_fields_round_trip():
    raw = {
        "id": "x",
        "theme": "dark",
        "scenes": [{
            "id": "s",
            "elements": [
                {"type": "star", "points": 5, "x": 3},
                {"type": "rectangle", "x": 1, "y": 2, "rounded": True},
            ],
        }],
    }
    script = parse(raw)
    star = script.scenes[0].elements[0]
    assert isinstance(star, UnknownElement)

    again = parse(script.to_json())
    assert again.to_dict() == script.to_dict()
    dumped = json.loads(script.to_json())
    assert dumped["theme"] == "dark"
    assert dumped["scenes"][0]["elements"][0] == {"type": "star", "points": 5, "x": 3}
    assert dumped["scenes"][0]["elements"][1]["rounded"] is True
    assert dumped["scenes"][0]["durationSeconds"] == 5


def test_load_script_uses_file_stem(tmp_path):
    path = tmp_path / "lesson_one.json"
    path.write_text("\ufeff" + '{"scenes": [{"narration": "hi"}]}', encoding="utf-8")
    script = load_script(path)
    assert script.id == "lesson_one"
    assert script.scenes[0].narration_text == "hi"


def test_load_script_missing_file(tmp_path):
    with pytest.raises(ValidationError):
        load_script(tmp_path / "nope.json")
