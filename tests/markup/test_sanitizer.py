"""Tests for markup sanitizing and truncation closing."""

import html

import pytest

from scene_stage.markup import close_truncated, sanitize
from scene_stage.markup.sanitizer import strip_noise


# ── strip_noise ──────────────────────────────────────────


def test_strip_code_fence():
    assert strip_noise("```xml\n<narrate>Hi</narrate>\n```") == "<narrate>Hi</narrate>"


def test_strip_bare_fence():
    assert strip_noise("```\n<narrate>Hi</narrate>\n```") == "<narrate>Hi</narrate>"


def test_strip_prose_around_tags():
    text = "Sure! Here is the scene:\n<narrate>Hi</narrate>\nHope you like it."
    assert strip_noise(text) == "<narrate>Hi</narrate>"


def test_strip_xml_declaration():
    assert strip_noise('<?xml version="1.0"?>\n<narrate>Hi</narrate>') == "<narrate>Hi</narrate>"


def test_strip_no_tags_is_empty():
    assert strip_noise("Just some prose.") == ""


# ── sanitize ─────────────────────────────────────────────


@pytest.mark.parametrize("markup", [
    "<narrate>Hello</narrate>",
    '<scene><background src="forest.png"/><enter id="kai" position="left"/>'
    '<dialogue from="kai">Hello</dialogue></scene>',
    '<dialogue from="kai">Look, <ref id="mira"/>! <em>Now</em>.</dialogue>',
])
def test_valid_markup_is_unchanged(markup):
    result = sanitize(markup)
    assert result.ok
    assert result.markup == markup
    assert result.repairs == []
    assert result.root is not None


def test_empty_input_has_no_root_and_no_error():
    result = sanitize("")
    assert result.empty
    assert result.ok
    assert result.root is None


def test_prose_only_is_empty():
    assert sanitize("The model forgot the tags.").empty


def test_repair_then_parse():
    result = sanitize('<dialoge from="kai">Hi</dialoge>')
    assert result.ok
    assert result.repairs == [("dialoge", "dialogue")]
    assert result.root[0].tag == "dialogue"


def test_unrepairable_degrades():
    text = "<narrate>never closed"
    result = sanitize(text)
    assert result.degraded
    assert result.root is None
    assert result.error
    assert result.escaped == html.escape(text)


def test_unknown_far_tag_degrades_only_if_invalid():
    # Unknown but well-formed: parses fine, the compiler skips it later.
    assert sanitize("<xyzzy/>").ok
    # Mismatched close that no repair can fix: degraded, never raises.
    result = sanitize("<xyzzy>text</qwerty>")
    assert result.degraded


def test_entities_are_not_resolved():
    result = sanitize('<!DOCTYPE x [<!ENTITY e "boom">]><narrate>&e;</narrate>')
    assert result.root is None or "boom" not in "".join(result.root.itertext())


# ── close_truncated ──────────────────────────────────────


def test_close_open_dialogue():
    assert close_truncated('<dialogue from="a">Hello th') == '<dialogue from="a">Hello th</dialogue>'


def test_close_nested_innermost_first():
    text = '<narrate>Hi</narrate><dialogue from="a">Yo <em>wa'
    assert close_truncated(text) == text + "</em></dialogue>"


def test_drop_partial_tag():
    assert close_truncated("<narrate>Hi</narrate><dialo") == "<narrate>Hi</narrate>"


def test_drop_partial_attribute():
    text = '<dialogue from="a">Hi</dialogue><enter id="b'
    assert close_truncated(text) == '<dialogue from="a">Hi</dialogue>'


def test_self_closing_needs_no_close():
    assert close_truncated('<background src="x"/><narrate>Hi') == (
        '<background src="x"/><narrate>Hi</narrate>'
    )


def test_complete_markup_untouched():
    text = "<scene><narrate>Done.</narrate></scene>"
    assert close_truncated(text) == text


def test_truncated_output_parses():
    assert sanitize(close_truncated('<scene><dialogue from="a">Half a sen')).ok


def test_well_formed_typo_is_repaired():
    result = sanitize('<narate>Hi</narate><emter id="kai"/>')
    assert result.ok
    assert sorted(result.repairs) == [("emter", "enter"), ("narate", "narrate")]
    assert [el.tag for el in result.root] == ["narrate", "enter"]
