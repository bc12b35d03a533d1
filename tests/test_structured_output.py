"""
Test Structured Output Parser
==============================

Verifies the tier order (structure check, direct parse, auto-wrap,
fallback) and that parse() is total over arbitrary input.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from core.structured_output import ParseTier, StructuredOutputParser, parse
from core.text_extraction import (
    extract_bullets,
    extract_labeled_number,
    find_structured_span,
    strip_code_fences,
    trim_blank_lines,
    unescape_common,
)


def dict_only(data):
    if not isinstance(data, dict):
        raise ValueError("expected an object")
    return data


def wrap_raw(text):
    return {"raw": text, "recovered": True}


@pytest.fixture
def parser():
    return StructuredOutputParser()


def test_valid_json_parses_verbatim(parser):
    result = parser.parse_with_report('{"a": 1}', fallback={}, context_label="Test")
    assert result.value == {"a": 1}
    assert result.tier == ParseTier.DIRECT
    assert result.strategy == "verbatim"
    assert not result.recovered


def test_fenced_json(parser):
    text = 'Here you go:\n```json\n{"a": [1, 2]}\n```\nThanks'
    result = parser.parse_with_report(text, fallback={}, context_label="Test")
    assert result.value == {"a": [1, 2]}
    assert result.strategy == "fenced"


def test_json_inside_prose_uses_span(parser):
    text = 'Analysis complete. {"score": 7} Let me know.'
    result = parser.parse_with_report(text, fallback={}, context_label="Test")
    assert result.value == {"score": 7}
    assert result.strategy == "span"


def test_trailing_comma_is_repaired(parser):
    result = parser.parse_with_report('{"a": 1, "b": [1, 2,],}', fallback={}, context_label="Test")
    assert result.tier == ParseTier.DIRECT
    assert result.strategy == "repaired"
    assert result.value == {"a": 1, "b": [1, 2]}


def test_raw_diagram_is_auto_wrapped_verbatim(parser):
    """Text without any brace or bracket skips tier 2 and is wrapped after unescaping."""
    print("\n🧪 Test: raw diagram auto-wrap")
    diagram = "+-------+     +-------+\\n| user  | --> | api   |\\n+-------+     +-------+"
    result = parser.parse_with_report(diagram, fallback={}, context_label="Test", auto_wrap=wrap_raw)

    assert result.tier == ParseTier.AUTO_WRAPPED
    assert result.structure_found is False
    assert result.value["raw"] == unescape_common(diagram).strip()
    assert "\n| user  |" in result.value["raw"]


def test_auto_wrap_keeps_leading_indentation(parser):
    raw = "\n\n    def f():\n        return 1\n\n"
    result = parser.parse_with_report(raw, fallback={}, context_label="Test", auto_wrap=wrap_raw)
    assert result.value["raw"] == "    def f():\n        return 1"


def test_coerce_rejection_falls_through_to_auto_wrap(parser):
    result = parser.parse_with_report("[1, 2, 3]", fallback={}, context_label="Test",
                                      coerce=dict_only, auto_wrap=wrap_raw)
    assert result.tier == ParseTier.AUTO_WRAPPED
    assert result.structure_found is True
    assert result.value["raw"] == "[1, 2, 3]"


def test_empty_input_returns_fallback(parser):
    result = parser.parse_with_report("", fallback={"ok": False}, context_label="Test", auto_wrap=wrap_raw)
    assert result.tier == ParseTier.FALLBACK
    assert result.value == {"ok": False}


def test_prose_without_wrapper_returns_fallback(parser):
    assert parser.parse("just words", fallback="fb", context_label="Test") == "fb"


def test_failing_wrapper_returns_fallback(parser):
    def broken(text):
        raise RuntimeError("nope")
    assert parser.parse("plain text", fallback="fb", context_label="Test", auto_wrap=broken) == "fb"


@pytest.mark.parametrize("raw", [
    "", "   ", None, "{", "}{", "[[[", "not json at all", '{"a": }', "```json\n{broken\n```",
    "\\n\\t\\\"", '{"a": 1}', '```\n{"a": 1}\n```', "[1, 2", "\x00\x01", "{" * 50,
])
def test_parse_is_total(raw):
    value = parse(raw, fallback={"fallback": True}, context_label="Totality",
                  coerce=dict_only, auto_wrap=wrap_raw)
    assert isinstance(value, dict)


# =============================================================================
# Text helpers
# =============================================================================

def test_find_structured_span():
    assert find_structured_span("abc") is None
    text = 'x {"a": 1} y'
    start, end = find_structured_span(text)
    assert text[start:end] == '{"a": 1}'


def test_strip_code_fences():
    assert strip_code_fences("```python\nprint(1)\n```") == "print(1)"
    assert strip_code_fences("print(1)") == "print(1)"


def test_extract_bullets_by_section():
    text = "insights:\n- first\n- second\nrecommendations:\n- do it"
    assert extract_bullets(text, section="insights") == ["first", "second"]
    assert extract_bullets(text, section="recommendations") == ["do it"]
    assert extract_bullets(text, section="missing") == []


def test_extract_labeled_number():
    assert extract_labeled_number("Quality Score: 8.5/10", "quality score") == 8.5
    assert extract_labeled_number('"confidence": 0.4', "confidence") == 0.4
    assert extract_labeled_number("nothing here", "confidence") is None


def test_trim_blank_lines():
    assert trim_blank_lines("\n  \n   x\n  y  \n\n") == "   x\n  y"
    assert trim_blank_lines("") == ""
