import pytest

from backend.app.analysis.json_recovery import (
    coerce_number,
    coerce_score,
    ensure_array,
    extract_json_object,
    parse_if_stringified,
    strip_code_fences,
)
from backend.app.core.errors import AnalysisError


def test_strip_code_fences_removes_language_tag():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_extract_plain_object():
    assert extract_json_object('{"summary": "ok", "components": []}') == {"summary": "ok", "components": []}


def test_extract_object_surrounded_by_prose():
    text = 'Here is the analysis:\n{"securityScore": 80}\nLet me know if you need more.'
    assert extract_json_object(text) == {"securityScore": 80}


def test_extract_repairs_bare_keys_single_quotes_and_trailing_commas():
    text = "{summary: 'fine', risks: [{title: 'open port',},], enabled: True}"
    parsed = extract_json_object(text)
    assert parsed["summary"] == "fine"
    assert parsed["risks"] == [{"title": "open port"}]
    assert parsed["enabled"] is True


def test_extract_raises_when_nothing_recoverable():
    with pytest.raises(AnalysisError):
        extract_json_object("I could not analyze this diagram.")


def test_parse_if_stringified_decodes_json_arrays():
    assert parse_if_stringified('[{"id": "r1"}]') == [{"id": "r1"}]
    assert parse_if_stringified("plain text") == "plain text"


def test_parse_if_stringified_handles_python_style_lists():
    assert parse_if_stringified("[{'id': 'r1', 'severity': 'high'}]") == [{"id": "r1", "severity": "high"}]


def test_ensure_array_never_returns_non_list():
    assert ensure_array(None) == []
    assert ensure_array("not json", ["fallback"]) == ["fallback"]
    assert ensure_array({"id": 1}) == [{"id": 1}]
    assert ensure_array('[1, 2]') == [1, 2]
    assert ensure_array(42) == []


def test_coerce_score_clamps_and_parses():
    assert coerce_score("85%") == 85
    assert coerce_score(150) == 100
    assert coerce_score(-3) == 0
    assert coerce_score(72.5) == 72.5
    assert coerce_score(None) == 0
    assert coerce_score(True) == 0


def test_coerce_number_strips_currency():
    assert coerce_number("$1,250") == 1250.0
    assert coerce_number("n/a") == 0.0
