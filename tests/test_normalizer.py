"""Tests for model-output normalization."""

import pytest

from chatlens.errors import ResponseParseError
from chatlens.normalizer import ResponseNormalizer, coerce_str, coerce_str_list, sanitize_content


def test_parse_plain_json():
    assert ResponseNormalizer.parse('{"high": []}') == {"high": []}


def test_parse_code_fence():
    raw = '결과입니다:\n```json\n{"high": [{"index": 1}]}\n```'
    assert ResponseNormalizer.parse(raw) == {"high": [{"index": 1}]}


def test_parse_trailing_prose():
    raw = '{"a": {"b": "}"}} 이상입니다. {"ignored": true}'
    assert ResponseNormalizer.parse(raw) == {"a": {"b": "}"}}


def test_parse_repairs_broken_json():
    raw = "{'high': [{'index': 1, 'reason': '갈등'},], }"
    assert ResponseNormalizer.parse(raw)["high"][0]["index"] == 1


@pytest.mark.parametrize("raw", ["", "   ", None, "[1, 2]", "{}"])
def test_parse_rejects_empty_or_wrong_type(raw):
    with pytest.raises(ResponseParseError):
        ResponseNormalizer.parse(raw)


def test_parse_list_expected():
    assert ResponseNormalizer.parse("[1, 2]", list) == [1, 2]


def test_extract_first_json_without_object():
    with pytest.raises(ValueError):
        ResponseNormalizer.extract_first_json("no json here")


def test_normalize_field_names_canonical_wins():
    data = {"overview": "alias", "relationshipOverview": "canonical", "Advice": {"x": 1}}
    normalized = ResponseNormalizer.normalize_field_names(data)
    assert normalized["relationshipOverview"] == "canonical"
    assert normalized["practicalAdvice"] == {"x": 1}


def test_sanitize_content_strips_text_keys_recursively():
    data = {
        "timeline": [{"date": "1월", "description": "여행", "message": "원문"}],
        "turning_points": [{"index": 3, "content": "원문", "extra": {"text": "원문", "keep": 1}}],
    }
    assert sanitize_content(data) == {
        "timeline": [{"date": "1월", "description": "여행"}],
        "turning_points": [{"index": 3, "extra": {"keep": 1}}],
    }


def test_coercion_helpers():
    assert coerce_str_list("하나") == ["하나"]
    assert coerce_str_list([{"title": "t"}, 2]) == ["t", "2"]
    assert coerce_str_list({"a": 1}) == []
    assert coerce_str(None) == ""
    assert coerce_str(["a", "b"]) == "a b"
