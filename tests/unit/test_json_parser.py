import pytest

from biowell.services.llm import parse_llm_json


def test_parse_llm_json_valid() -> None:
    payload = parse_llm_json('{"title":"ok","sessions":[]}')
    assert payload["title"] == "ok"


def test_parse_llm_json_extracts_embedded_object() -> None:
    payload = parse_llm_json('Sure! {"title": "plan", "notes": ["a"]} Enjoy.')
    assert payload["notes"] == ["a"]


def test_parse_llm_json_malformed_raises() -> None:
    with pytest.raises(ValueError):
        parse_llm_json('{"title":"bad",}')
