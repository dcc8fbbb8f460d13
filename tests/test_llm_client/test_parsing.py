"""Tests for JSON extraction from model output."""

from resight.llm_client import extract_json_object, strip_code_fences


class TestStripCodeFences:
    def test_json_fence(self) -> None:
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_text_untouched(self) -> None:
        assert strip_code_fences("  hello ") == "hello"


class TestExtractJsonObject:
    """Test tolerant JSON recovery."""

    def test_bare_object(self) -> None:
        assert extract_json_object('{"safe": false}') == {"safe": False}

    def test_fenced_object(self) -> None:
        assert extract_json_object('```json\n{"capability": "finish"}\n```') == {
            "capability": "finish"
        }

    def test_object_inside_prose(self) -> None:
        text = 'Here is my verdict: {"safe": true, "reason": "fine"} Hope that helps.'
        assert extract_json_object(text) == {"safe": True, "reason": "fine"}

    def test_array_is_not_an_object(self) -> None:
        assert extract_json_object("[1, 2, 3]") is None

    def test_garbage(self) -> None:
        assert extract_json_object("I cannot answer that.") is None
        assert extract_json_object("{not json}") is None
