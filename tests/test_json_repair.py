"""
Test: JSON recovery from model output.
"""
import pytest

from teachdash.services.json_repair import (
    JSONRepairError, clean_json_response, parse_truncated, rebuild_flat_object, strip_fences,
)


class TestStripFences:
    def test_json_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_json_tag(self):
        assert strip_fences('json {"a": 1}') == '{"a": 1}'

    def test_none(self):
        assert strip_fences(None) == ''


class TestCleanJsonResponse:
    def test_plain_object(self):
        assert clean_json_response('{"title": "Essay"}') == {"title": "Essay"}

    def test_fenced_object(self):
        assert clean_json_response('```json\n{"codes": ["9.3.R.1"]}\n```') == {"codes": ["9.3.R.1"]}

    def test_prose_around_object(self):
        text = 'Sure! Here is your JSON:\n{"journal_prompt": "Describe a rainy day."}\nHope that helps.'
        assert clean_json_response(text) == {"journal_prompt": "Describe a rainy day."}

    def test_trailing_commas(self):
        text = '{"prompts": [{"journal_type": "quote",},], "act_skill": "commas",}'
        result = clean_json_response(text)
        assert result["act_skill"] == "commas"
        assert result["prompts"] == [{"journal_type": "quote"}]

    def test_raw_newline_inside_string(self):
        text = '{"act_explanation": "Line one\nLine two", "act_rule": "Use a comma"}'
        result = clean_json_response(text)
        assert result["act_explanation"] == "Line one\nLine two"
        assert result["act_rule"] == "Use a comma"

    def test_truncated_output_keeps_complete_lines(self):
        text = ('{\n"journal_type": "creative",\n"journal_prompt": "Write a story",\n'
                '"prompts": [{"slot": 0}, {"slot": 1}\n"act_question": "The dog')
        result = clean_json_response(text)
        assert result == {"journal_type": "creative", "journal_prompt": "Write a story"}

    def test_unclosed_object_without_any_brace_pair_fails(self):
        with pytest.raises(JSONRepairError):
            clean_json_response('{"journal_type": "creative", "journal_prompt": "Write')

    def test_list_is_not_accepted(self):
        with pytest.raises(JSONRepairError):
            clean_json_response('[1, 2, 3]')

    def test_garbage_raises(self):
        with pytest.raises(JSONRepairError) as exc:
            clean_json_response('I could not do that.')
        assert "Could not parse JSON" in str(exc.value)

    def test_empty_raises(self):
        with pytest.raises(JSONRepairError):
            clean_json_response('')

    def test_custom_strategy_order(self):
        assert clean_json_response('{"a": 1}', strategies=(rebuild_flat_object,)) == {"a": 1}


class TestStrategies:
    def test_truncated_without_fragment_raises(self):
        with pytest.raises(ValueError):
            parse_truncated('no braces here')

    def test_flat_rebuild_scalars(self):
        text = '{"title": "Quiz", "count": 3, "ratio": 0.5, "done": true, "extra": null, "nested": {"x": }'
        result = rebuild_flat_object(text)
        assert result["title"] == "Quiz"
        assert result["count"] == 3
        assert result["ratio"] == 0.5
        assert result["done"] is True
        assert result["extra"] is None

    def test_deep_nesting_fails_cleanly(self):
        text = '{"a": ' + '[' * 100000 + ']' * 100000 + '}'
        with pytest.raises(JSONRepairError):
            clean_json_response(text)
