"""
Test: Bellringer prompt and ACT question generation.
"""
from datetime import date

from teachdash.services.bellringer_generator import (
    DEFAULT_SUBPROMPT, build_context, generate_act_question, generate_from_image,
    generate_full_bellringer, generate_single_prompt, normalize_act_fields, split_emojis,
)
from fake_provider import FakeProvider

FULL_RESPONSE = {
    "prompts": [
        {"journal_type": "creative", "journal_prompt": "Two strangers are stuck in an elevator."},
        {"journal_type": "quote", "journal_prompt": "'The only way out is through.'", "journal_subprompt": "EXPLAIN!"},
        {"journal_type": "emoji", "journal_prompt": "Tell a story using these emojis: 🐶🌧️"},
        {"journal_type": "reflective", "journal_prompt": "What made you proud this week?"},
        {"journal_type": "list", "journal_prompt": "An extra prompt the model should not have sent."},
    ],
    "act_skill": "Apostrophes",
    "act_question": "The <b>dogs</b> bowl was empty.",
    "act_choices": "A. dogs\nB. dog's\nC. dogs'\nD. No change",
    "act_answer": "B",
    "act_rule": "Use an apostrophe to show possession.",
}


class TestNormalizeActFields:
    def test_splits_choices(self):
        result = normalize_act_fields({"act_choices": "A. one\nB. two\n\nC. three", "act_answer": "C"})
        assert result["act_choice_a"] == "A. one"
        assert result["act_choice_c"] == "C. three"
        assert result["act_choice_d"] == ""
        assert result["act_correct_answer"] == "C"
        assert result["act_explanation"] == ""

    def test_keeps_explicit_columns(self):
        result = normalize_act_fields({"act_choices": "A. x", "act_choice_a": "kept", "act_correct_answer": "D",
                                       "act_answer": "A"})
        assert result["act_choice_a"] == "kept"
        assert result["act_correct_answer"] == "D"


class TestSplitEmojis:
    def test_split(self):
        result = split_emojis("Tell a story using these emojis: 🐶🌧️🎈")
        assert result["instruction"] == "Tell a story using these emojis"
        assert "🐶" in result["emojis"] and "🎈" in result["emojis"]

    def test_empty(self):
        assert split_emojis("") == {"instruction": "", "emojis": ""}


class TestBuildContext:
    def test_recent_values(self):
        recent = [{"act_skill": "Commas", "journal_type": "quote"}, {"act_skill": None, "journal_type": "emoji"}]
        context = build_context(recent, today=date(2025, 3, 12))
        assert context["day_of_week"] == "Wednesday"
        assert context["recent_act_skills"] == ["Commas"]
        assert context["recent_journal_types"] == ["quote", "emoji"]


class TestGenerateFull:
    def test_four_prompts_and_act_fields(self):
        provider = FakeProvider([FULL_RESPONSE])
        result, error = generate_full_bellringer(provider, build_context([], today=date(2025, 3, 12)), "spring break")
        assert error is None
        assert len(result["prompts"]) == 4
        assert result["prompts"][0]["journal_subprompt"] == DEFAULT_SUBPROMPT
        assert result["prompts"][1]["journal_subprompt"] == "EXPLAIN!"
        assert result["journal_prompt"] == "Two strangers are stuck in an elevator."
        assert result["act_choice_b"] == "B. dog's"
        assert result["act_correct_answer"] == "B"
        assert "spring break" in provider.calls[0]["messages"][0]["content"]

    def test_loose_prompt_entries(self):
        provider = FakeProvider([{"prompts": ["Write about rain", 7, None, {"journal_type": "list",
                                                                           "journal_prompt": "Five fears"}]}])
        result, error = generate_full_bellringer(provider, {})
        assert error is None
        assert [p["journal_prompt"] for p in result["prompts"]] == ["Write about rain", "Five fears"]
        assert result["journal_prompt"] == "Write about rain"
        assert result["prompts"][0]["journal_subprompt"] == DEFAULT_SUBPROMPT

    def test_prompts_not_a_list(self):
        result, error = generate_full_bellringer(FakeProvider([{"prompts": "Write about rain"}]), {})
        assert error is None
        assert result["prompts"] == []

    def test_parse_error(self):
        provider = FakeProvider(["Sorry, I can't help with that."])
        result, error = generate_full_bellringer(provider, {})
        assert result is None
        assert error.startswith("Failed to parse AI response")


class TestSingleGenerators:
    def test_single_prompt_defaults_subprompt(self):
        provider = FakeProvider([{"journal_type": "debate", "journal_prompt": "Should homework be banned?"}])
        result, error = generate_single_prompt(provider, "debate")
        assert error is None
        assert result["journal_subprompt"] == DEFAULT_SUBPROMPT
        assert "Type: debate" in provider.calls[0]["messages"][0]["content"]

    def test_image_prompt_forces_type(self):
        provider = FakeProvider([{"journal_type": "creative", "journal_prompt": "What happens next?"}])
        result, error = generate_from_image(provider, "aGVsbG8=", "image/png")
        assert error is None
        assert result["journal_type"] == "image"
        assert provider.calls[0]["image"] == "image/png"

    def test_act_question(self):
        provider = FakeProvider([{"act_skill": "Commas", "act_question": "q", "act_choices": "A. a\nB. b\nC. c\nD. d",
                                  "act_answer": "D"}])
        result, error = generate_act_question(provider, {"recent_act_skills": ["Apostrophes"]})
        assert error is None
        assert result["act_choice_d"] == "D. d"
        assert "Avoid: Apostrophes" in provider.calls[0]["messages"][0]["content"]
