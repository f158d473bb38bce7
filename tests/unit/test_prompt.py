import json

from mood_report.core.models import AnalysisPreferences, FeatureSummary
from mood_report.core.prompt import NO_FOCUS_AREAS, PromptBuilder, construct_prompt


def _summary():
    return FeatureSummary(
        total_entries=5,
        average_score=4.6,
        emotion_counts=(("calm", 2), ("happy", 3)),
        top_triggers=(("exercise", 3), ("work", 2)),
    )


class TestPromptBuilder:
    """Test suite for prompt rendering."""

    # ========================================================================
    # 1. CONTENT
    # ========================================================================

    def test_contains_preferences(self):
        prefs = AnalysisPreferences(language="en-US", depth="brief", focus_areas=["sleep", "work"])

        prompt = construct_prompt(_summary(), prefs)

        assert "Language: en-US" in prompt
        assert "Analysis depth: brief" in prompt
        assert "Focus areas: sleep, work" in prompt

    def test_contains_summary_figures(self):
        prompt = construct_prompt(_summary(), AnalysisPreferences())

        assert "Total entries: 5" in prompt
        assert "Average mood score: 4.6" in prompt
        assert "calm x2, happy x3" in prompt
        assert "exercise x3, work x2" in prompt
        assert "Score scale (v1)" in prompt

    def test_defaults_when_no_focus_areas(self):
        prompt = construct_prompt(_summary(), AnalysisPreferences())

        assert "Language: zh-CN" in prompt
        assert "Analysis depth: detailed" in prompt
        assert f"Focus areas: {NO_FOCUS_AREAS}" in prompt

    def test_schema_and_instruction_present(self):
        prompt = construct_prompt(_summary(), AnalysisPreferences())

        assert "strictly in the following JSON format" in prompt
        for key in ("summary", "patterns", "recommendations", "riskAssessment"):
            assert f'"{key}"' in prompt

    # ========================================================================
    # 2. DETERMINISM & ESCAPING
    # ========================================================================

    def test_identical_inputs_give_identical_prompt(self):
        prefs = AnalysisPreferences(focus_areas=["sleep"])
        assert PromptBuilder(_summary(), prefs).build() == PromptBuilder(_summary(), prefs).build()

    def test_special_characters_survive_json_embedding(self):
        prefs = AnalysisPreferences(focus_areas=['say "hi"', "back\\slash", "line\nbreak", "睡眠"])
        prompt = construct_prompt(_summary(), prefs)

        body = json.dumps({"contents": [{"parts": [{"text": prompt}]}]}, ensure_ascii=False)

        assert json.loads(body)["contents"][0]["parts"][0]["text"] == prompt
