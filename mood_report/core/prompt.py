"""
Prompt construction for mood report generation.

The prompt is rendered from the feature summary and the caller's preferences
only, so identical inputs always give the identical prompt:
- REQUIREMENTS: output language, analysis depth, focus areas
- DATA SUMMARY: counts and averages, never raw record text
- OUTPUT FORMAT: the exact JSON schema the model must return
"""

import logging
from typing import Sequence, Tuple

from mood_report.core.models import (
    EMOTION_SCORE_TABLE,
    EMOTION_SCORE_TABLE_VERSION,
    AnalysisPreferences,
    FeatureSummary,
)

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

FOCUS_AREA_DELIMITER = ", "
NO_FOCUS_AREAS = "none specified"

# Returned verbatim by the model; keep in sync with core.parser.
REPORT_JSON_SCHEMA = """{
  "summary": {
    "overallTrend": "improving",
    "averageScore": 7.2,
    "keyInsights": ["insight 1", "insight 2"],
    "urgencyLevel": "low"
  },
  "patterns": {
    "weeklyPattern": {
      "bestDays": ["Saturday"],
      "challengingDays": ["Wednesday"],
      "volatilityIndex": 1.8
    },
    "dailyPattern": {
      "morningAverage": 6.8,
      "eveningAverage": 7.4,
      "peakHours": ["19:00-21:00"]
    },
    "triggers": {
      "positive": [{"factor": "exercise", "frequency": 4, "impact": 1.5}],
      "negative": [{"factor": "work pressure", "frequency": 5, "impact": -1.8}]
    }
  },
  "recommendations": {
    "immediate": [{"title": "Build an evening wind-down routine", "description": "Meditate or read lightly during the hour before sleep", "priority": "high", "estimatedImpact": "medium"}],
    "shortTerm": [],
    "longTerm": []
  },
  "riskAssessment": {
    "level": "green",
    "indicators": ["Overall mood trend is improving"],
    "suggestions": ["Keep up the current positive lifestyle"]
  }
}"""


# ============================================================================
# PROMPT BUILDER
# ============================================================================

class PromptBuilder:
    """Builds the report generation prompt from a feature summary."""

    def __init__(self, summary: FeatureSummary, preferences: AnalysisPreferences):
        self.summary = summary
        self.preferences = preferences

    @staticmethod
    def _format_pairs(pairs: Sequence[Tuple[str, int]]) -> str:
        if not pairs:
            return "none"
        return ", ".join(f"{label} x{count}" for label, count in pairs)

    def _build_requirements_section(self) -> str:
        focus_areas = [area.strip() for area in self.preferences.focus_areas if area and area.strip()]
        focus = FOCUS_AREA_DELIMITER.join(focus_areas) if focus_areas else NO_FOCUS_AREAS
        return f"""# Analysis requirements
- Language: {self.preferences.language}
- Analysis depth: {self.preferences.depth}
- Focus areas: {focus}"""

    def _build_data_section(self) -> str:
        scale = ", ".join(f"{emotion.value}={score}" for emotion, score in EMOTION_SCORE_TABLE.items())
        return f"""# User data summary
Total entries: {self.summary.total_entries}
Average mood score: {self.summary.average_score:.1f}
Score scale ({EMOTION_SCORE_TABLE_VERSION}): {scale}
Emotion distribution: {self._format_pairs(self.summary.emotion_counts)}
Most frequent triggers: {self._format_pairs(self.summary.top_triggers)}"""

    def build(self) -> str:
        """Renders the full prompt."""
        return f"""You are a professional mental-health data analyst. Based on the mood data summary below, write a personalised mood analysis report.
{self._build_requirements_section()}
{self._build_data_section()}
# Output format
Return the analysis strictly in the following JSON format. Do not add any explanation or text outside the JSON:
{REPORT_JSON_SCHEMA}
# Notes
1. Write every text field in the requested language ({self.preferences.language}).
2. Recommendations must be concrete and actionable.
3. Avoid any language of medical diagnosis.
4. Keep an overall positive and supportive tone.
5. The output must be strictly valid JSON.
"""


# ============================================================================
# PUBLIC API
# ============================================================================

def construct_prompt(summary: FeatureSummary, preferences: AnalysisPreferences) -> str:
    """
    Constructs the report prompt.

    Args:
        summary: Feature summary of the period.
        preferences: Language, depth and focus areas.

    Returns:
        Prompt string, identical for identical inputs.
    """
    prompt = PromptBuilder(summary, preferences).build()
    logger.debug(f"Prompt built ({len(prompt)} chars)")
    return prompt
