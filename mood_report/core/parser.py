"""
Recovery of a typed report from raw model output.

The model reply is untrusted, semi-structured text. It may be wrapped in code
fences, nested as a string inside the vendor envelope
(candidates[0].content.parts[0].text), or surrounded by stray prose.
Parsing runs an ordered list of strategies. Each one returns either a parsed
AnalysisResult or a NoMatch, and the first success wins.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from mood_report.core.exceptions import MalformedResponse
from mood_report.core.models import (
    AnalysisPatterns,
    AnalysisRecommendations,
    AnalysisResult,
    AnalysisSummary,
    DailyPattern,
    Recommendation,
    RiskAssessment,
    Trigger,
    TriggerAnalysis,
    WeeklyPattern,
)

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

REQUIRED_SECTIONS = ("summary", "patterns", "recommendations", "riskAssessment")

# Sanity ranges, warned about but never enforced
SCORE_RANGE = (0.0, 10.0)
IMPACT_RANGE = (-10.0, 10.0)

RAW_PAYLOAD_LOG_LIMIT = 500

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


# ============================================================================
# STRATEGY OUTCOMES
# ============================================================================

@dataclass(frozen=True)
class NoMatch:
    """A strategy did not recognise the payload."""
    strategy: str
    reason: str

    def __str__(self) -> str:
        return f"{self.strategy}: {self.reason}"


ParseOutcome = Union[AnalysisResult, NoMatch]


# ============================================================================
# TEXT HELPERS
# ============================================================================

def strip_code_fences(text: str) -> str:
    """Removes surrounding ``` / ```json markers and whitespace."""
    cleaned = text.strip()
    while cleaned.startswith("```") or cleaned.endswith("```"):
        stripped = _FENCE_PATTERN.sub("", cleaned).strip()
        if stripped == cleaned:
            break
        cleaned = stripped
    return cleaned


def _load_object(text: str) -> Tuple[Optional[Dict[str, Any]], str]:
    """Parses text as a JSON object. Returns (object, error)."""
    try:
        data = json.loads(text)
    except (ValueError, TypeError) as e:
        return None, f"invalid JSON ({e})"
    if not isinstance(data, dict):
        return None, f"expected a JSON object, got {type(data).__name__}"
    return data, ""


# ============================================================================
# FIELD COERCION (PERMISSIVE)
# ============================================================================

def _as_float(value: Any, field_name: str,
              bounds: Optional[Tuple[float, float]] = None) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        logger.warning(f"Field '{field_name}' holds a boolean, expected a number")
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Field '{field_name}' is not numeric: {value!r}")
        return None
    except OverflowError:
        logger.warning(f"Field '{field_name}' exceeds the float range")
        return None
    if bounds and not bounds[0] <= number <= bounds[1]:
        logger.warning(f"Field '{field_name}' out of expected range {bounds}: {number}")
    return number


def _as_int(value: Any, field_name: str) -> Optional[Union[int, float]]:
    number = _as_float(value, field_name)
    if number is None:
        return None
    if number < 0:
        logger.warning(f"Field '{field_name}' is negative: {number}")
    return int(number) if number.is_integer() else number


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return [str(value)]
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_dict_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


# ============================================================================
# SECTION BUILDERS
# ============================================================================

def _build_summary(data: Dict[str, Any]) -> AnalysisSummary:
    return AnalysisSummary(
        overall_trend=_as_str(data.get("overallTrend")),
        average_score=_as_float(data.get("averageScore"), "summary.averageScore", SCORE_RANGE),
        key_insights=_as_str_list(data.get("keyInsights")),
        urgency_level=_as_str(data.get("urgencyLevel")),
    )


def _build_trigger(data: Dict[str, Any]) -> Trigger:
    return Trigger(
        factor=_as_str(data.get("factor")),
        frequency=_as_int(data.get("frequency"), "trigger.frequency"),
        impact=_as_float(data.get("impact"), "trigger.impact", IMPACT_RANGE),
    )


def _build_patterns(data: Dict[str, Any]) -> AnalysisPatterns:
    weekly = _as_dict(data.get("weeklyPattern"))
    daily = _as_dict(data.get("dailyPattern"))
    triggers = _as_dict(data.get("triggers"))
    return AnalysisPatterns(
        weekly_pattern=WeeklyPattern(
            best_days=_as_str_list(weekly.get("bestDays")),
            challenging_days=_as_str_list(weekly.get("challengingDays")),
            volatility_index=_as_float(weekly.get("volatilityIndex"), "weeklyPattern.volatilityIndex"),
        ),
        daily_pattern=DailyPattern(
            morning_average=_as_float(daily.get("morningAverage"), "dailyPattern.morningAverage", SCORE_RANGE),
            evening_average=_as_float(daily.get("eveningAverage"), "dailyPattern.eveningAverage", SCORE_RANGE),
            peak_hours=_as_str_list(daily.get("peakHours")),
        ),
        triggers=TriggerAnalysis(
            positive=[_build_trigger(t) for t in _as_dict_list(triggers.get("positive"))],
            negative=[_build_trigger(t) for t in _as_dict_list(triggers.get("negative"))],
        ),
    )


def _build_recommendation(data: Dict[str, Any]) -> Recommendation:
    return Recommendation(
        title=_as_str(data.get("title")),
        description=_as_str(data.get("description")),
        priority=_as_str(data.get("priority")),
        estimated_impact=_as_str(data.get("estimatedImpact")),
    )


def _build_recommendations(data: Dict[str, Any]) -> AnalysisRecommendations:
    return AnalysisRecommendations(
        immediate=[_build_recommendation(r) for r in _as_dict_list(data.get("immediate"))],
        short_term=[_build_recommendation(r) for r in _as_dict_list(data.get("shortTerm"))],
        long_term=[_build_recommendation(r) for r in _as_dict_list(data.get("longTerm"))],
    )


def _build_risk_assessment(data: Dict[str, Any]) -> RiskAssessment:
    return RiskAssessment(
        level=_as_str(data.get("level")),
        indicators=_as_str_list(data.get("indicators")),
        suggestions=_as_str_list(data.get("suggestions")),
    )


def match_schema(data: Dict[str, Any], strategy: str) -> ParseOutcome:
    """Builds an AnalysisResult if all four sections are present objects."""
    missing = [name for name in REQUIRED_SECTIONS if name not in data]
    if missing:
        return NoMatch(strategy, f"missing sections {missing}")
    not_objects = [name for name in REQUIRED_SECTIONS if not isinstance(data[name], dict)]
    if not_objects:
        return NoMatch(strategy, f"sections are not objects {not_objects}")

    return AnalysisResult(
        summary=_build_summary(data["summary"]),
        patterns=_build_patterns(data["patterns"]),
        recommendations=_build_recommendations(data["recommendations"]),
        risk_assessment=_build_risk_assessment(data["riskAssessment"]),
    )


# ============================================================================
# STRATEGIES
# ============================================================================

def parse_direct(cleaned: str) -> ParseOutcome:
    """The cleaned text is the report document itself."""
    data, error = _load_object(cleaned)
    if data is None:
        return NoMatch("direct", error)
    return match_schema(data, "direct")


def parse_envelope(cleaned: str) -> ParseOutcome:
    """The cleaned text is a vendor envelope carrying the report as a string."""
    data, error = _load_object(cleaned)
    if data is None:
        return NoMatch("envelope", error)
    try:
        inner = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return NoMatch("envelope", "no candidates[0].content.parts[0].text")
    if not isinstance(inner, str):
        return NoMatch("envelope", "envelope text is not a string")

    inner_data, error = _load_object(strip_code_fences(inner))
    if inner_data is None:
        return NoMatch("envelope", f"envelope text: {error}")
    return match_schema(inner_data, "envelope")


def parse_embedded_object(cleaned: str) -> ParseOutcome:
    """The report object is surrounded by stray prose."""
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return NoMatch("embedded_object", "no JSON object found")
    if start == 0 and end == len(cleaned) - 1:
        return NoMatch("embedded_object", "no surrounding text to strip")
    data, error = _load_object(cleaned[start:end + 1])
    if data is None:
        return NoMatch("embedded_object", error)
    return match_schema(data, "embedded_object")


DEFAULT_STRATEGIES: Tuple[Callable[[str], ParseOutcome], ...] = (
    parse_direct,
    parse_envelope,
    parse_embedded_object,
)


# ============================================================================
# PARSER
# ============================================================================

class ResponseParser:
    """Runs the parse strategies in order, first success wins."""

    def __init__(self, strategies: Tuple[Callable[[str], ParseOutcome], ...] = DEFAULT_STRATEGIES):
        self.strategies = strategies

    def parse(self, raw: str) -> AnalysisResult:
        """
        Recovers the four report sections from a raw model payload.

        Args:
            raw: Raw response text (report JSON, envelope, fenced or not).

        Returns:
            Parsed AnalysisResult.

        Raises:
            MalformedResponse: No strategy matched. Not retried.
        """
        cleaned = strip_code_fences(raw or "")
        misses: List[NoMatch] = []

        for strategy in self.strategies:
            outcome = strategy(cleaned)
            if isinstance(outcome, NoMatch):
                misses.append(outcome)
                continue
            logger.info(f"[OK] Model response parsed with strategy '{strategy.__name__}'")
            return outcome

        reasons = [str(miss) for miss in misses]
        logger.error(
            f"Malformed model response ({'; '.join(reasons)}). "
            f"Raw payload: {(raw or '')[:RAW_PAYLOAD_LOG_LIMIT]}"
        )
        raise MalformedResponse(raw or "", reasons)


def parse_response(raw: str) -> AnalysisResult:
    """Parses a raw model payload with the default strategies."""
    return ResponseParser().parse(raw)
