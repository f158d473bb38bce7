"""
Domain models for mood report generation.

Contains:
- Emotion categories and the versioned emotion -> score table
- Inbound request types (date range, preferences, analysis request)
- The derived feature summary sent to the model
- The four report sections and the persisted AnalysisReport
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from mood_report.core.exceptions import InvalidRequest

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS & SCORE TABLE
# ============================================================================

class EmotionType(Enum):
    """Emotion categories a mood record can carry."""
    SAD = "sad"
    ANGRY = "angry"
    ANXIOUS = "anxious"
    NEUTRAL = "neutral"
    CALM = "calm"
    HAPPY = "happy"
    EXCITED = "excited"


class AnalysisType(Enum):
    """Kinds of analysis a caller can request."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


# Bump the version whenever a score changes or a category is added.
EMOTION_SCORE_TABLE_VERSION = "v1"
EMOTION_SCORE_TABLE: Dict[EmotionType, int] = {
    EmotionType.SAD: 1,
    EmotionType.ANGRY: 2,
    EmotionType.ANXIOUS: 3,
    EmotionType.NEUTRAL: 4,
    EmotionType.CALM: 5,
    EmotionType.HAPPY: 6,
    EmotionType.EXCITED: 7,
}

DEFAULT_LANGUAGE = "zh-CN"
DEFAULT_DEPTH = "detailed"
DEFAULT_PERIOD_DAYS = 7
DATE_FORMAT = "%Y-%m-%d"


def emotion_score(emotion: EmotionType) -> int:
    """Looks up the score of an emotion category."""
    try:
        return EMOTION_SCORE_TABLE[emotion]
    except KeyError:
        raise ValueError(f"No score defined for emotion {emotion!r}") from None


# ============================================================================
# MOOD RECORDS (EXTERNAL, READ-ONLY)
# ============================================================================

@dataclass(frozen=True)
class MoodRecord:
    """One timestamped mood observation submitted by a user."""
    user_id: str
    emotion: EmotionType
    description: str
    triggers: FrozenSet[str]
    recorded_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MoodRecord":
        """Builds a record from a stored mood document."""
        return cls(
            user_id=str(doc["user_id"]),
            emotion=EmotionType(str(doc["emotion_type"]).lower()),
            description=doc.get("mood_description") or "",
            triggers=frozenset(
                t.strip() for t in doc.get("triggers") or [] if isinstance(t, str) and t.strip()
            ),
            recorded_at=doc["record_time"],
        )


# ============================================================================
# REQUEST
# ============================================================================

@dataclass
class DateRange:
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class AnalysisPreferences:
    language: str = DEFAULT_LANGUAGE
    depth: str = DEFAULT_DEPTH
    focus_areas: List[str] = field(default_factory=list)


@dataclass
class AnalysisRequest:
    """Caller request. Defaults are filled in by ``resolve_defaults``."""
    analysis_type: str = AnalysisType.WEEKLY.value
    date_range: Optional[DateRange] = None
    preferences: Optional[AnalysisPreferences] = None

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "AnalysisRequest":
        """
        Parses the inbound camelCase request body.

        Args:
            payload: Dict with optional 'analysisType', 'dateRange' and 'preferences'.

        Raises:
            InvalidRequest: If a date is not in YYYY-MM-DD format.
        """
        payload = payload or {}
        range_data = payload.get("dateRange") or {}
        prefs_data = payload.get("preferences") or {}

        date_range = None
        if range_data:
            date_range = DateRange(
                start_date=_parse_date(range_data.get("startDate")),
                end_date=_parse_date(range_data.get("endDate")),
            )

        preferences = None
        if prefs_data:
            preferences = AnalysisPreferences(
                language=prefs_data.get("language") or DEFAULT_LANGUAGE,
                depth=prefs_data.get("depth") or DEFAULT_DEPTH,
                focus_areas=list(prefs_data.get("focusAreas") or []),
            )

        return cls(
            analysis_type=payload.get("analysisType") or AnalysisType.WEEKLY.value,
            date_range=date_range,
            preferences=preferences,
        )


@dataclass(frozen=True)
class ResolvedRequest:
    """A request with every default applied and validated."""
    analysis_type: AnalysisType
    start_date: date
    end_date: date
    preferences: AnalysisPreferences

    def period_key(self, user_id: str) -> Tuple[str, str, date, date]:
        return (user_id, self.analysis_type.value, self.start_date, self.end_date)

    def bounds(self) -> Tuple[datetime, datetime]:
        """Half-open [start 00:00, (end + 1 day) 00:00) interval in UTC."""
        start = datetime.combine(self.start_date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(self.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        return start, end


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), DATE_FORMAT).date()
    except ValueError:
        raise InvalidRequest(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def resolve_defaults(request: AnalysisRequest, today: date) -> ResolvedRequest:
    """
    Applies request defaults: trailing 7 days ending today, default preferences.

    Raises:
        InvalidRequest: Unknown analysis type or start date after end date.
    """
    try:
        analysis_type = AnalysisType(str(request.analysis_type).lower())
    except ValueError:
        raise InvalidRequest(f"Unknown analysis type '{request.analysis_type}'") from None

    date_range = request.date_range or DateRange()
    end_date = date_range.end_date or today
    start_date = date_range.start_date or end_date - timedelta(days=DEFAULT_PERIOD_DAYS - 1)

    if start_date > end_date:
        raise InvalidRequest(f"Start date {start_date} is after end date {end_date}")

    return ResolvedRequest(
        analysis_type=analysis_type,
        start_date=start_date,
        end_date=end_date,
        preferences=request.preferences or AnalysisPreferences(),
    )


# ============================================================================
# FEATURE SUMMARY
# ============================================================================

@dataclass(frozen=True)
class FeatureSummary:
    """Numeric aggregates sent to the model instead of the raw records."""
    total_entries: int
    average_score: float
    emotion_counts: Tuple[Tuple[str, int], ...] = ()
    top_triggers: Tuple[Tuple[str, int], ...] = ()


# ============================================================================
# REPORT SECTIONS
# ============================================================================

@dataclass
class AnalysisSummary:
    overall_trend: Optional[str] = None
    average_score: Optional[float] = None
    key_insights: List[str] = field(default_factory=list)
    urgency_level: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallTrend": self.overall_trend,
            "averageScore": self.average_score,
            "keyInsights": list(self.key_insights),
            "urgencyLevel": self.urgency_level,
        }


@dataclass
class WeeklyPattern:
    best_days: List[str] = field(default_factory=list)
    challenging_days: List[str] = field(default_factory=list)
    volatility_index: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bestDays": list(self.best_days),
            "challengingDays": list(self.challenging_days),
            "volatilityIndex": self.volatility_index,
        }


@dataclass
class DailyPattern:
    morning_average: Optional[float] = None
    evening_average: Optional[float] = None
    peak_hours: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "morningAverage": self.morning_average,
            "eveningAverage": self.evening_average,
            "peakHours": list(self.peak_hours),
        }


@dataclass
class Trigger:
    factor: Optional[str] = None
    frequency: Optional[int] = None
    impact: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"factor": self.factor, "frequency": self.frequency, "impact": self.impact}


@dataclass
class TriggerAnalysis:
    positive: List[Trigger] = field(default_factory=list)
    negative: List[Trigger] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positive": [t.to_dict() for t in self.positive],
            "negative": [t.to_dict() for t in self.negative],
        }


@dataclass
class AnalysisPatterns:
    weekly_pattern: WeeklyPattern = field(default_factory=WeeklyPattern)
    daily_pattern: DailyPattern = field(default_factory=DailyPattern)
    triggers: TriggerAnalysis = field(default_factory=TriggerAnalysis)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weeklyPattern": self.weekly_pattern.to_dict(),
            "dailyPattern": self.daily_pattern.to_dict(),
            "triggers": self.triggers.to_dict(),
        }


@dataclass
class Recommendation:
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    estimated_impact: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "estimatedImpact": self.estimated_impact,
        }


@dataclass
class AnalysisRecommendations:
    immediate: List[Recommendation] = field(default_factory=list)
    short_term: List[Recommendation] = field(default_factory=list)
    long_term: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "immediate": [r.to_dict() for r in self.immediate],
            "shortTerm": [r.to_dict() for r in self.short_term],
            "longTerm": [r.to_dict() for r in self.long_term],
        }


@dataclass
class RiskAssessment:
    level: Optional[str] = None
    indicators: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "indicators": list(self.indicators),
            "suggestions": list(self.suggestions),
        }


@dataclass
class AnalysisResult:
    """The four sections recovered from the model output."""
    summary: AnalysisSummary
    patterns: AnalysisPatterns
    recommendations: AnalysisRecommendations
    risk_assessment: RiskAssessment

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "patterns": self.patterns.to_dict(),
            "recommendations": self.recommendations.to_dict(),
            "riskAssessment": self.risk_assessment.to_dict(),
        }


# ============================================================================
# PERSISTED REPORT
# ============================================================================

@dataclass(frozen=True)
class ReportDraft:
    """Everything needed to persist a report, before it has an id."""
    user_id: str
    analysis_type: AnalysisType
    start_date: date
    end_date: date
    result: AnalysisResult
    data_points: int
    confidence_score: float
    api_cost: float


@dataclass(frozen=True)
class AnalysisReport:
    """A persisted report. Never mutated after it is stored."""
    report_id: str
    user_id: str
    analysis_type: AnalysisType
    start_date: date
    end_date: date
    result: AnalysisResult
    data_points: int
    confidence_score: float
    api_cost: float
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_draft(cls, draft: ReportDraft, report_id: str, now: datetime) -> "AnalysisReport":
        return cls(
            report_id=report_id,
            user_id=draft.user_id,
            analysis_type=draft.analysis_type,
            start_date=draft.start_date,
            end_date=draft.end_date,
            result=draft.result,
            data_points=draft.data_points,
            confidence_score=draft.confidence_score,
            api_cost=draft.api_cost,
            created_at=now,
            updated_at=now,
        )
