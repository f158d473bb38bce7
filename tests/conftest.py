import pytest
import os
import sys
import json
import uuid
from unittest.mock import MagicMock, patch
from datetime import datetime, date, timezone

# Add project root to Python Path so modules can be imported
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mood_report.core.models import AnalysisReport, EmotionType, MoodRecord

# ============================================================================
# 1. GLOBAL MOCKS (ENV VARS & APIS)
# ============================================================================

@pytest.fixture(autouse=True)
def mock_env_vars():
    """Sets up fake environment variables for all tests."""
    with patch.dict(os.environ, {
        "GEMINI_API_KEY": "fake_key",
        "MONGODB_URI": "mongodb://localhost:27017",
        "MONGODB_DATABASE": "test_mood_reports",
    }):
        for name in ("REPORT_CONFIDENCE", "REPORT_API_COST", "REPORT_DEADLINE_SECONDS",
                     "REPORT_REGENERATION_POLICY", "REPORT_SERIALIZE_PER_PERIOD",
                     "GEMINI_MODEL", "GEMINI_MAX_ATTEMPTS"):
            os.environ.pop(name, None)
        yield

@pytest.fixture
def mock_genai():
    """Mocks Google Generative AI (model catalogue)."""
    with patch("mood_report.utils.debug_models.genai") as mock:
        mock.configure = MagicMock()

        generating = MagicMock()
        generating.name = "models/gemini-2.0-flash-lite"
        generating.display_name = "Gemini 2.0 Flash-Lite"
        generating.supported_generation_methods = ["generateContent", "countTokens"]

        embedding = MagicMock()
        embedding.name = "models/text-embedding-004"
        embedding.display_name = "Text Embedding 004"
        embedding.supported_generation_methods = ["embedContent"]

        mock.list_models.return_value = [generating, embedding]
        yield mock

# ============================================================================
# 2. MOOD DATA FIXTURES
# ============================================================================

@pytest.fixture
def make_record():
    """Factory for mood records."""
    def _make(emotion="neutral", triggers=(), day=1, hour=9, user_id="user-1"):
        return MoodRecord(
            user_id=user_id,
            emotion=EmotionType(emotion),
            description=f"{emotion} on day {day}",
            triggers=frozenset(triggers),
            recorded_at=datetime(2024, 3, day, hour, 0, tzinfo=timezone.utc),
        )
    return _make

@pytest.fixture
def sample_records(make_record):
    """Five records over one week."""
    return [
        make_record("happy", ["exercise", "friends"], day=1),
        make_record("anxious", ["work"], day=2),
        make_record("calm", ["exercise"], day=3),
        make_record("sad", ["work", "sleep"], day=4),
        make_record("excited", ["friends", "exercise"], day=5),
    ]

# ============================================================================
# 3. MODEL REPLY FIXTURES
# ============================================================================

@pytest.fixture
def report_sections():
    """A well-formed report document as the model should return it."""
    return {
        "summary": {
            "overallTrend": "improving",
            "averageScore": 4.6,
            "keyInsights": ["Exercise days score higher", "Work is the main stressor"],
            "urgencyLevel": "low",
        },
        "patterns": {
            "weeklyPattern": {
                "bestDays": ["Friday"],
                "challengingDays": ["Thursday"],
                "volatilityIndex": 2.1,
            },
            "dailyPattern": {
                "morningAverage": 4.2,
                "eveningAverage": 5.0,
                "peakHours": ["18:00-20:00"],
            },
            "triggers": {
                "positive": [{"factor": "exercise", "frequency": 3, "impact": 1.5}],
                "negative": [{"factor": "work", "frequency": 2, "impact": -1.8}],
            },
        },
        "recommendations": {
            "immediate": [{
                "title": "Evening walk",
                "description": "Walk for 20 minutes after work",
                "priority": "high",
                "estimatedImpact": "medium",
            }],
            "shortTerm": [],
            "longTerm": [],
        },
        "riskAssessment": {
            "level": "green",
            "indicators": ["Mood is trending up"],
            "suggestions": ["Keep exercising"],
        },
    }

@pytest.fixture
def well_formed_reply(report_sections):
    """Bare report JSON."""
    return json.dumps(report_sections)

@pytest.fixture
def make_envelope():
    """Wraps a text in the generateContent response envelope."""
    def _wrap(text):
        return json.dumps({
            "candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}],
            "usageMetadata": {"promptTokenCount": 420},
        })
    return _wrap

# ============================================================================
# 4. COLLABORATOR FAKES
# ============================================================================

class FakeRecordSource:
    """Returns fixed records and remembers the queried interval."""

    def __init__(self, records):
        self.records = list(records)
        self.calls = []

    def find_records(self, user_id, start, end):
        self.calls.append((user_id, start, end))
        return list(self.records)


class ScriptedModelClient:
    """Replays a script of replies (str) or failures (Exception)."""

    def __init__(self, *script):
        self.script = list(script)
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step


class InMemoryReportStore:
    """ReportStore double keeping saved reports in a list."""

    def __init__(self, fail_with=None):
        self.reports = []
        self.fail_with = fail_with

    def save(self, draft):
        if self.fail_with:
            raise self.fail_with
        report = AnalysisReport.from_draft(
            draft, report_id=str(uuid.uuid4()), now=datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)
        )
        self.reports.append(report)
        return report

    def find_latest_for_period(self, user_id, analysis_type, start_date, end_date):
        matches = [
            r for r in self.reports
            if (r.user_id, r.analysis_type, r.start_date, r.end_date)
            == (user_id, analysis_type, start_date, end_date)
        ]
        return matches[-1] if matches else None


@pytest.fixture
def record_source(sample_records):
    return FakeRecordSource(sample_records)

@pytest.fixture
def fake_record_source():
    return FakeRecordSource

@pytest.fixture
def scripted_client():
    return ScriptedModelClient

@pytest.fixture
def report_store():
    return InMemoryReportStore()

@pytest.fixture
def in_memory_store():
    return InMemoryReportStore

@pytest.fixture
def fixed_today():
    return date(2024, 3, 7)
