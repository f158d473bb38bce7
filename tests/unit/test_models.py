from datetime import date, datetime, timezone

import pytest

from mood_report.core.exceptions import InvalidRequest
from mood_report.core.models import (
    AnalysisRequest, AnalysisType, EmotionType, MoodRecord, resolve_defaults
)

TODAY = date(2024, 3, 7)


class TestResolveDefaults:
    """Test suite for request defaults."""

    def test_empty_request_is_weekly_last_seven_days(self):
        resolved = resolve_defaults(AnalysisRequest(), TODAY)

        assert resolved.analysis_type is AnalysisType.WEEKLY
        assert resolved.start_date == date(2024, 3, 1)
        assert resolved.end_date == TODAY
        assert resolved.preferences.language == "zh-CN"
        assert resolved.preferences.depth == "detailed"
        assert resolved.preferences.focus_areas == []

    def test_explicit_range_kept(self):
        request = AnalysisRequest.from_dict({
            "analysisType": "CUSTOM",
            "dateRange": {"startDate": "2024-01-01", "endDate": "2024-01-31"},
        })

        resolved = resolve_defaults(request, TODAY)

        assert resolved.analysis_type is AnalysisType.CUSTOM
        assert (resolved.start_date, resolved.end_date) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_only_end_date_given(self):
        request = AnalysisRequest.from_dict({"dateRange": {"endDate": "2024-02-10"}})
        assert resolve_defaults(request, TODAY).start_date == date(2024, 2, 4)

    def test_unknown_kind(self):
        with pytest.raises(InvalidRequest):
            resolve_defaults(AnalysisRequest(analysis_type="yearly"), TODAY)

    def test_start_after_end(self):
        request = AnalysisRequest.from_dict(
            {"dateRange": {"startDate": "2024-03-05", "endDate": "2024-03-01"}}
        )
        with pytest.raises(InvalidRequest):
            resolve_defaults(request, TODAY)

    def test_bad_date_format(self):
        with pytest.raises(InvalidRequest):
            AnalysisRequest.from_dict({"dateRange": {"startDate": "03/01/2024"}})

    def test_bounds_are_half_open_utc_days(self):
        resolved = resolve_defaults(AnalysisRequest(), TODAY)

        start, end = resolved.bounds()

        assert start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 8, tzinfo=timezone.utc)

    def test_preferences_parsed(self):
        request = AnalysisRequest.from_dict({
            "preferences": {"language": "en-US", "focusAreas": ["sleep"]}
        })
        prefs = resolve_defaults(request, TODAY).preferences

        assert prefs.language == "en-US"
        assert prefs.depth == "detailed"
        assert prefs.focus_areas == ["sleep"]


class TestMoodRecord:

    def test_from_document(self):
        doc = {
            "user_id": "u1",
            "emotion_type": "HAPPY",
            "mood_description": "good day",
            "triggers": [" exercise ", "", None, "friends"],
            "record_time": datetime(2024, 3, 1, 9, tzinfo=timezone.utc),
        }

        record = MoodRecord.from_document(doc)

        assert record.emotion is EmotionType.HAPPY
        assert record.triggers == frozenset({"exercise", "friends"})

    def test_unknown_emotion(self):
        with pytest.raises(ValueError):
            MoodRecord.from_document({
                "user_id": "u1", "emotion_type": "bored",
                "record_time": datetime(2024, 3, 1, tzinfo=timezone.utc),
            })

    def test_non_string_triggers_skipped(self):
        record = MoodRecord.from_document({
            "user_id": "u1", "emotion_type": "calm",
            "triggers": [1, {"label": "x"}, "work"],
            "record_time": datetime(2024, 3, 1, tzinfo=timezone.utc),
        })

        assert record.triggers == frozenset({"work"})
