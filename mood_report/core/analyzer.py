"""
Pre-processing of mood records before they reach the model.

This module validates and reduces the raw records of a period to a compact
feature set, so the prompt never carries raw user text:
- SufficiencyGate: rejects periods with too little history
- FeatureSummarizer: record count, average score, emotion distribution, top triggers
"""

import logging
import statistics
from collections import Counter
from typing import List, Sequence

from mood_report.core.exceptions import InsufficientData
from mood_report.core.models import FeatureSummary, MoodRecord, emotion_score

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

# Business constant, not configurable per call.
MIN_RECORDS_REQUIRED = 3

TOP_TRIGGERS_LIMIT = 5


# ============================================================================
# ANALYZERS
# ============================================================================

class SufficiencyGate:
    """Rejects requests lacking enough history."""

    @staticmethod
    def check(records: Sequence[MoodRecord]) -> Sequence[MoodRecord]:
        """
        Passes the records through unchanged if there are enough of them.

        Raises:
            InsufficientData: Fewer than MIN_RECORDS_REQUIRED records.
        """
        if len(records) < MIN_RECORDS_REQUIRED:
            logger.warning(
                f"Insufficient data: {len(records)} records, {MIN_RECORDS_REQUIRED} required"
            )
            raise InsufficientData(required=MIN_RECORDS_REQUIRED, available=len(records))
        return records


class FeatureSummarizer:
    """Reduces raw mood records to numeric aggregates."""

    @staticmethod
    def summarize(records: Sequence[MoodRecord]) -> FeatureSummary:
        """
        Computes the feature summary of a validated record list.

        Args:
            records: Mood records of the period (at least one).

        Returns:
            FeatureSummary with count, mean score, emotion counts and top triggers.

        Raises:
            ValueError: Empty list or an emotion without a score.
        """
        if not records:
            raise ValueError("Cannot summarize an empty record list")

        scores: List[int] = [emotion_score(record.emotion) for record in records]
        average_score = statistics.fmean(scores)

        emotion_counts = Counter(record.emotion.value for record in records)
        trigger_counts = Counter(
            trigger for record in records for trigger in record.triggers
        )
        # Count descending, then label ascending, so the order never depends on input order
        top_triggers = sorted(trigger_counts.items(), key=lambda x: (-x[1], x[0]))[:TOP_TRIGGERS_LIMIT]

        return FeatureSummary(
            total_entries=len(records),
            average_score=average_score,
            emotion_counts=tuple(sorted(emotion_counts.items())),
            top_triggers=tuple(top_triggers),
        )


def log_summary(summary: FeatureSummary, _logger: logging.Logger) -> None:
    """Helper to log a feature summary."""
    _logger.info(
        f"[SUMMARIZER] {summary.total_entries} entries, "
        f"average score {summary.average_score:.2f}"
    )
    if summary.top_triggers:
        _logger.info(f"[SUMMARIZER] Top triggers: {dict(summary.top_triggers)}")
