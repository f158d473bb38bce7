"""
Shapes a persisted report into the outbound response body.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from mood_report.core.models import AnalysisReport

logger = logging.getLogger(__name__)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing 'Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ReportAssembler:
    """Maps an AnalysisReport to the camelCase response contract."""

    @staticmethod
    def assemble(report: AnalysisReport) -> Dict[str, Any]:
        """
        Builds the response body of a stored report.

        Raises:
            ValueError: If the report id or a section is missing.
        """
        if not report.report_id:
            raise ValueError("Report has no id")
        result = report.result
        if result is None:
            raise ValueError(f"Report {report.report_id} has no analysis result")
        sections = {
            "summary": result.summary,
            "patterns": result.patterns,
            "recommendations": result.recommendations,
            "riskAssessment": result.risk_assessment,
        }
        missing = [name for name, section in sections.items() if section is None]
        if missing:
            raise ValueError(f"Report {report.report_id} is missing sections {missing}")

        return {
            "reportId": report.report_id,
            "generatedAt": format_timestamp(report.created_at),
            "analysisResult": {name: section.to_dict() for name, section in sections.items()},
            "metadata": {
                "dataPoints": report.data_points,
                "analysisConfidence": report.confidence_score,
                "apiCost": report.api_cost,
            },
        }
