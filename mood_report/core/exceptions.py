"""
Error taxonomy for report generation.

Every failure of a pipeline run surfaces as one of these. ``to_payload``
renders the error body returned to callers.
"""

from typing import Any, Dict, List, Optional


class ReportGenerationError(Exception):
    """Base class for all pipeline failures."""

    code = "REPORT_GENERATION_FAILED"

    def details(self) -> Dict[str, Any]:
        return {}

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self), "details": self.details()}


class InvalidRequest(ReportGenerationError):
    """Raised when the request itself is malformed (kind, dates)."""

    code = "INVALID_REQUEST"


class InsufficientData(ReportGenerationError):
    """Raised when the period holds fewer records than required."""

    code = "INSUFFICIENT_DATA"

    def __init__(self, required: int, available: int):
        super().__init__(
            f"At least {required} mood records are required to generate a report, "
            f"found {available}"
        )
        self.required = required
        self.available = available

    def details(self) -> Dict[str, Any]:
        return {"requiredDays": self.required, "availableDays": self.available}


class UpstreamUnavailable(ReportGenerationError):
    """Raised when the model service could not produce a reply."""

    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, attempts: int = 0,
                 status: Optional[int] = None, last_error: Optional[str] = None):
        super().__init__(message)
        self.attempts = attempts
        self.status = status
        self.last_error = last_error

    def details(self) -> Dict[str, Any]:
        return {"attempts": self.attempts, "status": self.status, "lastError": self.last_error}


class UpstreamRejected(UpstreamUnavailable):
    """Raised on a non-retryable client error (4xx) from the model service."""

    code = "UPSTREAM_REJECTED"


class MalformedResponse(ReportGenerationError):
    """Raised when no parse strategy recovered the four report sections."""

    code = "MALFORMED_RESPONSE"

    def __init__(self, raw_payload: str, reasons: Optional[List[str]] = None):
        super().__init__("Model response did not match the report schema")
        self.raw_payload = raw_payload
        self.reasons = list(reasons or [])

    def details(self) -> Dict[str, Any]:
        return {"reasons": list(self.reasons)}


class PersistenceFailed(ReportGenerationError):
    """Raised when the report could not be committed."""

    code = "PERSISTENCE_FAILED"


class RecordLookupFailed(ReportGenerationError):
    """Raised when the mood records of the period could not be read."""

    code = "RECORD_LOOKUP_FAILED"
