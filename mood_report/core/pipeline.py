"""
End-to-end mood report generation.

ReportPipeline sequences the stages of one run:
1. Resolve request defaults (period, preferences)
2. Fetch the period's mood records
3. Gate on history size and summarize
4. Build the prompt and call the model
5. Parse the reply, persist the report, shape the response

Any stage failure aborts the rest of the run. Nothing is stored unless every
upstream stage succeeded.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from typing_extensions import Protocol

from mood_report.core.analyzer import FeatureSummarizer, SufficiencyGate, log_summary
from mood_report.core.assembler import ReportAssembler
from mood_report.core.exceptions import UpstreamUnavailable
from mood_report.core.models import (
    AnalysisReport,
    AnalysisRequest,
    AnalysisType,
    MoodRecord,
    ReportDraft,
    ResolvedRequest,
    resolve_defaults,
)
from mood_report.core.parser import ResponseParser
from mood_report.core.prompt import PromptBuilder

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

DEFAULT_CONFIDENCE = 0.85
DEFAULT_API_COST = 0.024
DEFAULT_DEADLINE_SECONDS = 90.0

POLICY_ALWAYS_REGENERATE = "always_regenerate"
POLICY_REUSE_EXISTING = "reuse_existing"
REGENERATION_POLICIES = (POLICY_ALWAYS_REGENERATE, POLICY_REUSE_EXISTING)

DEADLINE_EXCEEDED = "pipeline deadline exceeded"


# ============================================================================
# COLLABORATORS
# ============================================================================

class RecordSource(Protocol):
    def find_records(self, user_id: str, start: datetime, end: datetime) -> List[MoodRecord]:
        ...


class ModelClient(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class ReportRepository(Protocol):
    def save(self, draft: ReportDraft) -> AnalysisReport:
        ...

    def find_latest_for_period(self, user_id: str, analysis_type: AnalysisType,
                               start_date: date, end_date: date) -> Optional[AnalysisReport]:
        ...


@dataclass
class _PeriodLock:
    lock: asyncio.Lock
    holders: int = 0


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ============================================================================
# CONFIGURATION
# ============================================================================

class PipelineConfig:
    """Report metadata constants and the regeneration policy."""

    def __init__(self, confidence: float = DEFAULT_CONFIDENCE,
                 api_cost: float = DEFAULT_API_COST,
                 deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
                 regeneration_policy: str = POLICY_ALWAYS_REGENERATE,
                 serialize_per_period: bool = False):
        """
        Raises:
            ValueError: Unknown regeneration policy or non-positive deadline.
        """
        if regeneration_policy not in REGENERATION_POLICIES:
            raise ValueError(
                f"Unknown regeneration policy '{regeneration_policy}', "
                f"expected one of {REGENERATION_POLICIES}"
            )
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")

        self.confidence = min(1.0, max(0.0, confidence))
        self.api_cost = api_cost
        self.deadline_seconds = deadline_seconds
        self.regeneration_policy = regeneration_policy
        self.serialize_per_period = serialize_per_period

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            confidence=float(os.environ.get("REPORT_CONFIDENCE", DEFAULT_CONFIDENCE)),
            api_cost=float(os.environ.get("REPORT_API_COST", DEFAULT_API_COST)),
            deadline_seconds=float(os.environ.get("REPORT_DEADLINE_SECONDS", DEFAULT_DEADLINE_SECONDS)),
            regeneration_policy=os.environ.get("REPORT_REGENERATION_POLICY", POLICY_ALWAYS_REGENERATE),
            serialize_per_period=_env_flag("REPORT_SERIALIZE_PER_PERIOD"),
        )


# ============================================================================
# PIPELINE
# ============================================================================

class ReportPipeline:
    """Runs one report generation per call."""

    def __init__(self, record_source: RecordSource,
                 model_client: Optional[ModelClient],
                 report_store: ReportRepository,
                 config: Optional[PipelineConfig] = None,
                 parser: Optional[ResponseParser] = None,
                 assembler: Optional[ReportAssembler] = None,
                 today_provider: Callable[[], date] = _utc_today):
        self.record_source = record_source
        self.model_client = model_client
        self.report_store = report_store
        self.config = config or PipelineConfig()
        self.parser = parser or ResponseParser()
        self.assembler = assembler or ReportAssembler()
        self.today_provider = today_provider
        self._period_locks: Dict[Tuple[str, str, date, date], _PeriodLock] = {}

    def resolve(self, request: Optional[AnalysisRequest]) -> ResolvedRequest:
        return resolve_defaults(request or AnalysisRequest(), self.today_provider())

    def _summarize_period(self, user_id: str, resolved: ResolvedRequest):
        start, end = resolved.bounds()
        logger.info(f">>> STEP 1: Fetching mood records for {user_id} "
                    f"({resolved.start_date} -> {resolved.end_date})")
        records = self.record_source.find_records(user_id, start, end)

        logger.info(">>> STEP 2: Checking history and summarizing")
        SufficiencyGate.check(records)
        summary = FeatureSummarizer.summarize(records)
        log_summary(summary, logger)
        return summary

    def build_dry_run(self, user_id: str, request: Optional[AnalysisRequest] = None) -> str:
        """
        Runs every stage up to the prompt, without calling the model or storing.

        Returns:
            The prompt that would be sent.
        """
        resolved = self.resolve(request)
        summary = self._summarize_period(user_id, resolved)
        return PromptBuilder(summary, resolved.preferences).build()

    async def generate(self, user_id: str, request: Optional[AnalysisRequest] = None) -> Dict[str, Any]:
        """
        Generates, persists and returns one report.

        Args:
            user_id: Owner of the mood records.
            request: Kind, period and preferences (defaults applied when omitted).

        Returns:
            Response body (see ReportAssembler).

        Raises:
            InvalidRequest: Bad kind or dates, before any stage runs.
            RecordLookupFailed: Mood records could not be read.
            InsufficientData: Fewer than 3 records in the period.
            UpstreamUnavailable: Model unreachable or deadline exceeded.
            MalformedResponse: Model reply did not match the report schema.
            PersistenceFailed: The report could not be committed.
        """
        resolved = self.resolve(request)
        logger.info(f"Generating {resolved.analysis_type.value} report for {user_id}")

        try:
            return await asyncio.wait_for(
                self._run_serialized(user_id, resolved),
                timeout=self.config.deadline_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Report generation for {user_id} exceeded {self.config.deadline_seconds}s")
            raise UpstreamUnavailable(
                "Report generation timed out", last_error=DEADLINE_EXCEEDED
            ) from None

    async def _run_serialized(self, user_id: str, resolved: ResolvedRequest) -> Dict[str, Any]:
        if not self.config.serialize_per_period:
            return await self._run(user_id, resolved)

        key = resolved.period_key(user_id)
        entry = self._period_locks.get(key)
        if entry is None:
            entry = self._period_locks[key] = _PeriodLock(asyncio.Lock())
        entry.holders += 1
        try:
            async with entry.lock:
                return await self._run(user_id, resolved)
        finally:
            # Drop the entry once no run holds or awaits it
            entry.holders -= 1
            if entry.holders == 0:
                del self._period_locks[key]

    async def _run(self, user_id: str, resolved: ResolvedRequest) -> Dict[str, Any]:
        if self.config.regeneration_policy == POLICY_REUSE_EXISTING:
            existing = self.report_store.find_latest_for_period(
                user_id, resolved.analysis_type, resolved.start_date, resolved.end_date
            )
            if existing is not None:
                logger.info(f"[OK] Reusing report {existing.report_id} for {user_id}")
                return self.assembler.assemble(existing)

        summary = self._summarize_period(user_id, resolved)

        logger.info(">>> STEP 3: Building prompt and calling the model")
        prompt = PromptBuilder(summary, resolved.preferences).build()
        raw = await self.model_client.generate(prompt)

        logger.info(">>> STEP 4: Parsing model response")
        result = self.parser.parse(raw)

        logger.info(">>> STEP 5: Saving report")
        draft = ReportDraft(
            user_id=user_id,
            analysis_type=resolved.analysis_type,
            start_date=resolved.start_date,
            end_date=resolved.end_date,
            result=result,
            data_points=summary.total_entries,
            confidence_score=self.config.confidence,
            api_cost=self.config.api_cost,
        )
        report = self.report_store.save(draft)

        logger.info(f"[OK] Report {report.report_id} generated for {user_id}")
        return self.assembler.assemble(report)
