"""
MongoDB access for mood records and analysis reports.

This module provides database operations for:
- Reading a user's mood records for a period (read-only collaborator)
- Persisting each generated report as one document, exactly once
- Looking reports up by id, by user, and by user + period
"""

import logging
import os
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import certifi
import pymongo
from pymongo import MongoClient
from pymongo.errors import OperationFailure, PyMongoError, ServerSelectionTimeoutError

from mood_report.core.exceptions import PersistenceFailed, RecordLookupFailed
from mood_report.core.models import (
    DATE_FORMAT,
    AnalysisReport,
    AnalysisType,
    MoodRecord,
    ReportDraft,
)
from mood_report.core.parser import NoMatch, match_schema

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

DEFAULT_DATABASE_NAME = "mood_reports"
MOOD_COLLECTION_NAME = "mood_entries"
REPORT_COLLECTION_NAME = "ai_analysis"

CONNECTION_TIMEOUT_MS = 10000
SOCKET_TIMEOUT_MS = 30000
DEFAULT_HISTORY_LIMIT = 20


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MongoDBConnectionError(Exception):
    """Raised when MongoDB connection fails."""
    pass


# Driver failures and unreadable documents
LOOKUP_ERRORS = (PyMongoError, KeyError, ValueError, TypeError, AttributeError)


# ============================================================================
# DATABASE CONNECTION
# ============================================================================

class DatabaseConfig:
    """Encapsulates MongoDB connection configuration."""

    def __init__(self, uri: Optional[str] = None, database_name: Optional[str] = None):
        """
        Initialize database configuration.

        Args:
            uri: MongoDB connection URI (defaults to MONGODB_URI env var)
            database_name: Database name (defaults to MONGODB_DATABASE env var)

        Raises:
            ValueError: If URI not provided and env var not set
        """
        self.uri = uri or os.environ.get("MONGODB_URI")
        if not self.uri:
            raise ValueError("MONGODB_URI environment variable not set")
        self.database_name = database_name or os.environ.get("MONGODB_DATABASE", DEFAULT_DATABASE_NAME)

    def get_client(self) -> MongoClient:
        """
        Creates a MongoDB client with secure SSL/TLS configuration.

        Raises:
            MongoDBConnectionError: If connection fails.
        """
        try:
            client = MongoClient(
                self.uri,
                tlsCAFile=certifi.where(),
                serverSelectionTimeoutMS=CONNECTION_TIMEOUT_MS,
                connectTimeoutMS=CONNECTION_TIMEOUT_MS,
                socketTimeoutMS=SOCKET_TIMEOUT_MS
            )
            client.admin.command('ping')
            logger.info("[OK] MongoDB connected successfully")
            return client

        except ServerSelectionTimeoutError:
            logger.error("MongoDB connection timeout")
            raise MongoDBConnectionError("Connection timeout") from None
        except OperationFailure as e:
            logger.error(f"MongoDB authentication failed: {e}")
            raise MongoDBConnectionError(f"Authentication failed: {e}") from None
        except PyMongoError as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise MongoDBConnectionError(str(e)) from e


class DatabaseConnection:
    """Singleton connection manager for MongoDB."""

    _instance: Optional['DatabaseConnection'] = None
    _client: Optional[MongoClient] = None
    _database_name: str = DEFAULT_DATABASE_NAME

    def __new__(cls) -> 'DatabaseConnection':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def get_database(self) -> pymongo.database.Database:
        """
        Gets or creates the database handle.

        Raises:
            MongoDBConnectionError: If connection fails.
        """
        if self._client is None:
            try:
                config = DatabaseConfig()
            except ValueError as e:
                logger.error(str(e))
                raise MongoDBConnectionError(str(e)) from e
            self._client = config.get_client()
            self._database_name = config.database_name

        return self._client[self._database_name]

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")


def get_database() -> pymongo.database.Database:
    """
    Gets database instance.
    This is the main entry point for database access.

    Raises:
        MongoDBConnectionError: If connection fails.
    """
    return DatabaseConnection().get_database()


# ============================================================================
# MOOD RECORDS (READ-ONLY)
# ============================================================================

class MoodRecordRepository:
    """Reads mood records written by the mood-logging service."""

    def __init__(self, collection: pymongo.collection.Collection):
        self.collection = collection

    def find_records(self, user_id: str, start: datetime, end: datetime) -> List[MoodRecord]:
        """
        Retrieves a user's records with start <= record_time < end, oldest first.

        Raises:
            RecordLookupFailed: If the query fails or a document is unreadable.
        """
        query = {"user_id": user_id, "record_time": {"$gte": start, "$lt": end}}
        try:
            cursor = self.collection.find(query).sort("record_time", pymongo.ASCENDING)
            records = [MoodRecord.from_document(doc) for doc in cursor]
        except LOOKUP_ERRORS as e:
            logger.error(f"Failed to retrieve mood records for {user_id}: {e}")
            raise RecordLookupFailed(f"Mood records could not be read: {e}") from e

        logger.info(f"[OK] Retrieved {len(records)} mood records for {user_id} "
                    f"between {start.isoformat()} and {end.isoformat()}")
        return records


# ============================================================================
# REPORT STORAGE
# ============================================================================

def report_to_document(report: AnalysisReport) -> Dict[str, Any]:
    """Serializes a report as a single MongoDB document."""
    return {
        "report_id": report.report_id,
        "user_id": report.user_id,
        "analysis_type": report.analysis_type.value,
        "start_date": report.start_date.strftime(DATE_FORMAT),
        "end_date": report.end_date.strftime(DATE_FORMAT),
        "analysis_result": report.result.to_dict(),
        "data_points": report.data_points,
        "confidence_score": report.confidence_score,
        "api_cost": report.api_cost,
        "created_at": report.created_at,
        "updated_at": report.updated_at,
    }


def report_from_document(doc: Dict[str, Any]) -> AnalysisReport:
    """
    Rebuilds a report from its stored document.

    Raises:
        ValueError: If the stored sections are incomplete.
    """
    result = match_schema(doc.get("analysis_result") or {}, "stored")
    if isinstance(result, NoMatch):
        raise ValueError(f"Stored report {doc.get('report_id')} is corrupt: {result.reason}")

    return AnalysisReport(
        report_id=doc["report_id"],
        user_id=doc["user_id"],
        analysis_type=AnalysisType(doc["analysis_type"]),
        start_date=datetime.strptime(doc["start_date"], DATE_FORMAT).date(),
        end_date=datetime.strptime(doc["end_date"], DATE_FORMAT).date(),
        result=result,
        data_points=doc["data_points"],
        confidence_score=doc["confidence_score"],
        api_cost=doc["api_cost"],
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


class ReportStore:
    """Persists analysis reports, one document per successful run."""

    def __init__(self, collection: pymongo.collection.Collection):
        self.collection = collection

    def ensure_indexes(self) -> None:
        """Creates the unique report id index and the lookup index."""
        self.collection.create_index(
            [("report_id", pymongo.ASCENDING)],
            unique=True,
            name="idx_report_id_unique",
        )
        self.collection.create_index(
            [("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)],
            name="idx_user_created",
        )
        logger.info("[MongoDB] Report indexes initialized.")

    def save(self, draft: ReportDraft) -> AnalysisReport:
        """
        Assigns a fresh report id and commits the whole report.

        A single insert_one is atomic, so either the full report is stored
        or nothing is.

        Raises:
            PersistenceFailed: If the write fails.
        """
        now = datetime.now(timezone.utc)
        report = AnalysisReport.from_draft(draft, report_id=str(uuid.uuid4()), now=now)

        try:
            self.collection.insert_one(report_to_document(report))
        except PyMongoError as e:
            logger.error(f"Failed to persist report for {draft.user_id}: {e}")
            raise PersistenceFailed(f"Report could not be saved: {e}") from e

        logger.info(f"[OK] Report {report.report_id} saved for {report.user_id}")
        return report

    def find_by_report_id(self, report_id: str) -> Optional[AnalysisReport]:
        """
        Raises:
            RecordLookupFailed: If the query fails or the stored report is unreadable.
        """
        try:
            doc = self.collection.find_one({"report_id": report_id})
            return report_from_document(doc) if doc else None
        except LOOKUP_ERRORS as e:
            logger.error(f"Failed to read report {report_id}: {e}")
            raise RecordLookupFailed(f"Report {report_id} could not be read: {e}") from e

    def find_by_user(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[AnalysisReport]:
        """Most recent reports of a user, newest first."""
        try:
            cursor = self.collection.find({"user_id": user_id}).sort(
                "created_at", pymongo.DESCENDING
            ).limit(limit)
            return [report_from_document(doc) for doc in cursor]
        except LOOKUP_ERRORS as e:
            logger.error(f"Failed to read reports of {user_id}: {e}")
            raise RecordLookupFailed(f"Reports of {user_id} could not be read: {e}") from e

    def find_latest_for_period(self, user_id: str, analysis_type: AnalysisType,
                               start_date: date, end_date: date) -> Optional[AnalysisReport]:
        """Newest report for the exact same user, kind and period, if any."""
        query = {
            "user_id": user_id,
            "analysis_type": analysis_type.value,
            "start_date": start_date.strftime(DATE_FORMAT),
            "end_date": end_date.strftime(DATE_FORMAT),
        }
        try:
            cursor = self.collection.find(query).sort("created_at", pymongo.DESCENDING).limit(1)
            for doc in cursor:
                return report_from_document(doc)
        except LOOKUP_ERRORS as e:
            logger.error(f"Failed to look up existing report for {user_id}: {e}")
            raise RecordLookupFailed(f"Existing report could not be read: {e}") from e
        return None
