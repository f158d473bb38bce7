"""
Mood Report: AI-generated emotional analysis reports.

This module is the command-line entry point:
1. Loads configuration from the environment (.env supported)
2. Wires MongoDB, the Gemini client and the report pipeline
3. Generates a report for one user and period, prints it as JSON

Supports execution modes:
- Normal: full pipeline, report persisted
- Dry run: prompt written to a file, no model call and no DB writes
- Show / History: read back stored reports
- List models: Gemini models usable for generation
"""

import os
import sys
import argparse
import asyncio
import datetime
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

# Add project root for nested imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mood_report.adapters.clients.gemini import GeminiClient, GeminiConfig
from mood_report.adapters.repositories import mongo as mongo_client
from mood_report.core.assembler import ReportAssembler
from mood_report.core.exceptions import ReportGenerationError
from mood_report.core.models import AnalysisRequest, AnalysisType
from mood_report.core.pipeline import PipelineConfig, ReportPipeline
from mood_report.utils.debug_models import list_generating_models
from mood_report.utils.logger import setup_logger


# ============================================================================
# CONFIGURATION & SETUP
# ============================================================================

logger = logging.getLogger(__name__)

# Constants
DRY_RUN_PROMPT_FILE = "dry_run_prompt.log"
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class ConfigurationError(Exception):
    """Raised when the environment holds missing or invalid settings."""
    pass


def load_config(factory: Callable[[], Any]) -> Any:
    """
    Builds a config object from the environment.

    Raises:
        ConfigurationError: If the factory rejects a setting.
    """
    try:
        return factory()
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


# ============================================================================
# ARGUMENT PARSING
# ============================================================================

def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses and validates command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Mood Report: AI-generated emotional analysis reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py --user-id u1                                  # Weekly report, last 7 days
  python run.py --user-id u1 --kind custom --start 2024-01-01 --end 2024-01-31
  python run.py --user-id u1 --dry-run                        # Save the prompt only
  python run.py --show <report-id>                            # Print a stored report
  python run.py --user-id u1 --history                        # Recent reports of a user
  python run.py --list-models                                 # Models usable for generation
        """
    )

    parser.add_argument("--user-id", help="Owner of the mood records")
    parser.add_argument(
        "--kind",
        default=AnalysisType.WEEKLY.value,
        help="Analysis kind: weekly, monthly or custom (default: weekly)"
    )
    parser.add_argument("--start", help="First day of the period (YYYY-MM-DD)")
    parser.add_argument("--end", help="Last day of the period (YYYY-MM-DD, default: today)")
    parser.add_argument("--language", help="Report language (default: zh-CN)")
    parser.add_argument("--depth", help="Analysis depth (default: detailed)")
    parser.add_argument(
        "--focus",
        action="append",
        default=[],
        help="Focus area, repeatable"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode: save prompt to file, skip the model and DB writes"
    )
    parser.add_argument("--show", metavar="REPORT_ID", help="Print a stored report")
    parser.add_argument(
        "--history",
        action="store_true",
        help="List the most recent reports of --user-id"
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List Gemini models supporting generateContent"
    )

    args = parser.parse_args(argv)
    if not (args.show or args.list_models) and not args.user_id:
        parser.error("--user-id is required")
    return args


def build_request(args: argparse.Namespace) -> AnalysisRequest:
    """
    Converts CLI arguments into an analysis request.

    Raises:
        InvalidRequest: If a date is malformed.
    """
    payload: Dict[str, Any] = {"analysisType": args.kind}
    if args.start or args.end:
        payload["dateRange"] = {"startDate": args.start, "endDate": args.end}
    if args.language or args.depth or args.focus:
        payload["preferences"] = {
            "language": args.language,
            "depth": args.depth,
            "focusAreas": args.focus,
        }
    return AnalysisRequest.from_dict(payload)


def print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


# ============================================================================
# COMMANDS
# ============================================================================

def run_generate(args: argparse.Namespace) -> int:
    """Generates (or, in dry run, previews) one report."""
    db = mongo_client.get_database()
    records = mongo_client.MoodRecordRepository(db[mongo_client.MOOD_COLLECTION_NAME])
    store = mongo_client.ReportStore(db[mongo_client.REPORT_COLLECTION_NAME])
    request = build_request(args)
    pipeline_config = load_config(PipelineConfig.from_env)

    if args.dry_run:
        pipeline = ReportPipeline(records, model_client=None, report_store=store,
                                  config=pipeline_config)
        prompt = pipeline.build_dry_run(args.user_id, request)
        with open(DRY_RUN_PROMPT_FILE, "w", encoding="utf-8") as f:
            f.write(f"--- PROMPT GENERATED ON {datetime.datetime.now()} ---\n{prompt}")
        logger.info(f"Dry run: Prompt saved to {DRY_RUN_PROMPT_FILE}")
        return EXIT_OK

    client = GeminiClient(load_config(GeminiConfig.from_env))
    try:
        store.ensure_indexes()
        pipeline = ReportPipeline(records, client, store, config=pipeline_config)
        report = asyncio.run(pipeline.generate(args.user_id, request))
    finally:
        client.close()

    print_json(report)
    return EXIT_OK


def run_show(args: argparse.Namespace) -> int:
    db = mongo_client.get_database()
    store = mongo_client.ReportStore(db[mongo_client.REPORT_COLLECTION_NAME])
    report = store.find_by_report_id(args.show)
    if report is None:
        print_json({"code": "REPORT_NOT_FOUND", "message": f"No report with id {args.show}", "details": {}})
        return EXIT_FAILURE
    print_json(ReportAssembler.assemble(report))
    return EXIT_OK


def run_history(args: argparse.Namespace) -> int:
    db = mongo_client.get_database()
    store = mongo_client.ReportStore(db[mongo_client.REPORT_COLLECTION_NAME])
    reports = store.find_by_user(args.user_id)
    logger.info(f"Found {len(reports)} reports for {args.user_id}")
    print_json([ReportAssembler.assemble(report) for report in reports])
    return EXIT_OK


# ============================================================================
# MAIN
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Process exit status (0 success, 1 report failure, 2 configuration error).
    """
    load_dotenv()
    setup_logger()
    args = parse_arguments(argv)

    logger.info("--- Mood Report Started ---")
    try:
        if args.list_models:
            print_json(list_generating_models(load_config(GeminiConfig.from_env)))
            return EXIT_OK
        if args.show:
            return run_show(args)
        if args.history:
            return run_history(args)
        return run_generate(args)

    except ReportGenerationError as e:
        logger.error(f"Report generation failed [{e.code}]: {e}")
        print_json(e.to_payload())
        return EXIT_FAILURE
    except (ConfigurationError, mongo_client.MongoDBConnectionError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except ValueError as e:
        logger.error(f"Report generation failed: {e}")
        print_json(ReportGenerationError(str(e)).to_payload())
        return EXIT_FAILURE
    finally:
        mongo_client.DatabaseConnection().close()
        logger.info("--- Execution Complete ---")


if __name__ == "__main__":
    sys.exit(main())
