"""
Collector report loading, validation and normalization.

A report is one browser run: a user-agent string plus, per tested URL, a
list of ``{name, exposure, result, message?}`` entries. normalize_report
folds the per-exposure results into one Verdict per feature path.
"""

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import jsonschema

from .tree import load_json_files
from .verdicts import Verdict, combine

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
REPORT_SCHEMA_PATH = PROJECT_ROOT / "config" / "schemas" / "report.schema.json"


class EmptyReport(Exception):
    """Raised when a report has no test results at all."""
    pass


class ReportValidationError(Exception):
    """Raised when a report does not match the report schema."""
    pass


def _load_schema(schema_path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if schema_path is None or not schema_path.exists():
        return None
    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        logger.warning(f"Could not load report schema {schema_path}: {e}")
        return None


def validate_report(report: Any, schema_path: Optional[Path] = REPORT_SCHEMA_PATH) -> bool:
    """
    Validate a report against the JSON schema.

    Reports built in code skip this step; a bad result value in one of those
    is reported as InvalidVerdict when the report is normalized.

    Raises:
        ReportValidationError: If validation fails
    """
    schema = _load_schema(schema_path)
    if schema is not None:
        try:
            jsonschema.validate(report, schema)
        except jsonschema.ValidationError as e:
            location = ".".join(str(p) for p in e.absolute_path)
            where = f" at {location}" if location else ""
            raise ReportValidationError(f"Invalid report{where}: {e.message}")

    if not isinstance(report, dict):
        raise ReportValidationError("Report must be an object")
    for field in ("results", "userAgent"):
        if field not in report:
            raise ReportValidationError(f"Report missing required field: {field}")
    return True


def load_reports(paths: Iterable[Union[str, Path]], validate: bool = True) -> List[Dict[str, Any]]:
    """
    Load reports from files or directories.

    Files that fail validation are logged and skipped so one broken upload
    never blocks the batch.
    """
    reports: List[Dict[str, Any]] = []
    for file_path, report in load_json_files(paths).items():
        if validate:
            try:
                validate_report(report)
            except ReportValidationError as e:
                logger.error(f"Skipping {file_path}: {e}")
                continue
        reports.append(report)
    logger.info(f"Loaded {len(reports)} report(s)")
    return reports


def _parent_path(path: str) -> str:
    return path.rsplit(".", 1)[0] if "." in path else ""


def normalize_report(report: Dict[str, Any]) -> Dict[str, Verdict]:
    """
    Map each feature path in a report to one combined Verdict.

    Results for the same feature across exposures (Window, Worker, ...) are
    combined so support in any scope counts. A feature whose combined verdict
    is UNKNOWN is treated as UNSUPPORTED when its parent feature is
    UNSUPPORTED; parents are decided before children by walking paths in
    order of depth, so this does not depend on the order of the report.

    Args:
        report: Parsed report

    Returns:
        Dict of feature path -> Verdict, in report order

    Raises:
        EmptyReport: If the report has no results
        InvalidVerdict: If any result is not true/false/null
    """
    grouped: Dict[str, List[Any]] = defaultdict(list)
    for tests in (report.get("results") or {}).values():
        for test in tests:
            grouped[test["name"]].append(test.get("result"))

    if not grouped:
        raise EmptyReport(f'Report for "{report.get("userAgent")}" has no results!')

    support = {name: combine(results) for name, results in grouped.items()}

    for name in sorted(support, key=lambda n: n.count(".")):
        if support[name] is Verdict.UNKNOWN:
            if support.get(_parent_path(name)) is Verdict.UNSUPPORTED:
                support[name] = Verdict.UNSUPPORTED

    return support
