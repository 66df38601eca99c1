"""
Command-line interface for bcd-update.

    bcd-update update REPORT... [--path css.properties.*] [--browser chrome]
    bcd-update validate REPORT... [--overrides overrides.json]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from src.logging_config import configure_logging

from .config import ConfigError, load_config
from .matrix import OverrideValidationError, UnknownOverrideTarget, build_support_matrix, load_overrides
from .pipeline import UpdateOptions, run_update
from .reports import ReportValidationError, load_reports, validate_report
from .tree import category_paths, load_browsers, load_json_files, write_json_file
from .verdicts import InvalidVerdict

logger = logging.getLogger(__name__)

UPDATE_ERRORS = (
    ConfigError,
    OverrideValidationError,
    UnknownOverrideTarget,
    InvalidVerdict,
    json.JSONDecodeError,
    OSError,
)


def parse_release(value: Optional[str]) -> Union[str, bool, None]:
    """Release filter from the command line; "false" selects removals."""
    if value is None:
        return None
    if value.lower() == "false":
        return False
    return value


def cmd_update(args: argparse.Namespace) -> int:
    """Update the compatibility tree from reports."""
    try:
        config = load_config(args.config)
        bcd_dir = Path(args.bcd_dir or config["bcd_dir"])
        report_paths = args.reports or config["reports"]
        if not report_paths:
            print("Error: no report files given", file=sys.stderr)
            return 1

        browsers = load_browsers(bcd_dir)
        overrides_path = args.overrides or config["overrides"]
        overrides = load_overrides(overrides_path) if overrides_path else []
        reports = load_reports(report_paths)

        matrix = build_support_matrix(
            reports,
            browsers,
            overrides=overrides,
            strict=args.strict_overrides or config["strict_overrides"],
        )

        options = UpdateOptions(
            path=args.path,
            browsers=tuple(args.browser or ()),
            release=parse_release(args.release),
            exact_only=args.exact_only,
        )

        feature_list: List[Dict[str, Any]] = []
        modified_files = 0
        files = load_json_files(category_paths(bcd_dir, config["categories"]))
        for file_path, data in files.items():
            result = run_update(data, matrix, options, browsers=browsers, verbose=args.verbose)
            if not result.changed:
                continue
            logger.info(f"Updating {file_path}")
            if not args.dry_run:
                write_json_file(file_path, data)
            modified_files += 1
            feature_list.extend(
                {"path": u.path, "browser": u.browser, "statements": u.statements}
                for u in result.updates
            )

        modified_paths = len({item["path"] for item in feature_list})
        logger.info(f"Modified {modified_paths} path(s)")

        output = args.output or config["output"]
        if output and not args.dry_run:
            write_json_file(output, feature_list)

        print(f"Updated {len(feature_list)} support statement(s) in {modified_files} file(s)")
        if args.verbose:
            for item in feature_list:
                print(f"  {item['path']} [{item['browser']}]")
        if args.dry_run:
            print("(dry run - no files written)")

        return 0

    except UPDATE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate report and override files without updating anything."""
    failures = 0
    try:
        files = load_json_files(args.reports)
    except (json.JSONDecodeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for file_path, report in files.items():
        try:
            validate_report(report)
        except ReportValidationError as e:
            failures += 1
            print(f"  {file_path}: {e}")

    if args.overrides:
        try:
            overrides = load_overrides(args.overrides)
            print(f"Overrides valid: {len(overrides)} override(s)")
        except (OverrideValidationError, InvalidVerdict, json.JSONDecodeError, OSError) as e:
            failures += 1
            print(f"  {args.overrides}: {e}")

    if failures:
        print(f"Validation failed: {failures} file(s) invalid", file=sys.stderr)
        return 1

    print(f"Validated {len(files)} report(s)")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="bcd-update",
        description="Update browser compatibility data from collector reports"
    )
    parser.add_argument(
        "--config",
        help="Path to config file (default: config/bcd_update.yaml)"
    )
    parser.add_argument(
        "--log-file",
        help="Append logs to this file (default from config)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output, including expected skips"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # update command
    update_parser = subparsers.add_parser("update", help="Update the compatibility tree from reports")
    update_parser.add_argument("reports", nargs="*", help="Report files or directories")
    update_parser.add_argument("-p", "--path", help="Feature path prefix or glob (e.g. css.properties.*)")
    update_parser.add_argument("-b", "--browser", nargs="+", help="Only update these browser ids")
    update_parser.add_argument("-r", "--release",
                               help='Only apply updates for this release, an "X-Y" range, or "false"')
    update_parser.add_argument("-e", "--exact-only", action="store_true",
                               help="Skip updates that would write a version range")
    update_parser.add_argument("-o", "--output", help="Feature list output file (JSON)")
    update_parser.add_argument("--bcd-dir", help="browser-compat-data checkout")
    update_parser.add_argument("--overrides", help="Overrides file (JSON)")
    update_parser.add_argument("--strict-overrides", action="store_true",
                               help="Fail on overrides that match no result")
    update_parser.add_argument("--dry-run", action="store_true", help="Don't write any files")
    update_parser.set_defaults(func=cmd_update)

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate report and override files")
    validate_parser.add_argument("reports", nargs="+", help="Report files or directories")
    validate_parser.add_argument("--overrides", help="Overrides file (JSON)")
    validate_parser.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    log_file = args.log_file
    if log_file is None:
        try:
            log_file = load_config(args.config)["log_file"]
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    configure_logging(logging.INFO, log_file=log_file)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
