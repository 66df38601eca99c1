"""
Support matrix construction.

Builds ``feature path -> browser id -> version -> Verdict`` from many
reports. Every browser's version axis is seeded with UNKNOWN for each
release in the catalog, evidence for the same release is folded together
with the verdict combinator, and manual overrides are applied last.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Union

import jsonschema

from .ranges import compare_versions
from .reports import PROJECT_ROOT, EmptyReport, normalize_report
from .ua import ResolvedIdentity, UserAgentResolver, resolve_user_agent
from .verdicts import InvalidVerdict, Verdict, combine

logger = logging.getLogger(__name__)

OVERRIDES_SCHEMA_PATH = PROJECT_ROOT / "config" / "schemas" / "overrides.schema.json"

VersionMap = Dict[str, Verdict]
BrowserMap = Dict[str, VersionMap]
SupportMatrix = Dict[str, BrowserMap]


class UnknownOverrideTarget(Exception):
    """Raised in strict mode when an override addresses no matrix cell."""
    pass


class OverrideValidationError(Exception):
    """Raised when the overrides file does not match its schema."""
    pass


class Override(NamedTuple):
    path: str
    browser: str
    version: str
    verdict: Verdict


def parse_overrides(raw: Iterable[Any]) -> List[Override]:
    """
    Convert raw override entries into Override tuples.

    String entries are free-text comments and are dropped.
    """
    overrides = []
    for entry in raw:
        if not isinstance(entry, (list, tuple)):
            continue
        path, browser, version, result = entry
        overrides.append(Override(path, browser, str(version), Verdict.from_result(result)))
    return overrides


def load_overrides(path: Union[str, Path], schema_path: Optional[Path] = OVERRIDES_SCHEMA_PATH) -> List[Override]:
    """
    Load the overrides file.

    Args:
        path: JSON file holding the ordered override list
        schema_path: JSON schema to validate against (skipped if missing)

    Returns:
        Override tuples in file order

    Raises:
        OverrideValidationError: If the file does not match the schema
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if schema_path is not None and schema_path.exists():
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
        try:
            jsonschema.validate(raw, schema)
        except jsonschema.ValidationError as e:
            location = ".".join(str(p) for p in e.absolute_path)
            raise OverrideValidationError(f"Invalid override at {location or '<root>'}: {e.message}")

    return parse_overrides(raw)


def _log_unresolved(identity: ResolvedIdentity, user_agent: str) -> None:
    if identity.in_bcd is False:
        logger.warning(
            f"Ignoring unknown {identity.browser_name} version {identity.version} ({user_agent})"
        )
    elif identity.browser_name:
        logger.warning(
            f"Ignoring unknown browser {identity.browser_name} {identity.version} ({user_agent})"
        )
    else:
        logger.warning(f"Unable to parse browser from UA {user_agent}")


def _matching_versions(selector: str, version_map: VersionMap) -> List[str]:
    """Versions in version_map addressed by an override version selector."""
    if selector == "*":
        return list(version_map)
    if selector.endswith("+"):
        lower = selector[:-1]
        return [v for v in version_map if compare_versions(lower, v) <= 0]
    if "-" in selector:
        lower, upper = selector.split("-", 1)
        return [
            v for v in version_map
            if compare_versions(lower, v) <= 0 and compare_versions(upper, v) >= 0
        ]
    return [v for v in version_map if compare_versions(selector, v) == 0]


def apply_overrides(matrix: SupportMatrix, overrides: Iterable[Override], strict: bool = False) -> SupportMatrix:
    """
    Apply manual overrides in order; later overrides for a cell win.

    Args:
        matrix: Support matrix, modified in place
        overrides: Override tuples
        strict: Raise instead of ignoring overrides with no target

    Returns:
        The same matrix

    Raises:
        UnknownOverrideTarget: In strict mode, if an override's feature,
            browser or version is not in the matrix
    """
    for override in overrides:
        version_map = matrix.get(override.path, {}).get(override.browser)
        if version_map is None:
            if strict:
                raise UnknownOverrideTarget(
                    f"No results for {override.browser} on {override.path} to override"
                )
            continue

        versions = _matching_versions(override.version, version_map)
        if not versions and strict:
            raise UnknownOverrideTarget(
                f"Override version {override.version} matches no {override.browser} release for {override.path}"
            )
        for version in versions:
            version_map[version] = override.verdict
    return matrix


def build_support_matrix(
    reports: Iterable[Dict[str, Any]],
    browsers: Dict[str, Any],
    overrides: Iterable[Override] = (),
    resolver: UserAgentResolver = resolve_user_agent,
    strict: bool = False,
) -> SupportMatrix:
    """
    Aggregate reports into a support matrix.

    Reports whose browser or release cannot be resolved against the catalog
    are logged and contribute nothing. A malformed report (no results, or a
    result that is not true/false/null) is logged at ERROR and left out;
    the rest of the batch still counts.

    Args:
        reports: Parsed reports
        browsers: Browser release catalog (id -> {name, releases})
        overrides: Manual corrections applied after all evidence
        resolver: Maps (user agent, browsers) to a ResolvedIdentity
        strict: Passed to apply_overrides

    Returns:
        Support matrix
    """
    matrix: SupportMatrix = {}

    for report in reports:
        user_agent = report.get("userAgent", "")
        identity = resolver(user_agent, browsers)
        releases = browsers.get(identity.browser_id, {}).get("releases", {})
        if identity.in_bcd and identity.version not in releases:
            identity = replace(identity, in_bcd=False)
        if not identity.in_bcd:
            _log_unresolved(identity, user_agent)
            continue

        try:
            support = normalize_report(report)
        except (EmptyReport, InvalidVerdict) as e:
            logger.error(f"Skipping report for {user_agent}: {e}")
            continue

        for name, verdict in support.items():
            browser_map = matrix.setdefault(name, {})
            version_map = browser_map.get(identity.browser_id)
            if version_map is None:
                version_map = {version: Verdict.UNKNOWN for version in releases}
                browser_map[identity.browser_id] = version_map
            # Several reports for one release: keep whichever is most informative
            version_map[identity.version] = combine([verdict, version_map[identity.version]])

    return apply_overrides(matrix, overrides, strict=strict)
