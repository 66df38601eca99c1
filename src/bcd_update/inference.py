"""
Range inference from a browser's per-release verdicts.

infer_support_statements walks releases oldest first and emits the smallest
list of ``{version_added, version_removed?}`` statements consistent with every
known verdict. Where releases between two known verdicts were never tested,
the boundary is written as a range ("82> ≤84") rather than guessed.
"""

from typing import Any, Dict, List, Mapping

from .ranges import compare_versions, encode_range, sort_versions, upper_bound
from .verdicts import Verdict


def infer_support_statements(version_map: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Infer support statements for one browser.

    A range is written only across UNKNOWN releases. An UNSUPPORTED release
    directly followed by a SUPPORTED one pins the exact version.

    Args:
        version_map: Release -> Verdict (or raw true/false/null)

    Returns:
        Ordered list of statements; empty when nothing is known

    Raises:
        InvalidVerdict: If a value is not a valid verdict
    """
    statements: List[Dict[str, Any]] = []
    last_known_version = "0"
    skipped = False

    def boundary(version: str) -> str:
        if skipped:
            return encode_range(last_known_version, version)
        return version

    for version in sort_versions(version_map):
        verdict = Verdict.from_result(version_map[version])
        last = statements[-1] if statements else None

        if verdict is Verdict.SUPPORTED:
            if last is None:
                statements.append({"version_added": boundary(version)})
            elif not last["version_added"]:
                last["version_added"] = boundary(version)
            elif "version_removed" in last:
                # Support came back after a removal
                statements.append({"version_added": boundary(version)})
        elif verdict is Verdict.UNSUPPORTED:
            if last is None:
                statements.append({"version_added": False})
            elif last["version_added"] and "version_removed" not in last:
                last["version_removed"] = boundary(version)
        else:
            skipped = True
            continue

        last_known_version = version
        skipped = False

    return statements


def is_supported(version: str, has_support: bool, statements: List[Dict[str, Any]]) -> bool:
    """
    Whether existing default statements claim support in a release.

    A generic ``version_added: true`` only counts when the test result does
    not itself show support, so specific results still replace it.
    """
    for statement in statements:
        added = statement.get("version_added")
        removed = statement.get("version_removed")
        if added == "preview":
            return False
        if added is True and not has_support:
            return True
        if isinstance(added, str) and compare_versions(version, upper_bound(added)) >= 0:
            if isinstance(removed, str) and compare_versions(version, upper_bound(removed)) >= 0:
                continue
            return True
    return False


def has_support_updates(version_map: Mapping[str, Any], default_statements: List[Dict[str, Any]]) -> bool:
    """
    True if any known verdict disagrees with the existing default statements.

    A statement with ``version_added: null`` claims nothing, so any known
    verdict is news when that is all there is.
    """
    if not default_statements:
        return True
    claims = [s for s in default_statements if s.get("version_added") is not None]
    for version, value in version_map.items():
        verdict = Verdict.from_result(value)
        if not verdict.is_known:
            continue
        if not claims:
            return True
        has_support = verdict is Verdict.SUPPORTED
        if has_support != is_supported(version, has_support, claims):
            return True
    return False


def latest_known_version(version_map: Mapping[str, Any]) -> str:
    """Newest release with a known verdict, or "" if there is none."""
    latest = ""
    for version, value in version_map.items():
        if Verdict.from_result(value).is_known:
            if not latest or compare_versions(version, latest) > 0:
                latest = version
    return latest
