"""
Support values and "mirror" resolution.

A browser's entry in a support map is either concrete data (one statement or
a list of them) or the literal "mirror", meaning the data is derived from an
upstream browser. parse_support_value turns the raw JSON into one of the two
variants; resolve_mirror is the default way to turn a Mirror into concrete
statements.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Union

from .ranges import compare_versions, decode_range, encode_range, is_range, sort_versions

logger = logging.getLogger(__name__)

MIRROR_VALUE = "mirror"


class MirrorError(Exception):
    """Raised when a mirrored value has no upstream to resolve against."""
    pass


class Mirror:
    """Sentinel for a support value that defers to the upstream browser."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MIRROR"


MIRROR = Mirror()


@dataclass
class Concrete:
    statements: List[Dict[str, Any]] = field(default_factory=list)


SupportValue = Union[Concrete, Mirror]
MirrorResolver = Callable[[str, Dict[str, Any], Dict[str, Any]], Concrete]


def parse_support_value(raw: Any) -> SupportValue:
    """Classify a raw support map value; concrete data is deep-copied."""
    if raw == MIRROR_VALUE:
        return MIRROR
    if raw is None:
        return Concrete([])
    if isinstance(raw, list):
        return Concrete(copy.deepcopy(raw))
    return Concrete([copy.deepcopy(raw)])


def to_raw(statements: List[Dict[str, Any]]) -> Any:
    """Collapse a statement list to the stored form (single dict when alone)."""
    if len(statements) == 1:
        return statements[0]
    return statements


def _map_release(version: str, releases: List[str]) -> str:
    if not releases or version in releases:
        return version
    for release in releases:
        if compare_versions(release, version) >= 0:
            return release
    return version


def _map_version(value: Any, releases: List[str]) -> Any:
    if not isinstance(value, str) or value == "preview":
        return value
    if is_range(value):
        lower, upper = decode_range(value)
        mapped_lower = lower if lower == "0" else _map_release(lower, releases)
        return encode_range(mapped_lower, _map_release(upper, releases))
    return _map_release(value, releases)


def resolve_mirror(browser: str, support: Dict[str, Any], browsers: Dict[str, Any]) -> Concrete:
    """
    Derive a browser's statements from its upstream browser.

    Versions are mapped onto the downstream release catalog: a release that
    exists downstream is kept, otherwise the earliest downstream release not
    older than it is used.

    Args:
        browser: Downstream browser id (e.g. "chrome_android")
        support: Unmodified support map of the feature
        browsers: Browser release catalog

    Returns:
        Concrete statements (fresh copies)

    Raises:
        MirrorError: If the browser has no upstream in the catalog
    """
    upstream = browsers.get(browser, {}).get("upstream")
    if not upstream:
        raise MirrorError(f"{browser} is mirrored but has no upstream browser")

    upstream_value = parse_support_value(support.get(upstream))
    if upstream_value is MIRROR:
        upstream_value = resolve_mirror(upstream, support, browsers)

    releases = sort_versions(browsers.get(browser, {}).get("releases", {}).keys())
    statements = []
    for statement in upstream_value.statements:
        mirrored = copy.deepcopy(statement)
        for key in ("version_added", "version_removed"):
            if key in mirrored:
                mirrored[key] = _map_version(mirrored[key], releases)
        statements.append(mirrored)
    return Concrete(statements)
