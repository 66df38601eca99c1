"""
Version ordering and the ranged-version notation.

When the exact release a feature shipped in cannot be pinned down (because
the releases in between were never tested), the boundary is written as a
range string:

    "≤84"        shipped in 84 or earlier
    "82> ≤84"    shipped after 82, in 84 or earlier

encode_range/decode_range convert between (lower, upper) pairs and that
notation; compare_versions orders release strings such as "13.1", "4.4.3",
"v18.0.0" and "preview".
"""

import re
from typing import Iterable, List, Tuple


RANGE_MARKER = "≤"

_RANGE_RE = re.compile(r"^(?:(.+)> )?≤(.+)$")
_PART_RE = re.compile(r"^(\d+)")


class MalformedRange(Exception):
    """Raised when a string is not in the ranged-version notation."""
    pass


def version_key(version: str) -> Tuple[float, ...]:
    """
    Sort key for a release string.

    A leading range marker or "v" is ignored, trailing zero components are
    dropped so "83" and "83.0" compare equal, and "preview" sorts after
    every numbered release.

    Raises:
        ValueError: If a component has no leading digits
    """
    value = str(version).strip()
    if value.startswith(RANGE_MARKER):
        value = value[len(RANGE_MARKER):]
    if value == "preview":
        return (float("inf"),)
    if value[:1] in ("v", "V"):
        value = value[1:]

    parts: List[float] = []
    for piece in value.split("."):
        match = _PART_RE.match(piece)
        if not match:
            raise ValueError(f"Unrecognized version: {version!r}")
        parts.append(int(match.group(1)))
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as a is older than, equal to or newer than b."""
    key_a = version_key(a)
    key_b = version_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_versions(versions: Iterable[str]) -> List[str]:
    return sorted(versions, key=version_key)


def encode_range(lower: str, upper: str) -> str:
    """
    Join two release boundaries into the ranged notation.

    A lower bound of "0" means "no earlier observation", giving "≤upper".
    """
    if lower == "0":
        return f"{RANGE_MARKER}{upper}"
    return f"{lower}> {RANGE_MARKER}{upper}"


def decode_range(value: str) -> Tuple[str, str]:
    """
    Split a ranged version into (lower, upper).

    Args:
        value: String produced by encode_range

    Returns:
        Tuple of (lower, upper); lower is "0" for the "≤upper" form

    Raises:
        MalformedRange: If value does not match either form
    """
    match = _RANGE_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise MalformedRange(f'Unrecognized version range value: "{value}"')
    return match.group(1) or "0", match.group(2)


def is_range(value) -> bool:
    return isinstance(value, str) and RANGE_MARKER in value


def upper_bound(value: str) -> str:
    """Release a (possibly ranged) version string is known to be true by."""
    if is_range(value):
        return decode_range(value)[1]
    return value
