"""Tri-state test verdicts and the combinator that folds them together."""

from enum import Enum
from typing import Any, Iterable


class InvalidVerdict(Exception):
    """Raised when a test result is not true, false or null."""
    pass


class Verdict(str, Enum):
    SUPPORTED = "SUPPORTED"
    UNSUPPORTED = "UNSUPPORTED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_result(cls, result: Any) -> "Verdict":
        """
        Convert a raw report result (true/false/null) to a Verdict.

        Verdict members pass through unchanged so callers can feed either
        representation.

        Raises:
            InvalidVerdict: If the value is anything else
        """
        if isinstance(result, Verdict):
            return result
        if result is True:
            return cls.SUPPORTED
        if result is False:
            return cls.UNSUPPORTED
        if result is None:
            return cls.UNKNOWN
        raise InvalidVerdict(f"result not true/false/null; got {result!r}")

    @property
    def is_known(self) -> bool:
        return self is not Verdict.UNKNOWN


def combine(verdicts: Iterable[Any]) -> Verdict:
    """
    Reduce several verdicts for one feature into one.

    Support in any exposure scope counts as support of the feature, so
    SUPPORTED wins outright. Otherwise UNSUPPORTED wins over UNKNOWN, and an
    empty input is UNKNOWN.

    Args:
        verdicts: Verdict members or raw true/false/null results

    Returns:
        The combined Verdict

    Raises:
        InvalidVerdict: If any element is not a valid verdict
    """
    # Validate everything first so invalid input fails regardless of order
    seen = {Verdict.from_result(value) for value in verdicts}
    if Verdict.SUPPORTED in seen:
        return Verdict.SUPPORTED
    if Verdict.UNSUPPORTED in seen:
        return Verdict.UNSUPPORTED
    return Verdict.UNKNOWN
