"""
Update decision pipeline.

Decides, for every (feature path, browser) pair with test evidence, whether
and how the compatibility tree should change. Each pair flows through an
ordered list of stages. A stage inspects an immutable UpdateState and returns
one of:

    Continue(state)    keep going with a (possibly enriched) state
    Skip(reason)       stop processing this pair, recording why
    Expand(states)     fan out into several states (per path, per browser)

Skips are either quiet (expected, e.g. filtered out or already correct) or
loud (a human should look at the pair). Quiet skips are logged at DEBUG
unless verbose, loud skips always at WARNING.

Pairs that pass every stage with a new statement list are written back into
the tree; pairs are independent, so an error in one is recorded as a loud
skip and never aborts the others.
"""

import copy
import fnmatch
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .inference import has_support_updates, infer_support_statements, latest_known_version
from .matrix import BrowserMap, SupportMatrix, VersionMap
from .mirror import MIRROR, MirrorError, MirrorResolver, parse_support_value, resolve_mirror, to_raw
from .ranges import MalformedRange, compare_versions, decode_range, is_range, upper_bound
from .tree import COMPAT_KEY, walk_entries
from .verdicts import InvalidVerdict

logger = logging.getLogger(__name__)

_RELEASE_RANGE_RE = re.compile(r"^([\d.]+)-([\d.]+)$")

# Errors scoped to a single pair
PAIR_ERRORS = (InvalidVerdict, MalformedRange, MirrorError, ValueError)

# Keys that mark a statement as something other than the plain default
_NON_DEFAULT_KEYS = ("flags", "prefix", "alternative_name")


@dataclass
class UpdateOptions:
    """
    Filters applied before any decision is made.

    path: glob (when it contains "*") or dotted prefix of feature paths
    browsers: allow-list of browser ids; empty means all
    release: only apply updates that land exactly on this release, or inside
        an "X-Y" release range; False accepts only "not supported" results
    exact_only: reject updates that would write a ranged version
    """
    path: Optional[str] = None
    browsers: Sequence[str] = ()
    release: Union[str, bool, None] = None
    exact_only: bool = False


@dataclass(frozen=True)
class Reason:
    step: str
    message: str
    quiet: bool = True
    skip: bool = True


@dataclass(frozen=True)
class UpdateState:
    """Everything known about one pair at a point in the pipeline."""
    path: str = ""
    browser: str = ""
    entry: Optional[Dict[str, Any]] = None
    browser_map: Optional[BrowserMap] = None
    version_map: Optional[VersionMap] = None
    unmodified_support: Optional[Dict[str, Any]] = None
    all_statements: Optional[List[Dict[str, Any]]] = None
    default_statements: Optional[List[Dict[str, Any]]] = None
    inferred_statements: Optional[List[Dict[str, Any]]] = None
    statements: Optional[List[Dict[str, Any]]] = None
    settled: bool = False
    notes: Tuple[Reason, ...] = ()
    trace: Tuple[str, ...] = ()


@dataclass
class Continue:
    state: UpdateState


@dataclass
class Skip:
    reason: Reason


@dataclass
class Expand:
    states: Iterable[UpdateState]


Outcome = Union[Continue, Skip, Expand]
Stage = Callable[[UpdateState], Outcome]


@dataclass
class FeatureUpdate:
    path: str
    browser: str
    statements: List[Dict[str, Any]]


@dataclass
class LogEntry:
    path: str
    browser: str
    reason: Reason


@dataclass
class UpdateResult:
    updates: List[FeatureUpdate] = field(default_factory=list)
    log: List[LogEntry] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updates)

    @property
    def skips(self) -> List[LogEntry]:
        return [entry for entry in self.log if entry.reason.skip]

    @property
    def loud_skips(self) -> List[LogEntry]:
        return [entry for entry in self.skips if not entry.reason.quiet]

    def __bool__(self) -> bool:
        return self.changed


def quiet(message: str) -> Skip:
    return Skip(Reason(step="", message=message, quiet=True))


def loud(message: str) -> Skip:
    return Skip(Reason(step="", message=message, quiet=False))


def is_default_statement(statement: Dict[str, Any]) -> bool:
    return not any(key in statement for key in _NON_DEFAULT_KEYS)


def path_matches(path: str, pattern: str) -> bool:
    """Glob match when the pattern has "*", otherwise dotted-prefix match."""
    if "*" in pattern:
        return fnmatch.fnmatchcase(path, pattern)
    return path == pattern or path.startswith(f"{pattern}.")


def _with_default(state: UpdateState, **changes: Any) -> UpdateState:
    """Copy the working statements with the default statement updated."""
    working = copy.deepcopy(state.statements if state.statements is not None else state.all_statements)
    default = state.default_statements[0]
    index = next(
        (i for i, s in enumerate(working) if is_default_statement(s) and s == default),
        0,
    )
    working[index].update(changes)
    return replace(state, statements=working, default_statements=[working[index]])


def _note(state: UpdateState, message: str) -> UpdateState:
    return replace(state, notes=state.notes + (Reason(step="", message=message, skip=False),))


def _pending(state: UpdateState) -> bool:
    """True while a stage may still rewrite the default statement."""
    return not state.settled


# Stage implementations. Each closes over the run context it needs.

def expand_paths(tree: Dict[str, Any], matrix: SupportMatrix) -> Stage:
    """Fan out over the entries of this tree, never over the whole matrix."""
    def stage(state: UpdateState) -> Outcome:
        return Expand(
            replace(state, path=path, entry=entry, browser_map=matrix.get(path))
            for path, entry in walk_entries(tree)
        )
    return stage


def skip_path_mismatch(pattern: str) -> Stage:
    def stage(state: UpdateState) -> Outcome:
        if not path_matches(state.path, pattern):
            return quiet(f"{state.path}: Path does not match filter {pattern}")
        return Continue(state)
    return stage


def provide_support(state: UpdateState) -> Outcome:
    if state.browser_map is None:
        return quiet(f"{state.path}: No results in reports")
    support = state.entry[COMPAT_KEY].get("support") or {}
    return Continue(replace(state, unmodified_support=copy.deepcopy(support)))


def expand_browsers(state: UpdateState) -> Outcome:
    browsers = list(state.unmodified_support)
    browsers.extend(b for b in state.browser_map if b not in state.unmodified_support)
    return Expand(replace(state, browser=browser) for browser in browsers)


def skip_no_results(state: UpdateState) -> Outcome:
    version_map = state.browser_map.get(state.browser)
    if version_map is None:
        return quiet(f"{state.path}: No results for {state.browser} in reports")
    return Continue(replace(state, version_map=version_map))


def skip_browser_mismatch(browsers: Sequence[str]) -> Stage:
    def stage(state: UpdateState) -> Outcome:
        if state.browser not in browsers:
            return loud(f"{state.path}: Browser {state.browser} not selected ({', '.join(browsers)})")
        return Continue(state)
    return stage


def provide_all_statements(mirror: MirrorResolver, browsers: Dict[str, Any]) -> Stage:
    def stage(state: UpdateState) -> Outcome:
        value = parse_support_value(state.unmodified_support.get(state.browser))
        if value is MIRROR:
            value = mirror(state.browser, state.unmodified_support, browsers)
        # Resolver output may alias the tree; work on a private copy
        return Continue(replace(state, all_statements=copy.deepcopy(value.statements)))
    return stage


def provide_default_statements(state: UpdateState) -> Outcome:
    defaults = [s for s in state.all_statements if is_default_statement(s)]
    return Continue(replace(state, default_statements=defaults))


def skip_no_support_updates(state: UpdateState) -> Outcome:
    if not has_support_updates(state.version_map, state.default_statements):
        return quiet(f"{state.path}: No support updates for {state.browser}")
    return Continue(state)


def provide_inferred_statements(state: UpdateState) -> Outcome:
    return Continue(replace(state, inferred_statements=infer_support_statements(state.version_map)))


def skip_too_many_inferred(state: UpdateState) -> Outcome:
    count = len(state.inferred_statements)
    if count != 1:
        return loud(
            f"{state.path}: {state.browser} has {count} inferred statements; "
            f"only one can be applied automatically"
        )
    return Continue(state)


def skip_release_mismatch(release: Union[str, bool]) -> Stage:
    range_match = _RELEASE_RANGE_RE.match(release) if isinstance(release, str) else None

    def stage(state: UpdateState) -> Outcome:
        inferred = state.inferred_statements[0]
        added = inferred.get("version_added")
        removed = inferred.get("version_removed")
        mismatch = quiet(
            f"{state.path}: {state.browser} inferred {added}"
            f"{f' (removed {removed})' if removed else ''} does not match release {release}"
        )

        if range_match:
            lower, upper = range_match.groups()

            def in_range(value: Any) -> bool:
                if not isinstance(value, str):
                    return False
                bound = upper_bound(value)
                return compare_versions(lower, bound) <= 0 and compare_versions(bound, upper) <= 0

            if not in_range(added) or (removed is not None and not in_range(removed)):
                return mismatch
            return Continue(state)

        if release != added or (removed is not None and release != removed):
            return mismatch
        return Continue(state)
    return stage


def handle_missing_default(state: UpdateState) -> Outcome:
    if state.default_statements:
        return Continue(state)

    inferred = state.inferred_statements[0]
    non_default = [s for s in state.all_statements if not is_default_statement(s)]
    # A negative result becomes {version_added: false} ahead of any flagged data
    statements =[copy.deepcopy(inferred)] + copy.deepcopy(non_default)
    state = replace(state, statements=statements, default_statements=[statements[0]], settled=True)
    return Continue(_note(state, "Added the inferred statement as the default"))


def skip_too_many_defaults(state: UpdateState) -> Outcome:
    if _pending(state) and len(state.default_statements) > 1:
        return loud(
            f"{state.path}: {state.browser} has {len(state.default_statements)} default statements; "
            f"cannot pick one to update"
        )
    return Continue(state)


def skip_default_removed(state: UpdateState) -> Outcome:
    if _pending(state) and "version_removed" in state.default_statements[0]:
        return loud(f"{state.path}: {state.browser} default statement already has a version_removed")
    return Continue(state)


def skip_current_before_support(state: UpdateState) -> Outcome:
    """Tests cannot see support that lands after the newest tested release."""
    if not _pending(state):
        return Continue(state)
    inferred_added = state.inferred_statements[0].get("version_added")
    default_added = state.default_statements[0].get("version_added")
    if inferred_added is not False or not isinstance(default_added, str):
        return Continue(state)

    latest = latest_known_version(state.version_map)
    if default_added == "preview" or (latest and compare_versions(latest, upper_bound(default_added)) < 0):
        return loud(
            f"{state.path}: {state.browser} support is recorded as {default_added}, "
            f"after the newest tested release {latest or 'none'}"
        )
    return Continue(state)


def persist_inferred_range(state: UpdateState) -> Outcome:
    if not _pending(state):
        return Continue(state)
    inferred_added = state.inferred_statements[0].get("version_added")
    default_added = state.default_statements[0].get("version_added")
    if not isinstance(default_added, str) or not is_range(inferred_added):
        return Continue(state)

    lower, upper = decode_range(inferred_added)
    if default_added == "preview":
        replace_existing = True
    elif is_range(default_added):
        existing_lower, existing_upper = decode_range(default_added)
        outside = (
            compare_versions(existing_upper, lower) <= 0
            or compare_versions(existing_upper, upper) > 0
        )
        tighter = (
            compare_versions(existing_upper, upper) == 0
            and compare_versions(lower, existing_lower) > 0
        )
        replace_existing = outside or tighter
    else:
        replace_existing = (
            compare_versions(default_added, lower) <= 0
            or compare_versions(default_added, upper) > 0
        )

    if replace_existing:
        state = _with_default(state, version_added=inferred_added)
        return Continue(_note(state, f"Replaced {default_added} with inferred range {inferred_added}"))
    return Continue(state)


def _added_differs(state: UpdateState) -> bool:
    inferred_added = state.inferred_statements[0].get("version_added")
    default_added = state.default_statements[0].get("version_added")
    if isinstance(default_added, str) and (is_range(inferred_added) or inferred_added is True):
        return False
    return default_added != inferred_added


def persist_added_over_partial(state: UpdateState) -> Outcome:
    if not _pending(state) or not _added_differs(state):
        return Continue(state)
    inferred_added = state.inferred_statements[0].get("version_added")
    if not inferred_added and state.default_statements[0].get("partial_implementation"):
        statements = [{"version_added": False}]
        state = replace(state, statements=statements, default_statements=[statements[0]])
        return Continue(_note(state, "Replaced partial support with no support"))
    return Continue(state)


def persist_added(state: UpdateState) -> Outcome:
    if not _pending(state) or not _added_differs(state):
        return Continue(state)
    if state.default_statements[0].get("partial_implementation"):
        # A positive result never overwrites recorded partial support
        return Continue(state)
    inferred_added = state.inferred_statements[0].get("version_added")
    state = _with_default(state, version_added=inferred_added)
    return Continue(_note(state, f"Set version_added to {inferred_added}"))


def persist_removed(state: UpdateState) -> Outcome:
    if not _pending(state):
        return Continue(state)
    removed = state.inferred_statements[0].get("version_removed")
    if isinstance(removed, str):
        state = _with_default(state, version_removed=removed)
        return Continue(_note(state, f"Set version_removed to {removed}"))
    return Continue(state)


def skip_ranged_statements(state: UpdateState) -> Outcome:
    if not state.statements:
        return Continue(state)
    for statement in state.statements:
        if is_range(statement.get("version_added")) or is_range(statement.get("version_removed")):
            return loud(f"{state.path}: {state.browser} update is not exact ({statement})")
    return Continue(state)


def skip_no_statement(state: UpdateState) -> Outcome:
    if state.statements:
        return Continue(state)
    if has_support_updates(state.version_map, state.default_statements):
        return loud(
            f"{state.path}: {state.browser} has unresolved differences between support matrix "
            f"and BCD data. Possible intervention required."
        )
    return loud(f"{state.path}: {state.browser} skipped with no known reason identified")


def build_stages(
    tree: Dict[str, Any],
    matrix: SupportMatrix,
    options: UpdateOptions,
    mirror: MirrorResolver = resolve_mirror,
    browsers: Optional[Dict[str, Any]] = None,
) -> List[Tuple[str, Stage]]:
    """Assemble the ordered (name, stage) list for one run."""
    stages: List[Tuple[str, Stage]] = [("expand_paths", expand_paths(tree, matrix))]
    if options.path:
        stages.append(("skip_path_mismatch", skip_path_mismatch(options.path)))
    stages += [
        ("provide_support", provide_support),
        ("expand_browsers", expand_browsers),
        ("skip_no_results", skip_no_results),
    ]
    if options.browsers:
        stages.append(("skip_browser_mismatch", skip_browser_mismatch(options.browsers)))
    stages += [
        ("provide_all_statements", provide_all_statements(mirror, browsers or {})),
        ("provide_default_statements", provide_default_statements),
        ("skip_no_support_updates", skip_no_support_updates),
        ("provide_inferred_statements", provide_inferred_statements),
        ("skip_too_many_inferred", skip_too_many_inferred),
    ]
    if options.release is not None:
        stages.append(("skip_release_mismatch", skip_release_mismatch(options.release)))
    stages += [
        ("handle_missing_default", handle_missing_default),
        ("skip_too_many_defaults", skip_too_many_defaults),
        ("skip_default_removed", skip_default_removed),
        ("skip_current_before_support", skip_current_before_support),
        ("persist_inferred_range", persist_inferred_range),
        ("persist_added_over_partial", persist_added_over_partial),
        ("persist_added", persist_added),
        ("persist_removed", persist_removed),
    ]
    if options.exact_only:
        stages.append(("skip_ranged_statements", skip_ranged_statements))
    stages.append(("skip_no_statement", skip_no_statement))
    return stages


def run_stages(
    stages: List[Tuple[str, Stage]],
    state: UpdateState,
    start: int = 0,
) -> Iterator[Tuple[UpdateState, Optional[Reason]]]:
    """
    Drive a state through stages[start:].

    Yields one (state, reason) per terminal pair: reason is the Skip reason,
    or None when the pair reached the end of the pipeline.
    """
    for index in range(start, len(stages)):
        name, stage = stages[index]
        try:
            outcome = stage(state)
        except PAIR_ERRORS as e:
            yield state, Reason(
                step="error",
                message=f"{state.path}: {state.browser or 'entry'} skipped after error in {name}: {e}",
                quiet=False,
            )
            return

        if isinstance(outcome, Skip):
            yield state, replace(outcome.reason, step=name)
            return
        if isinstance(outcome, Expand):
            for child in outcome.states:
                yield from run_stages(stages, replace(child, trace=state.trace + (name,)), index + 1)
            return
        state = replace(outcome.state, trace=state.trace + (name,))

    yield state, None


def _log_reason(reason: Reason, verbose: bool) -> None:
    if not reason.skip:
        logger.debug(reason.message)
    elif reason.quiet and not verbose:
        logger.debug(reason.message)
    else:
        logger.warning(reason.message)


def run_update(
    tree: Dict[str, Any],
    matrix: SupportMatrix,
    options: Optional[UpdateOptions] = None,
    mirror: MirrorResolver = resolve_mirror,
    browsers: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
) -> UpdateResult:
    """
    Apply the support matrix to a compatibility tree, in place.

    Args:
        tree: Compatibility tree (modified in place)
        matrix: Support matrix from build_support_matrix
        options: Filters; defaults to no filtering
        mirror: Resolver for "mirror" support values
        browsers: Browser catalog passed to the mirror resolver; defaults to
            the tree's own "browsers" member
        verbose: Log quiet skips at WARNING instead of DEBUG

    Returns:
        UpdateResult with the applied updates and every skip reason
    """
    options = options or UpdateOptions()
    if browsers is None:
        browsers = tree.get("browsers", {})
    stages = build_stages(tree, matrix, options, mirror=mirror, browsers=browsers)
    result = UpdateResult()

    for state, reason in run_stages(stages, UpdateState()):
        for note in state.notes:
            result.log.append(LogEntry(state.path, state.browser, note))
            _log_reason(note, verbose)
        if reason is not None:
            result.log.append(LogEntry(state.path, state.browser, reason))
            _log_reason(reason, verbose)
            continue

        compat = state.entry[COMPAT_KEY]
        new_value = to_raw(state.statements)
        if compat.get("support", {}).get(state.browser) == new_value:
            logger.debug(f"{state.path}: {state.browser} already up to date")
            continue
        compat.setdefault("support", {})[state.browser] = new_value
        result.updates.append(FeatureUpdate(state.path, state.browser, state.statements))
        logger.debug(f"{state.path}: Updated {state.browser} to {new_value}")

    return result


def update(
    tree: Dict[str, Any],
    matrix: SupportMatrix,
    options: Optional[UpdateOptions] = None,
    mirror: MirrorResolver = resolve_mirror,
    browsers: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
) -> bool:
    """Apply the matrix to the tree; True if anything was written."""
    return run_update(tree, matrix, options, mirror=mirror, browsers=browsers, verbose=verbose).changed
