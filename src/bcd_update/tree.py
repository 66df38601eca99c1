"""
Compatibility tree helpers.

The tree is a nested mapping from path segment to node; nodes that describe a
feature carry a ``__compat`` member whose ``support`` maps browser ids to
support statements. These helpers locate and walk those nodes and read or
write the JSON files the tree is stored in.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

COMPAT_KEY = "__compat"

# Categories loaded when updating the whole tree
DEFAULT_CATEGORIES = [
    "api",
    "browsers",
    "css",
    "html",
    "http",
    "javascript",
    "mathml",
    "svg",
    "webassembly",
    "webdriver",
    "webextensions",
]


def find_entry(tree: Dict[str, Any], path: str) -> Optional[Dict[str, Any]]:
    """
    Look up the node for a dotted feature path.

    Args:
        tree: Compatibility tree (or any subtree)
        path: Dot-separated path such as "api.AbortController.abort"

    Returns:
        The node, or None if the path is empty or missing
    """
    if not path:
        return None
    entry: Any = tree
    for key in path.split("."):
        if not isinstance(entry, dict):
            return None
        entry = entry.get(key)
        if entry is None:
            return None
    return entry


def walk_entries(tree: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield (path, node) for every node in the tree that carries compat data."""
    for key, value in tree.items():
        if key == COMPAT_KEY:
            yield prefix[:-1], tree
        elif isinstance(value, dict):
            yield from walk_entries(value, f"{prefix}{key}.")


def _is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def _iter_json_files(path: Path) -> Iterator[Path]:
    if path.is_file():
        if path.suffix == ".json":
            yield path
        return
    for root, dirs, files in os.walk(path):
        # Prune .git, .DS_Store and friends
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        for name in sorted(files):
            candidate = Path(root) / name
            if candidate.suffix == ".json" and not _is_hidden(candidate):
                yield candidate


def load_json_files(paths: Iterable[Union[str, Path]]) -> Dict[str, Any]:
    """
    Load every JSON file under the given files or directories.

    Args:
        paths: Files or directories (searched recursively)

    Returns:
        Dict mapping file path (as given, joined with the relative name) to
        parsed content, in a stable sorted order
    """
    loaded: Dict[str, Any] = {}
    for raw in paths:
        path = Path(raw)
        if not path.exists():
            logger.warning(f"Skipping missing path {path}")
            continue
        for file_path in _iter_json_files(path):
            with open(file_path, "r", encoding="utf-8") as f:
                loaded[str(file_path)] = json.load(f)
    return loaded


def write_json_file(path: Union[str, Path], data: Any) -> None:
    """
    Write data as two-space indented JSON with a trailing newline.

    Written atomically (temp file then rename) so an interrupted run never
    leaves a truncated data file behind.
    """
    file_path = Path(path)
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(content)
        temp_path.replace(file_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def category_paths(bcd_dir: Union[str, Path], categories: Optional[List[str]] = None) -> List[Path]:
    """Directories of the tree to load, one per top-level category."""
    base = Path(bcd_dir)
    return [base.joinpath(*cat.split(".")) for cat in (categories or DEFAULT_CATEGORIES)]


def load_browsers(bcd_dir: Union[str, Path]) -> Dict[str, Any]:
    """
    Build the browser release catalog from ``<bcd_dir>/browsers/*.json``.

    Returns:
        Dict mapping browser id to ``{"name", "releases", ...}``
    """
    browsers: Dict[str, Any] = {}
    for data in load_json_files([Path(bcd_dir) / "browsers"]).values():
        browsers.update(data.get("browsers", {}))
    return browsers
