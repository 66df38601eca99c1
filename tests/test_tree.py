"""
Tests for compatibility tree helpers.
"""

import json

import pytest

from src.bcd_update.tree import (
    category_paths,
    find_entry,
    load_browsers,
    load_json_files,
    walk_entries,
    write_json_file,
)


@pytest.fixture
def tree():
    return {
        "api": {
            "AbortController": {
                "__compat": {"support": {"chrome": {"version_added": "66"}}},
                "abort": {"__compat": {"support": {}}},
            },
            "Notes": {"description": "no compat here"},
        },
        "css": {
            "properties": {
                "font-family": {"__compat": {"support": {}}},
            },
        },
    }


class TestFindEntry:
    """Tests for dotted path lookup."""

    def test_finds_nested_entry(self, tree):
        entry = find_entry(tree, "api.AbortController.abort")
        assert entry is tree["api"]["AbortController"]["abort"]

    def test_missing_path(self, tree):
        assert find_entry(tree, "api.Nope") is None
        assert find_entry(tree, "api.AbortController.abort.deeper") is None

    def test_empty_path(self, tree):
        assert find_entry(tree, "") is None


class TestWalkEntries:
    """Tests for walk_entries()."""

    def test_yields_only_compat_nodes(self, tree):
        paths = [path for path, _ in walk_entries(tree)]
        assert paths == [
            "api.AbortController",
            "api.AbortController.abort",
            "css.properties.font-family",
        ]

    def test_yields_the_node(self, tree):
        nodes = dict(walk_entries(tree))
        assert nodes["api.AbortController"] is tree["api"]["AbortController"]


class TestJsonFiles:
    """Tests for JSON loading and writing."""

    def test_load_directory_recursively(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "one.json").write_text('{"n": 1}')
        (tmp_path / "two.json").write_text('{"n": 2}')
        (tmp_path / ".hidden.json").write_text('{"n": 3}')
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "x.json").write_text('{"n": 4}')
        (tmp_path / "notes.txt").write_text("ignored")

        loaded = load_json_files([tmp_path])

        assert sorted(d["n"] for d in loaded.values()) == [1, 2]

    def test_load_single_file(self, tmp_path):
        path = tmp_path / "report.json"
        path.write_text('{"n": 1}')
        assert load_json_files([path]) == {str(path): {"n": 1}}

    def test_missing_path_is_logged(self, tmp_path, caplog):
        loaded = load_json_files([tmp_path / "missing"])
        assert loaded == {}
        assert "Skipping missing path" in caplog.text

    def test_write_format(self, tmp_path):
        path = tmp_path / "out.json"
        write_json_file(path, {"b": {"version_added": "≤84"}})

        content = path.read_text(encoding="utf-8")
        assert content.endswith("}\n")
        assert '  "b": {' in content
        assert "≤84" in content
        assert json.loads(content) == {"b": {"version_added": "≤84"}}
        assert not (tmp_path / "out.json.tmp").exists()


class TestBrowsers:
    """Tests for the browser catalog."""

    def test_load_browsers_merges_files(self, tmp_path):
        browsers_dir = tmp_path / "browsers"
        browsers_dir.mkdir()
        (browsers_dir / "chrome.json").write_text(json.dumps(
            {"browsers": {"chrome": {"name": "Chrome", "releases": {"83": {}}}}}
        ))
        (browsers_dir / "safari.json").write_text(json.dumps(
            {"browsers": {"safari": {"name": "Safari", "releases": {"14": {}}}}}
        ))

        browsers = load_browsers(tmp_path)

        assert set(browsers) == {"chrome", "safari"}
        assert browsers["chrome"]["releases"] == {"83": {}}

    def test_category_paths(self, tmp_path):
        assert category_paths(tmp_path, ["api", "css"]) == [tmp_path / "api", tmp_path / "css"]
