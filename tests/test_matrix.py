"""
Tests for support matrix construction and overrides.
"""

import json
import logging

import pytest

from src.bcd_update.matrix import (
    Override,
    OverrideValidationError,
    UnknownOverrideTarget,
    apply_overrides,
    build_support_matrix,
    load_overrides,
    parse_overrides,
)
from src.bcd_update.ua import ResolvedIdentity
from src.bcd_update.verdicts import Verdict

S, U, N = Verdict.SUPPORTED, Verdict.UNSUPPORTED, Verdict.UNKNOWN


def chrome_ua(version):
    return (
        "Mozilla/5.0 (Windows NT 6.1; WOW64) AppleWebKit/537.36 (KHTML, like Gecko) "
        f"Chrome/{version} Safari/537.36"
    )


SAFARI_13_1 = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_6) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/13.1.2 Safari/605.1.15"
)
YANDEX = (
    "Mozilla/5.0 (Windows NT 6.3) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/58.0.3029.110 YaBrowser/17.6.1.749 Yowser/2.5 Safari/537.36"
)


def make_report(user_agent, results):
    return {
        "results": {
            "https://example.test/tests/": [
                {"name": name, "exposure": "Window", "result": result}
                for name, result in results.items()
            ]
        },
        "userAgent": user_agent,
    }


@pytest.fixture
def browsers():
    return {
        "chrome": {"name": "Chrome", "releases": {v: {} for v in ("82", "83", "84", "85")}},
        "safari": {"name": "Safari", "releases": {v: {} for v in ("13", "13.1", "14")}},
    }


@pytest.fixture
def reports():
    return [
        make_report(chrome_ua("83.0.4103.61"), {
            "api.AbortController": True,
            "api.AbortController.abort": None,
            "api.AudioContext": False,
            "api.AudioContext.close": None,
        }),
        make_report(chrome_ua("84.0.4147.89"), {
            "api.AbortController": True,
            "api.AbortController.abort": False,
            "api.AudioContext": False,
        }),
        make_report(chrome_ua("84.0.4147.89"), {
            "api.AbortController.abort": True,
        }),
        make_report(SAFARI_13_1, {
            "api.AbortController": True,
        }),
    ]


class TestBuildSupportMatrix:
    """Tests for build_support_matrix()."""

    def test_expected_matrix(self, reports, browsers):
        matrix = build_support_matrix(reports, browsers)

        assert matrix["api.AbortController"] == {
            "chrome": {"82": N, "83": S, "84": S, "85": N},
            "safari": {"13": N, "13.1": S, "14": N},
        }
        assert matrix["api.AbortController.abort"] == {
            "chrome": {"82": N, "83": N, "84": S, "85": N},
        }
        assert matrix["api.AudioContext"] == {
            "chrome": {"82": N, "83": U, "84": U, "85": N},
        }
        # Unknown under an unsupported parent counts as unsupported
        assert matrix["api.AudioContext.close"] == {
            "chrome": {"82": N, "83": U, "84": N, "85": N},
        }

    def test_duplicate_reports_change_nothing(self, reports, browsers):
        once = build_support_matrix(reports, browsers)
        twice = build_support_matrix(reports + reports, browsers)
        assert once == twice

    def test_report_order_irrelevant(self, reports, browsers):
        forward = build_support_matrix(reports, browsers)
        backward = build_support_matrix(list(reversed(reports)), browsers)
        assert forward == backward

    def test_unresolved_reports_are_logged(self, browsers, caplog):
        reports = [
            make_report(chrome_ua("1000.1.4183.83"), {"api.AbortController": False}),
            make_report(YANDEX, {"api.AbortController": False}),
            make_report("node-superagent/1.2.3", {"api.AbortController": False}),
        ]

        with caplog.at_level(logging.WARNING, logger="src.bcd_update.matrix"):
            matrix = build_support_matrix(reports, browsers)

        assert matrix == {}
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("Ignoring unknown Chrome version 1000.1 (") for m in messages)
        assert any(m.startswith("Ignoring unknown browser Yandex 17.6 (") for m in messages)
        assert "Unable to parse browser from UA node-superagent/1.2.3" in messages

    def test_resolver_is_injectable(self, browsers):
        def resolver(user_agent, catalog):
            return ResolvedIdentity("chrome", "Chrome", "85", in_bcd=True)

        matrix = build_support_matrix(
            [make_report("anything", {"api.A": True})], browsers, resolver=resolver
        )
        assert matrix["api.A"]["chrome"]["85"] is S

    def test_resolver_version_outside_catalog_is_ignored(self, browsers, caplog):
        def resolver(user_agent, catalog):
            return ResolvedIdentity("chrome", "Chrome", "99", in_bcd=True)

        matrix = build_support_matrix([make_report("anything", {"api.A": True})], browsers, resolver=resolver)

        assert matrix == {}
        assert "Ignoring unknown Chrome version 99" in caplog.text

    def test_empty_report_is_left_out(self, reports, browsers, caplog):
        """One report with no results does not fail the batch."""
        empty = make_report(chrome_ua("83.0"), {})
        matrix = build_support_matrix([empty] + reports, browsers)

        assert matrix == build_support_matrix(reports, browsers)
        assert "has no results!" in caplog.text

    def test_invalid_result_is_left_out(self, reports, browsers, caplog):
        bad = make_report(chrome_ua("83.0"), {"api.AbortController": "maybe"})
        matrix = build_support_matrix(reports + [bad], browsers)

        assert matrix == build_support_matrix(reports, browsers)
        assert "result not true/false/null" in caplog.text

    def test_resolver_identity_not_mutated(self, browsers):
        identity = ResolvedIdentity("chrome", "Chrome", "99", in_bcd=True)

        build_support_matrix(
            [make_report("anything", {"api.A": True})], browsers, resolver=lambda ua, catalog: identity
        )

        assert identity.in_bcd is True


class TestOverrides:
    """Tests for manual overrides."""

    @pytest.fixture
    def matrix(self, reports, browsers):
        return build_support_matrix(reports, browsers)

    def test_exact_version(self, matrix):
        apply_overrides(matrix, [Override("api.AbortController", "chrome", "83", U)])
        assert matrix["api.AbortController"]["chrome"]["83"] is U
        assert matrix["api.AbortController"]["chrome"]["84"] is S

    def test_wildcard(self, matrix):
        apply_overrides(matrix, [Override("api.AbortController", "chrome", "*", N)])
        assert set(matrix["api.AbortController"]["chrome"].values()) == {N}

    def test_open_range(self, matrix):
        apply_overrides(matrix, [Override("api.AbortController", "chrome", "84+", U)])
        assert matrix["api.AbortController"]["chrome"] == {"82": N, "83": S, "84": U, "85": U}

    def test_closed_range(self, matrix):
        apply_overrides(matrix, [Override("api.AbortController", "safari", "13-13.1", U)])
        assert matrix["api.AbortController"]["safari"] == {"13": U, "13.1": U, "14": N}

    def test_later_override_wins(self, matrix):
        apply_overrides(matrix, [
            Override("api.AbortController", "chrome", "*", U),
            Override("api.AbortController", "chrome", "85", S),
        ])
        assert matrix["api.AbortController"]["chrome"]["85"] is S
        assert matrix["api.AbortController"]["chrome"]["82"] is U

    def test_overrides_beat_reports(self, reports, browsers):
        matrix = build_support_matrix(
            reports, browsers, overrides=[Override("api.AudioContext", "chrome", "83", S)]
        )
        assert matrix["api.AudioContext"]["chrome"]["83"] is S

    def test_unknown_target_ignored(self, matrix):
        apply_overrides(matrix, [Override("api.Missing", "chrome", "83", S)])
        assert "api.Missing" not in matrix

    def test_unknown_target_strict(self, matrix):
        with pytest.raises(UnknownOverrideTarget):
            apply_overrides(matrix, [Override("api.Missing", "chrome", "83", S)], strict=True)
        with pytest.raises(UnknownOverrideTarget):
            apply_overrides(matrix, [Override("api.AbortController", "chrome", "99", S)], strict=True)

    def test_parse_drops_comments(self):
        overrides = parse_overrides([
            "Chrome 83 result is a false positive",
            ["api.AbortController", "chrome", "83", False],
        ])
        assert overrides == [Override("api.AbortController", "chrome", "83", U)]

    def test_load_overrides(self, tmp_path):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps(["comment", ["api.A", "safari", "13+", None]]))

        assert load_overrides(path) == [Override("api.A", "safari", "13+", N)]

    def test_load_overrides_schema_failure(self, tmp_path):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps([["api.A", "safari", "13+"]]))

        with pytest.raises(OverrideValidationError, match="Invalid override at 0"):
            load_overrides(path)
