"""Tests for uicheck.report -- running the catalog and persisting results."""

from __future__ import annotations

from pathlib import Path

import pytest

from uicheck.catalog import CATALOG, BugCase, get_case
from uicheck.report import CaseResult, CatalogReport, Outcome, run_case, run_catalog


@pytest.fixture(scope="module")
def report() -> CatalogReport:
    return run_catalog()


class TestRunCatalog:
    """A full run behaves as documented."""

    def test_every_run_as_expected(self, report: CatalogReport) -> None:
        assert report.total == 2 * len(CATALOG)
        assert report.all_as_expected, report.diagnosis()

    @pytest.mark.parametrize(
        ("case_name", "outcome"),
        [
            ("todo_toggle", Outcome.FAILED),
            ("counter_interval", Outcome.TIMED_OUT),
            ("handler_at_render", Outcome.FAILED),
            ("props_not_syncing", Outcome.FAILED),
            ("null_reference", Outcome.CRASHED),
        ],
    )
    def test_buggy_outcomes(self, report: CatalogReport, case_name: str, outcome: Outcome) -> None:
        result = report.result_for(case_name, "buggy")
        assert result.outcome is outcome
        assert result.error_type
        assert result.message
        assert report.result_for(case_name, "fixed").outcome is Outcome.PASSED

    def test_counter_timeout_records_logical_time(self, report: CatalogReport) -> None:
        result = report.result_for("counter_interval", "buggy")
        # 5s of advancing plus the full wait_for deadline.
        assert result.logical_time_ms == 6000.0

    def test_fixed_runs_commit(self, report: CatalogReport) -> None:
        assert all(r.commits > 0 for r in report.results if r.variant == "fixed")

    def test_result_for_unknown(self, report: CatalogReport) -> None:
        with pytest.raises(KeyError):
            report.result_for("todo_toggle", "patched")


class TestRunCase:
    def test_single_variant(self) -> None:
        result = run_case(get_case("todo_toggle"), "fixed")
        assert result.outcome is Outcome.PASSED
        assert result.as_expected
        assert result.error_type == ""

    def test_invalid_variant(self) -> None:
        with pytest.raises(ValueError):
            run_case(get_case("todo_toggle"), "other")

    def test_unclassified_errors_propagate(self) -> None:
        def broken_scenario(harness, component_def) -> None:
            raise ZeroDivisionError("scenario bug")

        case = BugCase("broken", "n/a", "n/a", CATALOG[0].buggy, CATALOG[0].fixed, broken_scenario)
        with pytest.raises(ZeroDivisionError):
            run_case(case, "fixed")

    def test_unexpected_pass_is_reported(self) -> None:
        def lenient(harness, component_def) -> None:
            harness.render(component_def(initial_todos=[]))

        case = BugCase("lenient", "n/a", "n/a", CATALOG[0].buggy, CATALOG[0].fixed, lenient)
        report = run_catalog([case])

        assert not report.all_as_expected
        assert [r.variant for r in report.unexpected] == ["buggy"]
        assert "lenient (buggy): expected to fail, got passed" in report.diagnosis()
        assert "UNEXPECTED OUTCOMES" in report.summary()


class TestReportText:
    def test_summary(self, report: CatalogReport) -> None:
        text = report.summary()
        assert "Catalog Report" in text
        assert "[ok] counter_interval" in text
        assert "ALL AS EXPECTED" in text
        assert "[!!]" not in text

    def test_diagnosis_when_clean(self, report: CatalogReport) -> None:
        assert report.diagnosis().startswith("Every buggy variant failed")

    def test_headline_is_first_line(self) -> None:
        result = CaseResult("c", "buggy", Outcome.FAILED, "AssertionFailure", "first\nsecond")
        assert result.headline == "first"
        assert result.as_expected


class TestSerialization:
    def test_case_result_round_trip(self) -> None:
        result = CaseResult("c", "fixed", Outcome.TIMED_OUT, "WaitTimeoutError", "late", 1250.0, 3)
        data = result.to_dict()
        assert data["outcome"] == "timed_out"
        assert data["as_expected"] is False
        assert CaseResult.from_dict(data) == result

    def test_report_round_trip(self, report: CatalogReport) -> None:
        restored = CatalogReport.from_dict(report.to_dict())
        assert restored.results == report.results
        assert restored.all_as_expected

    def test_save_and_load(self, report: CatalogReport, tmp_path: Path) -> None:
        path = tmp_path / "reports" / "catalog.json"
        report.save(path)
        loaded = CatalogReport.load(path)
        assert loaded.results == report.results
        assert loaded.wall_time_ms == pytest.approx(report.wall_time_ms)

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Catalog report file not found"):
            CatalogReport.load(tmp_path / "nope.json")
