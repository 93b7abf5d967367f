#!/usr/bin/env python3
"""uicheck Catalog Demo -- buggy versus fixed components, end to end.

Runs every catalog scenario twice: once against the component that carries
the bug, once against the fixed component. A scenario is meant to fail on
the former and pass on the latter.

Flow:
  Phase 1: Buggy   -- run each scenario against the buggy variant; every
                      run should fail (mismatch, timeout or crash)
  Phase 2: Fixed   -- same scenarios against the fixed variant; every run
                      should pass
  Phase 3: Report  -- save the combined report as JSON, load it back and
                      print a side-by-side table

Uses print() for the formatted demo output; library logging goes through
the ``logging`` configuration below.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from uicheck.catalog import CATALOG
from uicheck.report import CatalogReport, run_catalog

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

REPORT_DIR = Path(__file__).parent / "reports"


def run_phase(title: str, variant: str) -> CatalogReport:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)
    report = run_catalog(variants=(variant,))
    for r in report.results:
        case = next(c for c in CATALOG if c.name == r.case_name)
        print(f"  {r.case_name:<20} {r.outcome.value:<10} ({case.bug_class})")
        if r.headline:
            print(f"      {r.error_type}: {r.headline}")
    return report


def print_final_report(report: CatalogReport) -> None:
    print("\n" + "=" * 70)
    print("PHASE 3: FINAL REPORT")
    print("=" * 70)

    print(f"\n  {'Case':<20} {'Buggy':>10} {'Fixed':>10}")
    print(f"  {'-' * 20} {'-' * 10} {'-' * 10}")
    for case in CATALOG:
        buggy = report.result_for(case.name, "buggy")
        fixed = report.result_for(case.name, "fixed")
        marker = "" if buggy.as_expected and fixed.as_expected else "  <-- unexpected"
        print(f"  {case.name:<20} {buggy.outcome.value:>10} {fixed.outcome.value:>10}{marker}")

    if report.all_as_expected:
        print("\n  Every bug was detected and every fix was confirmed.")
    else:
        print("\n  --- Diagnosis ---")
        print(report.diagnosis())


def main() -> int:
    """Run the catalog demo."""
    print("=" * 70)
    print("  UICHECK -- Stateful-UI Bug Catalog Demo")
    print("=" * 70)

    buggy = run_phase("PHASE 1: BUGGY VARIANTS", "buggy")
    fixed = run_phase("PHASE 2: FIXED VARIANTS", "fixed")
    combined = CatalogReport(
        results=[*buggy.results, *fixed.results],
        wall_time_ms=buggy.wall_time_ms + fixed.wall_time_ms,
    )

    report_path = REPORT_DIR / "catalog_report.json"
    combined.save(report_path)
    logger.info("Saved catalog report to %s", report_path)
    loaded = CatalogReport.load(report_path)
    print_final_report(loaded)
    print(f"\n  JSON report: {report_path}")

    print("\n" + "=" * 70)
    print("  Demo complete.")
    print("=" * 70)
    if not loaded.all_as_expected:
        logger.warning("%d catalog run(s) did not behave as expected", len(loaded.unexpected))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
