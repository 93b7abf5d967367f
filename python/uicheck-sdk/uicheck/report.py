"""Run catalog scenarios against both variants and report the outcomes.

Each scenario is expected to fail against the buggy variant and pass
against the fixed one. :func:`run_catalog` checks exactly that and returns
a :class:`CatalogReport`; every result type is JSON-serializable so a run
can be stored and compared later.

Only the expected failure kinds are classified: assertion mismatches,
``wait_for`` timeouts and render crashes. Any other exception means the
harness or a scenario is broken, and propagates.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from uicheck.catalog import CATALOG, BugCase
from uicheck.config import HarnessConfig
from uicheck.errors import RenderError, WaitTimeoutError
from uicheck.harness import Harness

logger = logging.getLogger(__name__)

VARIANTS = ("buggy", "fixed")


class Outcome(Enum):
    """How one scenario run ended."""
    PASSED = "passed"
    FAILED = "failed"        # a matcher mismatch
    TIMED_OUT = "timed_out"  # wait_for deadline
    CRASHED = "crashed"      # RenderError


# ---------------------------------------------------------------------------
# CaseResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CaseResult:
    """The result of running one scenario against one variant.

    Attributes:
        case_name: Catalog case name.
        variant: ``"buggy"`` or ``"fixed"``.
        outcome: How the run ended.
        error_type: Exception class name when the run did not pass.
        message: Exception message when the run did not pass.
        logical_time_ms: Logical clock reading when the run ended.
        commits: Number of DOM commits the renderer recorded.
    """
    case_name: str
    variant: str
    outcome: Outcome
    error_type: str = ""
    message: str = ""
    logical_time_ms: float = 0.0
    commits: int = 0

    @property
    def expected_outcome_passed(self) -> bool:
        return self.variant == "fixed"

    @property
    def as_expected(self) -> bool:
        """True when a fixed variant passed or a buggy variant did not."""
        return (self.outcome is Outcome.PASSED) == self.expected_outcome_passed

    @property
    def headline(self) -> str:
        """First line of the failure message."""
        return self.message.splitlines()[0] if self.message else ""

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dict for JSON storage."""
        return {
            "case_name": self.case_name,
            "variant": self.variant,
            "outcome": self.outcome.value,
            "error_type": self.error_type,
            "message": self.message,
            "logical_time_ms": self.logical_time_ms,
            "commits": self.commits,
            "as_expected": self.as_expected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> CaseResult:
        """Deserialize from a plain dict (inverse of to_dict)."""
        return cls(
            case_name=str(data.get("case_name", "")),
            variant=str(data.get("variant", "")),
            outcome=Outcome(str(data.get("outcome", Outcome.PASSED.value))),
            error_type=str(data.get("error_type", "")),
            message=str(data.get("message", "")),
            logical_time_ms=float(data.get("logical_time_ms", 0.0)),  # type: ignore[arg-type]
            commits=int(data.get("commits", 0)),  # type: ignore[arg-type]
        )


# ---------------------------------------------------------------------------
# CatalogReport
# ---------------------------------------------------------------------------

@dataclass
class CatalogReport:
    """Aggregate outcome of a catalog run.

    Attributes:
        results: One entry per (case, variant) run, in run order.
        wall_time_ms: Wall-clock time spent running, in milliseconds.
    """
    results: list[CaseResult] = field(default_factory=list)
    wall_time_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def unexpected(self) -> list[CaseResult]:
        """Runs whose outcome contradicts their variant."""
        return [r for r in self.results if not r.as_expected]

    @property
    def all_as_expected(self) -> bool:
        return not self.unexpected

    def result_for(self, case_name: str, variant: str) -> CaseResult:
        for r in self.results:
            if r.case_name == case_name and r.variant == variant:
                return r
        raise KeyError(f"no result for {case_name}/{variant}")

    def summary(self) -> str:
        """Generate a human-readable summary, one line per run."""
        lines: list[str] = []
        lines.append("Catalog Report")
        lines.append(
            f"  Runs: {self.total}  As expected: {self.total - len(self.unexpected)}  "
            f"Unexpected: {len(self.unexpected)}  Wall time: {self.wall_time_ms:.1f}ms"
        )
        lines.append("")
        for r in self.results:
            mark = "ok" if r.as_expected else "!!"
            lines.append(f"  [{mark}] {r.case_name:<20} {r.variant:<6} {r.outcome.value}")
            if r.headline:
                lines.append(f"         {r.error_type}: {r.headline}")
        lines.append("")
        lines.append(f"  Result: {'ALL AS EXPECTED' if self.all_as_expected else 'UNEXPECTED OUTCOMES'}")
        return "\n".join(lines)

    def diagnosis(self) -> str:
        """Describe every unexpected outcome, with its full failure message."""
        if self.all_as_expected:
            return "Every buggy variant failed its scenario and every fixed variant passed."
        parts: list[str] = [f"{len(self.unexpected)}/{self.total} run(s) did not behave as expected.", ""]
        for r in self.unexpected:
            want = "pass" if r.expected_outcome_passed else "fail"
            parts.append(f"{r.case_name} ({r.variant}): expected to {want}, got {r.outcome.value}")
            if r.message:
                parts.extend(f"  {line}" for line in r.message.splitlines())
            parts.append("")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dict for JSON storage."""
        return {
            "results": [r.to_dict() for r in self.results],
            "wall_time_ms": self.wall_time_ms,
            "all_as_expected": self.all_as_expected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> CatalogReport:
        """Deserialize from a plain dict (inverse of to_dict)."""
        raw_results = data.get("results", [])
        results: list[CaseResult] = []
        if isinstance(raw_results, list):
            results = [CaseResult.from_dict(r) for r in raw_results]
        return cls(
            results=results,
            wall_time_ms=float(data.get("wall_time_ms", 0.0)),  # type: ignore[arg-type]
        )

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, path: str | Path) -> None:
        """Save this report to a JSON file."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.to_json(), encoding="utf-8")

    @classmethod
    def load(cls, path: str | Path) -> CatalogReport:
        """Load a report from a JSON file."""
        p = Path(path)
        if not p.exists():
            msg = f"Catalog report file not found: {p}"
            raise FileNotFoundError(msg)
        data: dict[str, object] = json.loads(p.read_text(encoding="utf-8"))
        return cls.from_dict(data)


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------

def run_case(case: BugCase, variant: str, config: HarnessConfig | None = None) -> CaseResult:
    """Run ``case.scenario`` against one variant in a fresh harness.

    Raises:
        ValueError: If ``variant`` is not ``"buggy"`` or ``"fixed"``.
    """
    definition = case.variant(variant)
    harness = Harness(config)
    outcome = Outcome.PASSED
    error: BaseException | None = None
    try:
        case.scenario(harness, definition)
    except WaitTimeoutError as exc:
        outcome, error = Outcome.TIMED_OUT, exc
    except AssertionError as exc:
        outcome, error = Outcome.FAILED, exc
    except RenderError as exc:
        outcome, error = Outcome.CRASHED, exc
    finally:
        logical_time = harness.clock.now_ms
        commits = len(harness.renderer.commits)
        harness.cleanup()

    result = CaseResult(
        case_name=case.name,
        variant=variant,
        outcome=outcome,
        error_type=type(error).__name__ if error is not None else "",
        message=str(error) if error is not None else "",
        logical_time_ms=logical_time,
        commits=commits,
    )
    logger.debug("%s/%s -> %s", case.name, variant, outcome.value)
    return result


def run_catalog(
    cases: Iterable[BugCase] = CATALOG,
    config: HarnessConfig | None = None,
    variants: Iterable[str] = VARIANTS,
) -> CatalogReport:
    """Run every case against every variant and collect a report."""
    start_time = time.monotonic()
    wanted = tuple(variants)
    results = [run_case(case, variant, config) for case in cases for variant in wanted]
    elapsed_ms = (time.monotonic() - start_time) * 1000.0
    report = CatalogReport(results=results, wall_time_ms=elapsed_ms)
    logger.info(
        "Catalog run complete -- %d/%d run(s) as expected in %.1fms",
        report.total - len(report.unexpected),
        report.total,
        elapsed_ms,
    )
    return report
