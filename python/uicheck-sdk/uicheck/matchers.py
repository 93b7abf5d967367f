"""Assertion layer: read-only matchers with expected-vs-actual failures.

Usage::

    expect(node).to_have_text_content("Count: 5")
    expect(node).not_.to_have_style("text-decoration: line-through")
    expect(on_toggle).to_have_been_called_with(1)

Every failure raises :class:`~uicheck.errors.AssertionFailure`, which is an
``AssertionError``, so pytest reports it natively and ``wait_for`` retries
on it.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from uicheck.errors import AssertionFailure
from uicheck.mocks import CallRecord, MockFetch, MockFn
from uicheck.nodes import RenderedNode, attribute_name, normalize_text, parse_css, style_property, style_value

_ANY = object()


# ---------------------------------------------------------------------------
# MatchResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchResult:
    """Outcome of evaluating one matcher, before negation is applied."""
    matcher: str
    passed: bool
    expected: object
    actual: object
    detail: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "matcher": self.matcher,
            "passed": self.passed,
            "expected": repr(self.expected),
            "actual": repr(self.actual),
            "detail": self.detail,
        }


def _failure_message(subject: str, result: MatchResult, negated: bool) -> str:
    prefix = "not_." if negated else ""
    lines = [f"expect({subject}).{prefix}{result.matcher}(...)"]
    if result.detail:
        lines.append(result.detail)
    lines.append(f"Expected: {'not ' if negated else ''}{result.expected!r}")
    lines.append(f"Received: {result.actual!r}")
    return "\n".join(lines)


class _Expectation:
    subject_label = "value"

    def __init__(self, subject: Any, *, negated: bool = False) -> None:
        self._subject = subject
        self._negated = negated

    @property
    def not_(self) -> Any:
        """The same expectation with every matcher negated."""
        return type(self)(self._subject, negated=not self._negated)

    def _check(self, result: MatchResult) -> None:
        if result.passed != self._negated:
            return
        raise AssertionFailure(
            _failure_message(self.subject_label, result, self._negated),
            matcher=result.matcher,
            expected=result.expected,
            actual=result.actual,
        )


# ---------------------------------------------------------------------------
# Node matchers
# ---------------------------------------------------------------------------

class NodeExpectation(_Expectation):
    subject_label = "element"

    @property
    def node(self) -> RenderedNode:
        return self._subject

    def to_have_text_content(self, expected: str | re.Pattern[str], *, exact: bool = False) -> None:
        """Text content contains ``expected`` (or equals it with ``exact=True``).

        Whitespace is normalized on both sides; a compiled pattern is searched.
        """
        actual = normalize_text(self.node.text_content)
        if isinstance(expected, re.Pattern):
            passed = expected.search(actual) is not None
            shown: object = expected.pattern
        else:
            wanted = normalize_text(expected)
            passed = actual == wanted if exact else wanted in actual
            shown = wanted
        self._check(MatchResult("to_have_text_content", passed, shown, actual))

    def to_have_attribute(self, name: str, value: object = _ANY) -> None:
        """The attribute is present (and equals ``value`` when given)."""
        attr = attribute_name(name)
        actual = self.node.attributes.get(attr)
        if value is _ANY:
            result = MatchResult("to_have_attribute", actual is not None, f"[{attr}]", actual)
        else:
            wanted = "" if value is True else str(value)
            result = MatchResult(
                "to_have_attribute", actual == wanted, f"{attr}={wanted!r}", actual,
                detail=f"attribute {attr!r}",
            )
        self._check(result)

    def to_have_style(self, expected: str | Mapping[str, object]) -> None:
        """Every given style property has the given computed value."""
        if isinstance(expected, str):
            wanted = parse_css(expected)
        else:
            wanted = {}
            for key, value in expected.items():
                prop = style_property(str(key))
                wanted[prop] = style_value(prop, value)
        actual = {prop: self.node.computed_style(prop) for prop in wanted}
        passed = all(actual[prop] == value for prop, value in wanted.items())
        self._check(MatchResult("to_have_style", passed, wanted, actual))

    def to_be_in_the_document(self) -> None:
        connected = self.node.connected
        actual = "attached node" if connected else "detached node"
        self._check(MatchResult("to_be_in_the_document", connected, "attached node", actual))


# ---------------------------------------------------------------------------
# Mock matchers
# ---------------------------------------------------------------------------

def _format_calls(calls: tuple[CallRecord, ...]) -> list[str]:
    return [c.describe() for c in calls]


class MockExpectation(_Expectation):
    subject_label = "mock"

    @property
    def calls(self) -> tuple[CallRecord, ...]:
        return self._subject.calls

    def to_have_been_called(self) -> None:
        calls = self.calls
        self._check(MatchResult(
            "to_have_been_called", bool(calls), "at least one call", _format_calls(calls),
        ))

    def to_have_been_called_times(self, times: int) -> None:
        calls = self.calls
        self._check(MatchResult(
            "to_have_been_called_times", len(calls) == times, times, len(calls),
            detail=f"calls: {_format_calls(calls)}",
        ))

    def to_have_been_called_with(self, *args: object, **kwargs: object) -> None:
        """Some recorded call had exactly these arguments."""
        calls = self.calls
        wanted = CallRecord(0, args, kwargs)
        passed = any(c.matches(args, kwargs) for c in calls)
        self._check(MatchResult(
            "to_have_been_called_with", passed, wanted.describe(), _format_calls(calls),
        ))

    def to_have_been_last_called_with(self, *args: object, **kwargs: object) -> None:
        calls = self.calls
        wanted = CallRecord(0, args, kwargs)
        last = calls[-1] if calls else None
        passed = last is not None and last.matches(args, kwargs)
        self._check(MatchResult(
            "to_have_been_last_called_with", passed, wanted.describe(),
            last.describe() if last is not None else "no calls",
        ))

    def to_have_been_nth_called_with(self, n: int, *args: object, **kwargs: object) -> None:
        """The ``n``-th call (1-based) had exactly these arguments."""
        if n < 1:
            raise ValueError(f"n is 1-based, got {n}")
        calls = self.calls
        wanted = CallRecord(0, args, kwargs)
        nth = calls[n - 1] if len(calls) >= n else None
        passed = nth is not None and nth.matches(args, kwargs)
        self._check(MatchResult(
            "to_have_been_nth_called_with", passed, wanted.describe(),
            nth.describe() if nth is not None else f"only {len(calls)} call(s)",
            detail=f"call #{n}",
        ))


def expect(subject: object) -> Any:
    """Start an assertion about a rendered node or a mock."""
    if isinstance(subject, RenderedNode):
        return NodeExpectation(subject)
    if isinstance(subject, (MockFn, MockFetch)):
        return MockExpectation(subject)
    if subject is None:
        raise TypeError("expect() received None; did a query_by_* find nothing?")
    raise TypeError(f"expect() does not know how to match {type(subject).__name__}")
