"""Error taxonomy for the uicheck harness.

``AssertionFailure`` and ``WaitTimeoutError`` are the expected, user-visible
outcomes of a failing test. Every other error means the component or the
harness itself is broken and must abort the test.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for all errors raised by uicheck."""


class AssertionFailure(HarnessError, AssertionError):
    """A matcher mismatch.

    Attributes:
        matcher: Name of the matcher that failed, e.g. ``"to_have_style"``.
        expected: What the matcher was asked to find.
        actual: What was observed instead.
    """

    def __init__(
        self,
        message: str,
        *,
        matcher: str = "",
        expected: object = None,
        actual: object = None,
    ) -> None:
        super().__init__(message)
        self.matcher = matcher
        self.expected = expected
        self.actual = actual


class WaitTimeoutError(HarnessError, TimeoutError):
    """``wait_for`` exhausted its logical deadline.

    Attributes:
        timeout_ms: The deadline that elapsed.
        last_error: The failure raised by the final predicate evaluation,
            or ``None`` if the predicate simply returned ``False``.
    """

    def __init__(self, timeout_ms: float, last_error: BaseException | None = None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"wait_for timed out after {timeout_ms:g}ms{detail}")
        self.timeout_ms = timeout_ms
        self.last_error = last_error


class RenderError(HarnessError):
    """A component failed while rendering or while running an effect.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, component: str = "") -> None:
        super().__init__(message)
        self.component = component


class UnknownHandleError(HarnessError):
    """A mount handle was used after its instance was unmounted."""


class QueryError(HarnessError, LookupError):
    """A DOM query matched zero nodes, or more than one where one was required."""


class UnmockedRequestError(HarnessError):
    """The mocked network was called with no queued response."""
