"""Mock callables and the mocked network boundary.

:class:`MockFn` wraps :class:`unittest.mock.Mock` and adds an append-only,
clock-stamped call history (:class:`CallRecord`) that matchers inspect.
:class:`MockFetch` stands in for an HTTP client: it is handed to a
component as a prop and answers each request with the next queued result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from collections.abc import Generator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from unittest import mock

from uicheck.clock import LogicalClock
from uicheck.errors import UnmockedRequestError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CallRecord
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallRecord:
    """One invocation of a mock.

    Attributes:
        index: Zero-based position in the mock's call history.
        args: Positional arguments.
        kwargs: Keyword arguments (read-only).
        timestamp_ms: Logical time of the call.
    """
    index: int
    args: tuple[object, ...]
    kwargs: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))
    timestamp_ms: float = 0.0

    def matches(self, args: tuple[object, ...], kwargs: Mapping[str, object]) -> bool:
        return self.args == args and dict(self.kwargs) == dict(kwargs)

    def describe(self) -> str:
        parts = [repr(a) for a in self.args]
        parts.extend(f"{k}={v!r}" for k, v in self.kwargs.items())
        return f"({', '.join(parts)})"

    def to_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "args": list(self.args),
            "kwargs": dict(self.kwargs),
            "timestamp_ms": self.timestamp_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> CallRecord:
        raw_args = data.get("args", [])
        raw_kwargs = data.get("kwargs", {})
        return cls(
            index=int(data.get("index", 0)),  # type: ignore[arg-type]
            args=tuple(raw_args) if isinstance(raw_args, list) else (),
            kwargs=MappingProxyType(dict(raw_kwargs) if isinstance(raw_kwargs, dict) else {}),
            timestamp_ms=float(data.get("timestamp_ms", 0.0)),  # type: ignore[arg-type]
        )


# ---------------------------------------------------------------------------
# MockFn
# ---------------------------------------------------------------------------

_UNSET = object()


class MockFn:
    """A substitute callable with a clock-stamped call history.

    ``return_value`` and ``side_effect`` behave as on
    :class:`unittest.mock.Mock`, which is available as :attr:`mock` for its
    own ``assert_*`` helpers. Values queued with :meth:`return_once` take
    precedence, one per call, in order.
    """

    def __init__(
        self,
        name: str = "mock",
        *,
        return_value: object = None,
        side_effect: object = None,
        clock: LogicalClock | None = None,
    ) -> None:
        self.name = name
        self.mock = mock.Mock(name=name, return_value=return_value, side_effect=side_effect)
        self._clock = clock
        self._records: list[CallRecord] = []
        self._once: deque[object] = deque()

    def __repr__(self) -> str:
        return f"<MockFn {self.name} calls={len(self._records)}>"

    def __call__(self, *args: object, **kwargs: object) -> Any:
        record = CallRecord(
            index=len(self._records),
            args=args,
            kwargs=MappingProxyType(dict(kwargs)),
            timestamp_ms=self._clock.now_ms if self._clock is not None else 0.0,
        )
        self._records.append(record)
        result = self.mock(*args, **kwargs)
        if self._once:
            queued = self._once.popleft()
            if isinstance(queued, BaseException):
                raise queued
            return queued
        return result

    @property
    def calls(self) -> tuple[CallRecord, ...]:
        """The call history, oldest first."""
        return tuple(self._records)

    @property
    def call_count(self) -> int:
        return len(self._records)

    @property
    def called(self) -> bool:
        return bool(self._records)

    @property
    def last_call(self) -> CallRecord | None:
        return self._records[-1] if self._records else None

    def return_once(self, value: object) -> MockFn:
        """Queue a return value (or an exception to raise) for one call."""
        self._once.append(value)
        return self

    def mock_clear(self) -> None:
        """Forget recorded calls, keeping return values and queued results."""
        self._records.clear()
        self.mock.reset_mock()

    def mock_reset(self) -> None:
        """Forget recorded calls and queued results."""
        self.mock_clear()
        self._once.clear()


# ---------------------------------------------------------------------------
# Mocked network
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MockResponse:
    """A canned HTTP response."""
    status: int = 200
    body: str = ""
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_json(cls, payload: object, status: int = 200) -> MockResponse:
        return cls(
            status=status,
            body=json.dumps(payload),
            headers=MappingProxyType({"content-type": "application/json"}),
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self) -> Any:
        await asyncio.sleep(0)
        try:
            return json.loads(self.body)
        except json.JSONDecodeError as exc:
            raise ValueError(f"response body is not valid JSON: {exc}") from exc

    async def text(self) -> str:
        await asyncio.sleep(0)
        return self.body


class PendingRequest:
    """Awaitable outcome of one mocked request.

    Awaiting it resolves on a later event-loop turn; an exception result is
    raised there. Dropping it without awaiting is harmless.
    """

    def __init__(self, url: str, result: MockResponse | BaseException) -> None:
        self.url = url
        self._result = result

    def __repr__(self) -> str:
        return f"<PendingRequest {self.url!r}>"

    def __await__(self) -> Generator[Any, None, MockResponse]:
        return self._resolve().__await__()

    async def _resolve(self) -> MockResponse:
        await asyncio.sleep(0)
        if isinstance(self._result, BaseException):
            raise self._result
        return self._result


class MockFetch:
    """Per-test stand-in for an async ``fetch(url, **options)`` function.

    Each call consumes the next queued result in order; an exception
    queued with :meth:`reject_with` is raised instead. Results resolve on a
    later event-loop turn, like a real request would.

    Usage::

        fetch = harness.mock_fetch()
        fetch.respond_with_json({"id": 1}).reject_with(ConnectionError("down"))
        BlogPost(post_id=1, fetch=fetch)
    """

    def __init__(self, *, clock: LogicalClock | None = None, name: str = "fetch") -> None:
        self.calls_fn = MockFn(name, clock=clock)
        self._queue: deque[MockResponse | BaseException] = deque()

    def __repr__(self) -> str:
        return f"<MockFetch calls={self.call_count} queued={len(self._queue)}>"

    def __call__(self, url: str, **options: object) -> PendingRequest:
        """Record the request and claim its queued result.

        The call is recorded, and the result dequeued, when ``fetch`` is
        called, whether or not the returned request is ever awaited.
        """
        self.calls_fn(url, **options)
        if self._queue:
            result = self._queue.popleft()
        else:
            result = UnmockedRequestError(f"no mocked response queued for request to {url!r}")
        logger.debug("Mocked request %s -> %r", url, result)
        return PendingRequest(url, result)

    def respond_with(self, response: MockResponse) -> MockFetch:
        self._queue.append(response)
        return self

    def respond_with_json(self, payload: object, status: int = 200) -> MockFetch:
        return self.respond_with(MockResponse.from_json(payload, status))

    def reject_with(self, exc: BaseException) -> MockFetch:
        self._queue.append(exc)
        return self

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def calls(self) -> tuple[CallRecord, ...]:
        return self.calls_fn.calls

    @property
    def call_count(self) -> int:
        return self.calls_fn.call_count

    def mock_clear(self) -> None:
        self.calls_fn.mock_clear()
