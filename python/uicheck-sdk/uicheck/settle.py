"""Async settlement: draining coroutine work and polling for convergence.

Async effects and mocked network calls run as asyncio tasks on a private
event loop owned by one harness. The loop never runs on its own; it is
pumped explicitly by :meth:`MicrotaskRunner.drain`, which is what makes
settlement deterministic.

:func:`wait_for` alternates draining with evaluating a predicate and, on
failure, moving the logical clock forward by one poll interval. Its
deadline is logical time, so a timeout is as reproducible as a pass.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from uicheck.clock import LogicalClock
from uicheck.config import HarnessConfig
from uicheck.errors import HarnessError, WaitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MicrotaskRunner:
    """Owns the event loop that pending coroutine work runs on."""

    def __init__(self, config: HarnessConfig | None = None) -> None:
        self.config = config or HarnessConfig()
        self.loop = asyncio.new_event_loop()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def closed(self) -> bool:
        return self.loop.is_closed()

    @property
    def pending(self) -> list[asyncio.Task[Any]]:
        """Tasks spawned through this runner that have not finished."""
        return [t for t in self._tasks if not t.done()]

    def spawn(self, coro: Any, *, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule ``coro``; it starts running at the next :meth:`drain`."""
        if self.loop.is_closed():
            coro.close()
            raise HarnessError("cannot spawn work on a closed harness")
        task = self.loop.create_task(coro, name=name)
        self._tasks.add(task)
        return task

    def drain(self, batch: Callable[[], contextlib.AbstractContextManager[Any]] | None = None) -> None:
        """Pump the loop until every task is done or the round budget is spent.

        Args:
            batch: Optional context-manager factory wrapped around the pump,
                so state updates made by the tasks collapse into one render.

        Raises:
            Exception: The first exception that escaped a task, re-raised.
        """
        if not self._tasks:
            return
        with batch() if batch is not None else contextlib.nullcontext():
            self.loop.run_until_complete(self._pump())
        self._reap()

    async def _pump(self) -> None:
        for _ in range(self.config.microtask_rounds):
            if not self.pending:
                return
            await asyncio.sleep(0)

    def _reap(self) -> None:
        failed: BaseException | None = None
        for task in [t for t in self._tasks if t.done()]:
            self._tasks.discard(task)
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None and failed is None:
                logger.error("Task %s failed: %s: %s", task.get_name(), type(exc).__name__, exc)
                failed = exc
        if failed is not None:
            raise failed

    def close(self) -> None:
        """Cancel outstanding tasks and close the loop. Idempotent."""
        if self.loop.is_closed():
            return
        outstanding = self.pending
        for task in outstanding:
            task.cancel()
        if outstanding:
            self.loop.run_until_complete(asyncio.gather(*outstanding, return_exceptions=True))
        self._tasks.clear()
        self.loop.close()


def wait_for(
    predicate: Callable[[], T],
    *,
    clock: LogicalClock,
    settle: Callable[[], None],
    advance: Callable[[float], object] | None = None,
    timeout_ms: float = 1000.0,
    interval_ms: float = 50.0,
) -> T:
    """Poll ``predicate`` until it holds or ``timeout_ms`` of logical time elapses.

    A poll fails when the predicate raises ``AssertionError`` (which every
    matcher failure is) or ``LookupError`` (a query that found nothing), or
    returns ``False``. Any other exception aborts the wait immediately.

    Args:
        predicate: Zero-argument callable; its return value is passed through.
        clock: The logical clock measuring the deadline.
        settle: Drains pending async work before each poll.
        advance: Moves logical time forward between failed polls. When
            ``None`` the elapsed time is only accounted, not simulated.
        timeout_ms: Logical deadline.
        interval_ms: Logical time between polls.

    Raises:
        WaitTimeoutError: Carrying the last poll failure.
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be > 0, got {interval_ms}")
    elapsed = 0.0
    polls = 0
    last_error: BaseException | None = None
    while True:
        settle()
        polls += 1
        try:
            result = predicate()
        except (AssertionError, LookupError) as exc:
            last_error = exc
        else:
            if result is not False:
                logger.debug("wait_for satisfied after %d poll(s), %gms", polls, elapsed)
                return result
            last_error = None
        if elapsed >= timeout_ms:
            logger.debug("wait_for gave up after %d poll(s) at %gms", polls, clock.now_ms)
            raise WaitTimeoutError(timeout_ms, last_error) from last_error
        step = min(interval_ms, timeout_ms - elapsed)
        if advance is not None:
            advance(step)
        elapsed += step

