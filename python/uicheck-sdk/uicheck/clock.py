"""Logical clock: virtual timers driven by explicit time advances.

Nothing here sleeps. Time moves only when a test calls :meth:`advance`
(or one of the ``run_*`` helpers), and every due callback fires
synchronously in the caller, in due-time order.

Usage::

    clock = LogicalClock()
    handle = clock.set_interval(lambda: print("tick"), 1000)
    clock.advance(3000)   # prints "tick" three times
    clock.cancel(handle)
"""

from __future__ import annotations

import asyncio
import heapq
import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# A repeating timer with a zero period would never let advance() return.
MIN_INTERVAL_MS = 1.0


# ---------------------------------------------------------------------------
# TimerHandle / TimerRegistration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimerHandle:
    """Opaque reference to a timer registration."""
    id: int


@dataclass
class TimerRegistration:
    """A pending timer owned by the clock.

    Attributes:
        handle: The handle returned to whoever registered the timer.
        delay_ms: Delay (and period, for repeating timers) in milliseconds.
        repeat: Whether the timer reschedules itself after firing.
        callback: Zero-argument callable invoked on each firing.
        due_ms: Logical time of the next firing.
        owner: Optional label of the component instance that owns the timer.
        fire_count: Number of times the callback has fired.
        start_ms: Logical time of registration; interval due times are
            computed from it so they never accumulate rounding error.
        seq: Registration order, used to break ties between equal due times.
    """
    handle: TimerHandle
    delay_ms: float
    repeat: bool
    callback: Callable[[], object]
    due_ms: float
    owner: str | None = None
    fire_count: int = 0
    cancelled: bool = False
    start_ms: float = 0.0
    seq: int = 0


# ---------------------------------------------------------------------------
# LogicalClock
# ---------------------------------------------------------------------------

class LogicalClock:
    """Deterministic virtual timer service.

    Due timers fire in ascending due time. Ties break in registration
    order; a repeating timer keeps its registration rank across reschedules.
    """

    def __init__(self, *, start_ms: float = 0.0, max_timer_firings: int = 100_000) -> None:
        self._now = float(start_ms)
        self._max_firings = max_timer_firings
        self._queue: list[tuple[float, int, TimerRegistration]] = []
        self._registrations: dict[int, TimerRegistration] = {}
        self._next_id = 1
        self._next_seq = 0

    # -- Inspection ----------------------------------------------------------

    @property
    def now_ms(self) -> float:
        """Current logical time in milliseconds."""
        return self._now

    def now(self) -> float:
        """Current logical time in milliseconds."""
        return self._now

    @property
    def pending_count(self) -> int:
        """Number of registrations that can still fire."""
        return len(self._registrations)

    def next_due_ms(self) -> float | None:
        """Due time of the earliest pending timer, or ``None``."""
        self._discard_cancelled_head()
        return self._queue[0][0] if self._queue else None

    def is_pending(self, handle: TimerHandle) -> bool:
        """Whether ``handle`` refers to a timer that can still fire."""
        return handle.id in self._registrations

    # -- Registration --------------------------------------------------------

    def register(
        self,
        delay_ms: float,
        repeat: bool,
        callback: Callable[[], object],
        *,
        owner: str | None = None,
    ) -> TimerHandle:
        """Register a timer and return its handle.

        Negative delays are clamped to 0. A repeating timer's period is
        clamped to :data:`MIN_INTERVAL_MS`.
        """
        delay = max(0.0, float(delay_ms))
        if repeat:
            delay = max(delay, MIN_INTERVAL_MS)
        handle = TimerHandle(self._next_id)
        self._next_id += 1
        reg = TimerRegistration(
            handle=handle,
            delay_ms=delay,
            repeat=repeat,
            callback=callback,
            due_ms=self._now + delay,
            owner=owner,
            start_ms=self._now,
            seq=self._next_seq,
        )
        self._next_seq += 1
        self._registrations[handle.id] = reg
        self._push(reg)
        logger.debug(
            "Registered timer %d (delay=%gms repeat=%s owner=%s) due at %gms",
            handle.id, delay, repeat, owner, reg.due_ms,
        )
        return handle

    def set_timeout(self, callback: Callable[[], object], delay_ms: float = 0.0) -> TimerHandle:
        """Register a one-shot timer."""
        return self.register(delay_ms, False, callback)

    def set_interval(self, callback: Callable[[], object], delay_ms: float) -> TimerHandle:
        """Register a repeating timer."""
        return self.register(delay_ms, True, callback)

    def cancel(self, handle: TimerHandle | None) -> None:
        """Cancel a registration. Unknown or already-fired handles are a no-op."""
        if handle is None:
            return
        reg = self._registrations.pop(handle.id, None)
        if reg is None:
            return
        reg.cancelled = True
        logger.debug("Cancelled timer %d after %d firing(s)", handle.id, reg.fire_count)

    def clear(self) -> None:
        """Cancel every pending registration."""
        for reg in self._registrations.values():
            reg.cancelled = True
        self._registrations.clear()
        self._queue.clear()

    # -- Time control --------------------------------------------------------

    def advance(self, delta_ms: float) -> int:
        """Move time forward by ``delta_ms``, firing every timer that falls due.

        Returns:
            The number of callbacks fired.

        Raises:
            ValueError: If ``delta_ms`` is negative.
        """
        if delta_ms < 0:
            raise ValueError(f"cannot advance the clock backwards ({delta_ms}ms)")
        target = self._now + delta_ms
        fired = 0
        while True:
            self._discard_cancelled_head()
            if not self._queue or self._queue[0][0] > target:
                break
            self._fire_next()
            fired += 1
            if fired > self._max_firings:
                raise RuntimeError(
                    f"Aborting after running {self._max_firings} timers within one "
                    "advance, assuming an infinite loop"
                )
        self._now = target
        return fired

    def run_all(self) -> int:
        """Fire timers, jumping time forward, until none remain.

        Raises:
            RuntimeError: If more than ``max_timer_firings`` callbacks fire,
                which almost always means a repeating timer was never cleared.
        """
        fired = 0
        while True:
            self._discard_cancelled_head()
            if not self._queue:
                return fired
            if fired >= self._max_firings:
                raise RuntimeError(
                    f"Aborting after running {self._max_firings} timers, "
                    "assuming an infinite loop"
                )
            self._fire_next()
            fired += 1

    def run_only_pending(self) -> int:
        """Fire only the timers pending right now, each at most once.

        Timers registered by the fired callbacks, and the reschedules of
        repeating timers, stay pending.
        """
        snapshot = sorted(
            (reg.due_ms, seq, reg)
            for due, seq, reg in self._queue
            if not reg.cancelled and reg.due_ms == due
        )
        fired = 0
        for _due, _seq, reg in snapshot:
            if reg.handle.id not in self._registrations:
                continue
            self._now = max(self._now, reg.due_ms)
            self._invoke(reg)
            fired += 1
        return fired

    async def sleep(self, delay_ms: float) -> None:
        """Suspend the calling coroutine until ``delay_ms`` of logical time passes."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not future.done():
                future.set_result(None)

        handle = self.register(delay_ms, False, _wake)
        try:
            await future
        finally:
            self.cancel(handle)

    # -- Internals -----------------------------------------------------------

    def _push(self, reg: TimerRegistration) -> None:
        heapq.heappush(self._queue, (reg.due_ms, reg.seq, reg))

    def _discard_cancelled_head(self) -> None:
        while self._queue:
            due, _seq, reg = self._queue[0]
            stale = reg.due_ms != due or reg.handle.id not in self._registrations
            if reg.cancelled or stale:
                heapq.heappop(self._queue)
                continue
            break

    def _fire_next(self) -> None:
        due, _seq, reg = heapq.heappop(self._queue)
        self._now = max(self._now, due)
        self._invoke(reg)

    def _invoke(self, reg: TimerRegistration) -> None:
        # Reschedule (or retire) before the callback runs, so a callback that
        # cancels its own handle, or raises, leaves the queue consistent.
        reg.fire_count += 1
        if reg.repeat:
            reg.due_ms = reg.start_ms + (reg.fire_count + 1) * reg.delay_ms
            self._push(reg)
        else:
            self._registrations.pop(reg.handle.id, None)
        logger.debug(
            "Firing timer %d at %gms (firing #%d)", reg.handle.id, self._now, reg.fire_count,
        )
        reg.callback()
