"""Per-test harness wiring a fresh clock, renderer, event loop and document.

Usage::

    with Harness() as harness:
        result = harness.render(Counter())
        harness.advance(5000)
        expect(result.get_by_test_id("counter")).to_have_text_content("Count: 5")

Nothing is shared between two harnesses, so tests stay isolated even when
they run in the same process.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from uicheck.clock import LogicalClock
from uicheck.config import HarnessConfig
from uicheck.events import EventDispatcher, FireEvent
from uicheck.mocks import MockFetch, MockFn
from uicheck.nodes import Element, RenderedNode
from uicheck.queries import Queries
from uicheck.render import MountHandle, Renderer
from uicheck.settle import MicrotaskRunner, wait_for

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RenderResult(Queries):
    """Queries scoped to one mounted container, plus its mount handle."""

    def __init__(self, handle: MountHandle, container: RenderedNode, test_id_attribute: str) -> None:
        super().__init__(container, test_id_attribute=test_id_attribute)
        self.handle = handle
        self.container = container

    def rerender(self, element: Element) -> None:
        """Re-render the root with a new element, as a parent would."""
        self.handle.rerender(element)

    def update(self, **props: object) -> None:
        """Re-render the root component with replacement external inputs."""
        self.handle.update(**props)

    def unmount(self) -> None:
        self.handle.unmount()


class Harness:
    """A deterministic stand-in for a browser page.

    Attributes:
        config: The harness configuration.
        clock: Logical clock driving every timer.
        renderer: Render engine for every root mounted through :meth:`render`.
        runner: Event loop that async effects and mocked requests run on.
        document: Document root; containers are appended to it.
        screen: Queries over the whole document.
        fire_event: User-interaction helpers.
    """

    def __init__(self, config: HarnessConfig | None = None) -> None:
        self.config = config or HarnessConfig()
        self.clock = LogicalClock(max_timer_firings=self.config.max_timer_firings)
        self.runner = MicrotaskRunner(self.config)
        self.renderer = Renderer(self.clock, self.config, spawn=self.runner.spawn)
        self.dispatcher = EventDispatcher(self.renderer)
        self.fire_event = FireEvent(self.dispatcher)
        self.document = RenderedNode("body", is_document=True)
        self.screen = Queries(self.document, test_id_attribute=self.config.test_id_attribute)
        self._results: list[RenderResult] = []
        self._closed = False

    def __enter__(self) -> Harness:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    # -- Rendering -----------------------------------------------------------

    def render(self, element: Element) -> RenderResult:
        """Mount ``element`` into a fresh container under the document.

        Effects run and the initial microtask queue is drained before this
        returns.

        Raises:
            RenderError: If the initial render or one of its effects fails.
        """
        self._require_open()
        container = RenderedNode("div")
        self.document.append_child(container)
        try:
            handle = self.renderer.mount(element, container)
        except Exception:
            self.document.remove_child(container)
            raise
        result = RenderResult(handle, container, self.config.test_id_attribute)
        self._results.append(result)
        self.settle()
        return result

    # -- Time and settlement -------------------------------------------------

    def advance(self, ms: float) -> int:
        """Advance logical time by ``ms``, then drain pending async work.

        Returns:
            The number of timer callbacks fired.
        """
        fired = self.clock.advance(ms)
        self.settle()
        return fired

    def run_all_timers(self) -> int:
        fired = self.clock.run_all()
        self.settle()
        return fired

    def run_only_pending_timers(self) -> int:
        fired = self.clock.run_only_pending()
        self.settle()
        return fired

    def settle(self) -> None:
        """Drain pending coroutines; their state updates render as one batch."""
        self.runner.drain(self.renderer.batch)

    @contextlib.contextmanager
    def act(self) -> Iterator[None]:
        """Group arbitrary updates into one render, then settle."""
        with self.renderer.batch():
            yield
        self.settle()

    def wait_for(
        self,
        predicate: Callable[[], T],
        *,
        timeout_ms: float | None = None,
        interval_ms: float | None = None,
    ) -> T:
        """Poll ``predicate`` until it passes; see :func:`uicheck.settle.wait_for`.

        Raises:
            WaitTimeoutError: If the predicate still fails after ``timeout_ms``
                of logical time.
        """
        advance = self.clock.advance if self.config.advance_clock_in_wait_for else None
        return wait_for(
            predicate,
            clock=self.clock,
            settle=self.settle,
            advance=advance,
            timeout_ms=self.config.wait_timeout_ms if timeout_ms is None else timeout_ms,
            interval_ms=self.config.wait_interval_ms if interval_ms is None else interval_ms,
        )

    # -- Mocks ---------------------------------------------------------------

    def mock_fn(self, name: str = "mock", **kwargs: Any) -> MockFn:
        """A :class:`MockFn` stamped with this harness's clock."""
        return MockFn(name, clock=self.clock, **kwargs)

    def mock_fetch(self, name: str = "fetch") -> MockFetch:
        return MockFetch(clock=self.clock, name=name)

    # -- Teardown ------------------------------------------------------------

    def debug(self) -> str:
        return self.document.pretty()

    def cleanup(self) -> None:
        """Unmount every root, drop pending timers and close the loop. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            for result in self._results:
                if result.handle.mounted:
                    result.handle.unmount()
                if result.container.parent is self.document:
                    self.document.remove_child(result.container)
        finally:
            self._results.clear()
            self.clock.clear()
            self.runner.close()
        logger.debug("Harness cleaned up")

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError("harness has been cleaned up")
