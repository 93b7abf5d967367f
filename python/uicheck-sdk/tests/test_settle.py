"""Tests for uicheck.settle -- microtask draining and wait_for."""

from __future__ import annotations

import asyncio

import pytest

from uicheck.clock import LogicalClock
from uicheck.component import component, use_effect, use_state, use_timers
from uicheck.config import HarnessConfig
from uicheck.errors import HarnessError, WaitTimeoutError
from uicheck.harness import Harness
from uicheck.matchers import expect
from uicheck.mocks import MockFetch
from uicheck.nodes import h
from uicheck.settle import MicrotaskRunner, wait_for


class TestMicrotaskRunner:
    """Draining the private event loop."""

    def test_drain_runs_spawned_work(self) -> None:
        runner = MicrotaskRunner()
        done: list[str] = []

        async def work() -> None:
            await asyncio.sleep(0)
            done.append("a")
            await asyncio.sleep(0)
            done.append("b")

        try:
            runner.spawn(work(), name="work")
            assert done == []
            runner.drain()
            assert done == ["a", "b"]
            assert runner.pending == []
        finally:
            runner.close()

    def test_task_exception_is_reraised(self) -> None:
        runner = MicrotaskRunner()

        async def fail() -> None:
            raise KeyError("lost")

        try:
            runner.spawn(fail())
            with pytest.raises(KeyError, match="lost"):
                runner.drain()
            runner.drain()
        finally:
            runner.close()

    def test_round_budget_leaves_long_work_pending(self) -> None:
        runner = MicrotaskRunner(HarnessConfig(microtask_rounds=3))

        async def forever() -> None:
            while True:
                await asyncio.sleep(0)

        try:
            runner.spawn(forever())
            runner.drain()
            assert len(runner.pending) == 1
        finally:
            runner.close()
        assert runner.closed

    def test_spawn_after_close(self) -> None:
        runner = MicrotaskRunner()
        runner.close()

        async def noop() -> None:
            return None

        with pytest.raises(HarnessError, match="closed"):
            runner.spawn(noop())


class TestWaitFor:
    """Polling with a logical deadline."""

    def test_returns_predicate_value(self) -> None:
        clock = LogicalClock()
        assert wait_for(lambda: 42, clock=clock, settle=lambda: None) == 42
        assert clock.now_ms == 0.0

    def test_advances_clock_between_polls(self) -> None:
        clock = LogicalClock()
        flag: list[bool] = []
        clock.set_timeout(lambda: flag.append(True), 120)

        def ready() -> bool:
            return bool(flag)

        wait_for(ready, clock=clock, settle=lambda: None, advance=clock.advance, interval_ms=50)
        assert clock.now_ms == 150.0

    def test_times_out_with_last_error(self) -> None:
        clock = LogicalClock()
        polls: list[float] = []

        def never() -> None:
            polls.append(clock.now_ms)
            raise AssertionError(f"still failing at {clock.now_ms:g}")

        with pytest.raises(WaitTimeoutError) as info:
            wait_for(never, clock=clock, settle=lambda: None, advance=clock.advance,
                     timeout_ms=200, interval_ms=50)

        assert polls == [0.0, 50.0, 100.0, 150.0, 200.0]
        assert isinstance(info.value.last_error, AssertionError)
        assert "still failing at 200" in str(info.value)
        assert info.value.timeout_ms == 200
        assert isinstance(info.value, TimeoutError)

    def test_false_result_keeps_polling(self) -> None:
        clock = LogicalClock()
        with pytest.raises(WaitTimeoutError) as info:
            wait_for(lambda: False, clock=clock, settle=lambda: None, timeout_ms=100)
        assert info.value.last_error is None

    def test_other_exceptions_abort(self) -> None:
        clock = LogicalClock()
        calls: list[int] = []

        def broken() -> None:
            calls.append(1)
            raise ZeroDivisionError("bug")

        with pytest.raises(ZeroDivisionError):
            wait_for(broken, clock=clock, settle=lambda: None)
        assert calls == [1]

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="interval_ms"):
            wait_for(lambda: True, clock=LogicalClock(), settle=lambda: None, interval_ms=0)


@component
def Profile(*, fetch: MockFetch) -> object:
    user, set_user = use_state(None)

    async def load() -> None:
        response = await fetch("/api/me")
        set_user(await response.json())

    use_effect(load, [])
    return h("p", user["name"] if user else "Loading...", data_testid="profile")


@component
def Delayed() -> object:
    shown, set_shown = use_state(False)
    timers = use_timers()

    async def reveal() -> None:
        await timers.sleep(300)
        set_shown(True)

    use_effect(reveal, [])
    return h("p", "visible" if shown else "hidden", data_testid="delayed")


class TestHarnessSettlement:
    """Settlement through the harness facade."""

    def test_render_drains_mocked_request(self, harness: Harness) -> None:
        fetch = harness.mock_fetch()
        fetch.respond_with_json({"name": "Ada"})

        harness.render(Profile(fetch=fetch))

        expect(harness.screen.get_by_test_id("profile")).to_have_text_content("Ada")
        expect(fetch).to_have_been_called_with("/api/me")

    def test_wait_for_sleeping_effect(self, harness: Harness) -> None:
        harness.render(Delayed())
        node = harness.screen.get_by_test_id("delayed")
        expect(node).to_have_text_content("hidden")

        harness.wait_for(lambda: expect(node).to_have_text_content("visible"))
        assert harness.clock.now_ms == 300.0

    def test_wait_for_without_clock_advance_times_out(self) -> None:
        with Harness(HarnessConfig(advance_clock_in_wait_for=False)) as harness:
            harness.render(Delayed())
            node = harness.screen.get_by_test_id("delayed")
            with pytest.raises(WaitTimeoutError):
                harness.wait_for(lambda: expect(node).to_have_text_content("visible"))
            assert harness.clock.now_ms == 0.0

    def test_rejected_request_surfaces_from_render(self, harness: Harness) -> None:
        fetch = harness.mock_fetch()
        fetch.reject_with(ConnectionError("offline"))
        with pytest.raises(ConnectionError, match="offline"):
            harness.render(Profile(fetch=fetch))

    def test_unmount_cancels_pending_effect(self, harness: Harness) -> None:
        result = harness.render(Delayed())
        result.unmount()
        harness.advance(1000)
        assert harness.runner.pending == []

    def test_act_batches_and_settles(self, harness: Harness) -> None:
        fetch = harness.mock_fetch()
        fetch.respond_with_json({"name": "Grace"})
        with harness.act():
            result = harness.render(Profile(fetch=fetch))
        expect(result.get_by_test_id("profile")).to_have_text_content("Grace")

    def test_fire_and_forget_request_is_recorded(self, harness: Harness) -> None:
        fetch = harness.mock_fetch()
        fetch.respond_with_json({"pong": True})

        @component
        def Pinger() -> object:
            def ping() -> None:
                fetch("/api/ping")

            use_effect(ping, [])
            return h("p", "pinging")

        harness.render(Pinger())

        expect(fetch).to_have_been_called_times(1)
        expect(fetch).to_have_been_called_with("/api/ping")
