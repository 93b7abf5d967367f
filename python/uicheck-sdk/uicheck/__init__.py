"""uicheck -- deterministic component-behavior harness.

Provides a virtual-DOM render engine, a logical clock, synthetic event
dispatch, async settlement, DOM queries, mocks and matchers, plus a small
catalog of components that each exhibit one stateful-UI bug.
"""

__version__ = "0.1.0"

# Re-export key types for convenience.
from uicheck.clock import LogicalClock, TimerHandle
from uicheck.component import (
    ComponentDef,
    component,
    use_effect,
    use_ref,
    use_state,
    use_timers,
)
from uicheck.config import HarnessConfig
from uicheck.errors import (
    AssertionFailure,
    HarnessError,
    QueryError,
    RenderError,
    UnknownHandleError,
    UnmockedRequestError,
    WaitTimeoutError,
)
from uicheck.events import EventDispatcher, FireEvent, SyntheticEvent
from uicheck.harness import Harness, RenderResult
from uicheck.matchers import MatchResult, expect
from uicheck.mocks import CallRecord, MockFetch, MockFn, MockResponse
from uicheck.nodes import Element, RenderedNode, h
from uicheck.queries import Queries
from uicheck.render import Commit, MountHandle, PatchOp, Renderer
from uicheck.settle import MicrotaskRunner, wait_for

__all__ = [
    "AssertionFailure",
    "CallRecord",
    "Commit",
    "ComponentDef",
    "Element",
    "EventDispatcher",
    "FireEvent",
    "Harness",
    "HarnessConfig",
    "HarnessError",
    "LogicalClock",
    "MatchResult",
    "MicrotaskRunner",
    "MockFetch",
    "MockFn",
    "MockResponse",
    "MountHandle",
    "PatchOp",
    "Queries",
    "QueryError",
    "RenderError",
    "RenderResult",
    "RenderedNode",
    "Renderer",
    "SyntheticEvent",
    "TimerHandle",
    "UnknownHandleError",
    "UnmockedRequestError",
    "WaitTimeoutError",
    "component",
    "expect",
    "h",
    "use_effect",
    "use_ref",
    "use_state",
    "use_timers",
    "wait_for",
]
