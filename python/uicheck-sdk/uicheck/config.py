"""Harness configuration.

A :class:`HarnessConfig` is passed explicitly to every
:class:`~uicheck.harness.Harness`; there is no global configuration.
Configs round-trip through plain dicts so they can be stored as JSON next
to a test suite.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Self

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HarnessConfig:
    """Tunables for one harness instance.

    Attributes:
        wait_timeout_ms: Default logical deadline for ``wait_for``.
        wait_interval_ms: Default logical time between ``wait_for`` polls.
        advance_clock_in_wait_for: When True, each failed ``wait_for`` poll
            advances the logical clock by the poll interval (firing due
            timers). When False the clock is left alone and only pending
            coroutines are drained between polls.
        max_render_passes: Upper bound on render passes in one flush before
            the renderer gives up with ``RenderError``.
        max_timer_firings: Upper bound on timer firings in one
            ``run_all`` call.
        microtask_rounds: Event-loop iterations pumped per settlement drain.
        test_id_attribute: Attribute consulted by ``*_by_test_id`` queries.
    """
    wait_timeout_ms: float = 1000.0
    wait_interval_ms: float = 50.0
    advance_clock_in_wait_for: bool = True
    max_render_passes: int = 50
    max_timer_firings: int = 100_000
    microtask_rounds: int = 100
    test_id_attribute: str = "data-testid"

    def __post_init__(self) -> None:
        if self.wait_timeout_ms < 0:
            raise ValueError(f"wait_timeout_ms must be >= 0, got {self.wait_timeout_ms}")
        if self.wait_interval_ms <= 0:
            raise ValueError(f"wait_interval_ms must be > 0, got {self.wait_interval_ms}")
        for name in ("max_render_passes", "max_timer_firings", "microtask_rounds"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")
        if not self.test_id_attribute:
            raise ValueError("test_id_attribute must not be empty")

    def with_overrides(self, **changes: object) -> HarnessConfig:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dict for JSON storage."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> Self:
        """Build a config from a dict, rejecting unknown keys.

        Raises:
            ValueError: If ``data`` contains keys that are not config fields,
                or values that fail validation.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown harness config field(s): {', '.join(unknown)}")
        return cls(**data)  # type: ignore[arg-type]

    @classmethod
    def load(cls, path: str | Path) -> Self:
        """Load a config from a JSON file."""
        p = Path(path)
        if not p.exists():
            msg = f"Harness config file not found: {p}"
            raise FileNotFoundError(msg)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid harness config JSON in {p}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"harness config in {p} must be a JSON object")
        logger.debug("Loaded harness config from %s", p)
        return cls.from_dict(data)

    def save(self, path: str | Path) -> None:
        """Write this config to a JSON file."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
