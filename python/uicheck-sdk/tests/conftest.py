"""Shared fixtures for the uicheck test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from uicheck.harness import Harness


@pytest.fixture
def harness() -> Iterator[Harness]:
    """A fresh harness per test, cleaned up afterwards."""
    h = Harness()
    try:
        yield h
    finally:
        h.cleanup()
