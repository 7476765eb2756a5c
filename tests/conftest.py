"""Shared fixtures for the tracker tests."""

import itertools

import pytest


@pytest.fixture
def clock():
    """A deterministic clock that advances one second per call."""
    counter = itertools.count(1)

    def tick() -> str:
        n = next(counter)
        return f"2026-01-01T{n // 3600:02d}:{n // 60 % 60:02d}:{n % 60:02d}Z"

    return tick
