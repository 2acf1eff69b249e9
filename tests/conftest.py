"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any kvlimiter import so the global
settings object never reads a developer's .env file or points at Redis.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LIMITER_KEY_PREFIX", "test")
os.environ.setdefault("LIMITER_MAX_REQUESTS", "5")
os.environ.setdefault("LIMITER_PERIOD", "8")

import pytest


class FakeTime:
    """Deterministic clock; ``advance`` doubles as the injected sleep."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()
