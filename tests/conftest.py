"""
Test fixtures for troublemaker tests.

Provides:
- Clean environment (no stray flag env vars leak into Settings)
- structlog / stdlib logging reset between tests
- A recording stand-in for process termination
- A scripted jitter source and a fake monotonic clock
"""

import logging
from typing import List

import pytest
import structlog

from troublemaker.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove env vars that Settings would pick up."""
    for name in list(Settings.model_fields):
        monkeypatch.delenv(name.upper(), raising=False)
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() calls made by the code under test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class ExitRecorder:
    """Stands in for terminate_process; records codes instead of exiting."""

    def __init__(self):
        self.codes: List[int] = []

    def __call__(self, code: int) -> None:
        self.codes.append(code)


class ExitRaiser(ExitRecorder):
    """Records the code, then stops the caller like a real exit would."""

    def __call__(self, code: int) -> None:
        super().__call__(code)
        raise SystemExit(code)


class ScriptedJitter:
    """JitterSource returning queued values and recording every draw."""

    def __init__(self, ints=(), floats=()):
        self.ints = list(ints)
        self.floats = list(floats)
        self.calls = []

    def next_int64_in_range(self, bound: int) -> int:
        self.calls.append(("int", bound))
        return self.ints.pop(0)

    def next_float01(self) -> float:
        self.calls.append(("float",))
        return self.floats.pop(0)


class FakeClock:
    """Nanosecond clock advancing ``step`` per reading; sleep() jumps it forward."""

    def __init__(self, step: int = 1_000):
        self.now = 0
        self.step = step
        self.sleeps: List[float] = []

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += int(seconds * 1_000_000_000)


@pytest.fixture
def exit_recorder() -> ExitRecorder:
    return ExitRecorder()


@pytest.fixture
def exit_raiser() -> ExitRaiser:
    return ExitRaiser()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def logger():
    return structlog.get_logger("troublemaker.test").bind(instance="test")


@pytest.fixture
def scripted_jitter():
    """Factory: scripted_jitter(ints=[...], floats=[...])."""
    return ScriptedJitter
