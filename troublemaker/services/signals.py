"""
Signal ignorer.

With signals.ignore set, the usual shutdown signals are caught and only
logged, so orchestrators have to escalate to SIGKILL. Ignoring a signal
never causes an exit by itself.
"""

import signal
import time
from typing import Callable, List, Optional

import structlog

from troublemaker.durations import SECOND, format_duration

IGNORED_SIGNAL_NAMES = ("SIGABRT", "SIGHUP", "SIGINT", "SIGPIPE", "SIGTERM")


def ignorable_signals() -> List[signal.Signals]:
    """The shutdown signals that exist on this platform."""
    return [
        getattr(signal.Signals, name)
        for name in IGNORED_SIGNAL_NAMES
        if hasattr(signal.Signals, name)
    ]


class SignalIgnorer:
    """Installs log-only handlers. Must be installed from the main thread."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        started: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger
        self.started = started if started is not None else clock()
        self._clock = clock
        self.received = 0

    def handle(self, signum, frame) -> None:
        sig = signal.Signals(signum)
        self.received += 1
        after = int((self._clock() - self.started) * SECOND)
        self.logger.info("ignore_signal", signal=sig.name, after=format_duration(after))

    def install(self) -> List[signal.Signals]:
        installed = ignorable_signals()
        for sig in installed:
            signal.signal(sig, self.handle)
        self.logger.info("ignoring_signals", signals=[sig.name for sig in installed])
        return installed


def restore_default_interrupt() -> None:
    """Let SIGINT kill the process outright instead of raising KeyboardInterrupt."""
    signal.signal(signal.SIGINT, signal.SIG_DFL)
