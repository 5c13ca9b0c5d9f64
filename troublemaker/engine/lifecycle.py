"""
Lifecycle Controller.

Arranges the process exit decided by the settings resolver: right away
before anything else starts, or from a timer thread once the resolved delay
has passed. Exits are hard (os._exit): no cleanup runs, no thread is joined,
exactly like a crash.
"""

import os
import sys
import threading
import time
from typing import Callable, Optional

import structlog

from troublemaker.durations import format_duration, to_seconds
from troublemaker.engine.effective import EffectiveSettings

Terminate = Callable[[int], None]


def terminate_process(code: int) -> None:
    """Flush stdio and end the whole process with ``code``, from any thread."""
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass
    os._exit(code)


class LifecycleController:
    """
    Schedules the run's exit.

    The exit timer is a daemon thread and cannot be cancelled; the only way
    to stop it is for the process to end first.
    """

    def __init__(
        self,
        decision: EffectiveSettings,
        exit_code: int,
        logger: structlog.stdlib.BoundLogger,
        terminate: Terminate = terminate_process,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.decision = decision
        self.exit_code = exit_code
        self.logger = logger
        self._terminate = terminate
        self._sleep = sleep
        self.timer: Optional[threading.Thread] = None

    def arrange_exit(self) -> None:
        """
        Act on the decision.

        Exits synchronously for the 1ns sentinel, starts the exit timer for
        any other delay, does nothing when this run should not exit.
        """
        if not self.decision.should_exit:
            return

        if self.decision.exit_immediately:
            self.logger.info("exit_at_startup", exit_code=self.exit_code)
            self._terminate(self.exit_code)
            return

        self.logger.info(
            "exit_scheduled",
            exit_after=format_duration(self.decision.exit_after),
            exit_code=self.exit_code,
        )
        self.timer = threading.Thread(
            target=self._exit_after_sleep,
            name="exit-timer",
            daemon=True,
        )
        self.timer.start()

    def _exit_after_sleep(self) -> None:
        self._sleep(to_seconds(self.decision.exit_after))
        self.logger.info("exit_after_sleep", exit_code=self.exit_code)
        self._terminate(self.exit_code)
