"""
CPU Load Phase Scheduler.

Plays a fixed script of (percent, duration) phases. Each phase is cut into
duty cycles: for `percent`% of every cycle the worker spins in a tight loop
that never yields, for the rest it sleeps. Phases end on a wall-clock
deadline, so the last cycle of a phase may be cut short.

Workers are separate processes: threads would share one interpreter lock
and could never load more than one core. Each worker pins itself to its
own CPU where the platform allows it, runs the whole script once and exits.
Nothing is shared between workers.
"""

import multiprocessing
import os
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import structlog

from troublemaker.config import Settings
from troublemaker.durations import MILLISECOND, MINUTE, SECOND, format_duration
from troublemaker.logging_setup import configure_logging, get_logger

DEFAULT_CYCLE = 100 * MILLISECOND


@dataclass(frozen=True)
class LoadPhase:
    """One step of the load script. Percent 0 is a pure idle phase."""
    percent: int
    duration: int  # nanoseconds


@dataclass(frozen=True)
class PhaseReport:
    """What a phase actually did."""
    percent: int
    duration: int
    elapsed: int
    cycles: int
    busy_iterations: int


# Ramp up, hold at full load, ramp down, then settle idle so autoscalers
# see both the scale-out and the scale-in edge.
LOAD_SCRIPT: Tuple[LoadPhase, ...] = (
    LoadPhase(percent=0, duration=30 * SECOND),
    LoadPhase(percent=25, duration=MINUTE),
    LoadPhase(percent=50, duration=MINUTE),
    LoadPhase(percent=75, duration=MINUTE),
    LoadPhase(percent=100, duration=2 * MINUTE),
    LoadPhase(percent=50, duration=MINUTE),
    LoadPhase(percent=0, duration=2 * MINUTE),
)


def clamp_percent(percent: int) -> int:
    return min(100, max(0, percent))


def available_parallelism() -> int:
    """CPUs this process may run on (affinity set), else the logical CPU count."""
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        return os.cpu_count() or 1


def clamp_workers(requested: int, parallelism: Optional[int] = None) -> int:
    """Worker count within [1, available parallelism]."""
    limit = parallelism if parallelism is not None else available_parallelism()
    return min(max(1, limit), max(1, requested))


class LoadPhaseScheduler:
    """
    Runs a load script once, phase by phase, to completion.

    ``clock`` returns nanoseconds and ``sleep`` takes seconds; both exist so
    tests can observe the duty cycling. ``keep_running`` is polled at every
    cycle boundary, never inside a busy slice.
    """

    def __init__(
        self,
        phases: Sequence[LoadPhase] = LOAD_SCRIPT,
        cycle: int = DEFAULT_CYCLE,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        clock: Callable[[], int] = time.monotonic_ns,
        sleep: Callable[[float], None] = time.sleep,
        keep_running: Callable[[], bool] = lambda: True,
    ):
        if cycle <= 0:
            raise ValueError("cycle must be positive")
        self.phases = tuple(phases)
        self.cycle = cycle
        self.logger = logger or structlog.get_logger(__name__)
        self._clock = clock
        self._sleep = sleep
        self._keep_running = keep_running

    def run(self) -> List[PhaseReport]:
        """Play every phase in order. Stops early only if keep_running turns false."""
        reports: List[PhaseReport] = []
        for index, phase in enumerate(self.phases):
            if not self._keep_running():
                self.logger.info("load_script_abandoned", phase=index)
                break
            log = self.logger.bind(phase=index)
            log.info(
                "load_phase_started",
                percent=clamp_percent(phase.percent),
                duration=format_duration(phase.duration),
            )
            report = self.run_phase(phase)
            log.info(
                "load_phase_finished",
                percent=report.percent,
                elapsed=format_duration(report.elapsed),
                cycles=report.cycles,
                busy_iterations=report.busy_iterations,
            )
            reports.append(report)
        return reports

    def run_phase(self, phase: LoadPhase) -> PhaseReport:
        """Duty-cycle one phase until its wall-clock deadline."""
        clock = self._clock
        percent = clamp_percent(phase.percent)
        busy = self.cycle * percent // 100

        start = clock()
        deadline = start + max(0, phase.duration)
        cycles = 0
        iterations = 0

        while True:
            now = clock()
            if now >= deadline or not self._keep_running():
                break
            cycles += 1
            cycle_end = min(now + self.cycle, deadline)

            if busy:
                busy_until = min(now + busy, cycle_end)
                while clock() < busy_until:
                    iterations += 1

            idle = cycle_end - clock()
            if idle > 0:
                self._sleep(idle / SECOND)

        return PhaseReport(
            percent=percent,
            duration=phase.duration,
            elapsed=clock() - start,
            cycles=cycles,
            busy_iterations=iterations,
        )


# ============================================================================
# WORKER PROCESSES
# ============================================================================


def _pin_to_cpu(cpu: Optional[int]) -> bool:
    if cpu is None or not hasattr(os, "sched_setaffinity"):
        return False
    try:
        os.sched_setaffinity(0, {cpu})
    except OSError:
        return False
    return True


def run_load_worker(
    worker: int,
    parent_pid: int,
    instance_id: str,
    cycle: int = DEFAULT_CYCLE,
    cpu: Optional[int] = None,
    log_level: str = "INFO",
    log_format: str = "console",
) -> None:
    """Entry point of one load worker process."""
    configure_logging(log_level, log_format)
    logger = get_logger(instance_id).bind(worker=worker, pid=os.getpid())
    pinned = _pin_to_cpu(cpu)
    logger.info("load_worker_started", cpu=cpu, pinned=pinned)

    scheduler = LoadPhaseScheduler(
        cycle=cycle,
        logger=logger,
        keep_running=lambda: os.getppid() == parent_pid,
    )
    reports = scheduler.run()
    logger.info("load_worker_finished", phases=len(reports))


def start_load_workers(
    settings: Settings,
    logger: structlog.stdlib.BoundLogger,
    instance_id: str,
) -> List[multiprocessing.Process]:
    """
    Start the load workers, fire and forget.

    Workers are daemon processes and also quit at the next cycle boundary
    once this process is gone, so a hard exit never leaves them spinning.
    """
    count = clamp_workers(settings.cpuload_workers)
    try:
        cpus: List[Optional[int]] = sorted(os.sched_getaffinity(0))
    except AttributeError:
        cpus = [None]

    ctx = multiprocessing.get_context("spawn")
    parent_pid = os.getpid()
    workers = []
    for worker in range(count):
        process = ctx.Process(
            target=run_load_worker,
            name=f"cpuload-{worker}",
            kwargs={
                "worker": worker,
                "parent_pid": parent_pid,
                "instance_id": instance_id,
                "cycle": settings.cpuload_cycle,
                "cpu": cpus[worker % len(cpus)],
                "log_level": settings.log_level,
                "log_format": settings.log_format,
            },
            daemon=True,
        )
        process.start()
        workers.append(process)

    logger.info(
        "load_workers_started",
        requested=settings.cpuload_workers,
        workers=count,
        cycle=format_duration(settings.cpuload_cycle),
    )
    return workers
