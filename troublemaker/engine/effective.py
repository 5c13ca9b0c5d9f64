"""
Effective Settings Resolver.

Turns the configured delays, jitter bounds and exit probability into the
concrete decisions for this run. Resolved once per process.

Draw order is fixed: exit-after jitter, web-delay jitter, exit probability.
Reordering would change what a fixed seed pair resolves to.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

from troublemaker.config import Settings
from troublemaker.durations import NANOSECOND, format_duration
from troublemaker.engine.jitter import JitterSource

# Bases below this many nanoseconds are never jittered.
MIN_JITTER_BASE = 2

# exit.after value meaning "exit before anything else starts"
EXIT_IMMEDIATELY = NANOSECOND


@dataclass(frozen=True)
class EffectiveSettings:
    """Concrete decisions for one run. Durations in nanoseconds."""
    exit_after: int
    web_delay: int
    should_exit: bool

    @property
    def exit_immediately(self) -> bool:
        return self.should_exit and self.exit_after == EXIT_IMMEDIATELY

    def log_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["exit_after"] = format_duration(self.exit_after)
        data["web_delay"] = format_duration(self.web_delay)
        return data


def effective_duration(base: int, jitter: int, rng: JitterSource) -> int:
    """
    Apply +/- jitter to ``base``.

    Unchanged when there is no jitter or the base is below
    MIN_JITTER_BASE; otherwise uniform in [base - jitter, base + jitter),
    clamped at zero.
    """
    if jitter == 0 or base < MIN_JITTER_BASE:
        return base
    value = base + rng.next_int64_in_range(2 * jitter) - jitter
    return max(0, value)


def should_exit(exit_after: int, exit_percent: int, rng: JitterSource) -> bool:
    """Exit only with a positive exit.after, then with exit_percent% chance."""
    if exit_after <= 0:
        return False
    if exit_percent == 100:
        return True
    return exit_percent / 100 >= rng.next_float01()


def resolve(settings: Settings, rng: JitterSource) -> EffectiveSettings:
    """Resolve the run's decisions. Advances ``rng``; no other side effects."""
    exit_after = effective_duration(settings.exit_after, settings.exit_after_jitter, rng)
    web_delay = effective_duration(settings.web_delay, settings.web_delay_jitter, rng)
    return EffectiveSettings(
        exit_after=exit_after,
        web_delay=web_delay,
        should_exit=should_exit(settings.exit_after, settings.exit_percent, rng),
    )
