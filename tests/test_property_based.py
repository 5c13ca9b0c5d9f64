"""
Property-Based Tests.

Uses Hypothesis to check invariants that must hold for ALL inputs:
- Jitter: resolved durations stay within [max(0, b - j), b + j]
- Jitter: tiny bases and zero bounds are returned unchanged
- Resolution: fixed seeds give identical decisions
- Exit decision: exit.after = 0 never exits, exit.percent = 100 always does
- Workers: count always clamped into [1, parallelism]
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from troublemaker.config import Settings
from troublemaker.engine.effective import effective_duration, resolve, should_exit
from troublemaker.engine.jitter import PCGJitterGenerator
from troublemaker.engine.load import LoadPhase, LoadPhaseScheduler, clamp_workers

seeds = st.integers(min_value=0, max_value=2**64 - 1)
durations = st.integers(min_value=0, max_value=10**15)


class _StepClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        self.now += 1_000
        return self.now

    def sleep(self, seconds):
        self.now += int(seconds * 1_000_000_000)


class TestJitterProperties:
    @given(seed1=seeds, seed2=seeds, base=st.integers(min_value=2, max_value=10**15),
           jitter=st.integers(min_value=1, max_value=10**15))
    @settings(max_examples=200)
    def test_jittered_duration_bounded(self, seed1, seed2, base, jitter):
        """Resolved duration lies in [max(0, b - j), b + j]."""
        result = effective_duration(base, jitter, PCGJitterGenerator(seed1, seed2))
        assert max(0, base - jitter) <= result <= base + jitter

    @given(seed1=seeds, seed2=seeds, base=st.integers(min_value=-10, max_value=1), jitter=durations)
    @settings(max_examples=100)
    def test_tiny_base_unchanged(self, seed1, seed2, base, jitter):
        assert effective_duration(base, jitter, PCGJitterGenerator(seed1, seed2)) == base

    @given(seed1=seeds, seed2=seeds, base=durations)
    @settings(max_examples=100)
    def test_zero_jitter_unchanged(self, seed1, seed2, base):
        assert effective_duration(base, 0, PCGJitterGenerator(seed1, seed2)) == base

    @given(seed1=seeds, seed2=seeds, bound=st.integers(min_value=1, max_value=2**63 - 1))
    @settings(max_examples=200)
    def test_int_draw_in_range(self, seed1, seed2, bound):
        assert 0 <= PCGJitterGenerator(seed1, seed2).next_int64_in_range(bound) < bound


class TestDecisionProperties:
    @given(seed1=seeds, seed2=seeds, exit_after=durations, exit_jitter=durations,
           web_delay=durations, web_jitter=durations,
           percent=st.integers(min_value=0, max_value=100))
    @settings(max_examples=50, deadline=None)
    def test_fixed_seeds_deterministic(
        self, seed1, seed2, exit_after, exit_jitter, web_delay, web_jitter, percent,
    ):
        config = Settings(
            exit_after=exit_after,
            exit_after_jitter=exit_jitter,
            web_delay=web_delay,
            web_delay_jitter=web_jitter,
            exit_percent=percent,
            rand_seed1=seed1,
            rand_seed2=seed2,
        )
        first = resolve(config, PCGJitterGenerator(seed1, seed2))
        second = resolve(config, PCGJitterGenerator(seed1, seed2))
        assert first == second
        assert first.exit_after >= 0
        assert first.web_delay >= 0

    @given(seed1=seeds, seed2=seeds, percent=st.integers(min_value=0, max_value=100))
    @settings(max_examples=100)
    def test_zero_exit_after_never_exits(self, seed1, seed2, percent):
        assert should_exit(0, percent, PCGJitterGenerator(seed1, seed2)) is False

    @given(seed1=seeds, seed2=seeds, exit_after=st.integers(min_value=1, max_value=10**15))
    @settings(max_examples=100)
    def test_full_percent_always_exits(self, seed1, seed2, exit_after):
        assert should_exit(exit_after, 100, PCGJitterGenerator(seed1, seed2)) is True


class TestLoadProperties:
    @given(requested=st.integers(min_value=-1000, max_value=1000),
           parallelism=st.integers(min_value=1, max_value=512))
    def test_workers_clamped(self, requested, parallelism):
        assert 1 <= clamp_workers(requested, parallelism) <= parallelism

    @given(percent=st.integers(min_value=-50, max_value=150),
           duration=st.integers(min_value=0, max_value=50_000_000))
    @settings(max_examples=50, deadline=None)
    def test_phase_elapsed_within_one_cycle(self, percent, duration):
        clock = _StepClock()
        cycle = 10_000_000
        scheduler = LoadPhaseScheduler(phases=[], cycle=cycle, clock=clock, sleep=clock.sleep)
        report = scheduler.run_phase(LoadPhase(percent=percent, duration=duration))
        assert duration <= report.elapsed <= duration + cycle
        if percent <= 0:
            assert report.busy_iterations == 0
