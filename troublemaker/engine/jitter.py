"""
Deterministic Jitter Generator.

A 128-bit PCG generator with DXSM output ("double xorshift multiply"),
seeded directly from two 64-bit words. Same seeds, same stream: a run
started with fixed rand.seed1/rand.seed2 resolves to the same exit and
delay decisions every time, and matches the Go math/rand/v2 PCG source.

Each resolution gets its own generator. Nothing here is shared between
threads or load worker processes.
"""

import secrets
from typing import Callable, Protocol

_MASK64 = (1 << 64) - 1
_MASK128 = (1 << 128) - 1

# LCG multiplier and increment, 128-bit
_MUL = (2549297995355413924 << 64) | 4865540595714422341
_INC = (6364136223846793005 << 64) | 1442695040888963407

# DXSM output multiplier
_CHEAP_MUL = 0xDA942042E4DD58B5

SeedProvider = Callable[[], int]


def random_seed() -> int:
    """Default seed provider: a fresh random 64-bit value per call."""
    return secrets.randbits(64)


class JitterSource(Protocol):
    """What the settings resolver needs from a random source."""

    def next_int64_in_range(self, bound: int) -> int:
        ...

    def next_float01(self) -> float:
        ...


class PCGJitterGenerator:
    """
    PCG-DXSM pseudo-random source.

    Usage:
        rng = PCGJitterGenerator(seed1, seed2)
        offset = rng.next_int64_in_range(2 * jitter) - jitter
    """

    def __init__(self, seed1: int, seed2: int):
        if not (0 <= seed1 <= _MASK64 and 0 <= seed2 <= _MASK64):
            raise ValueError("seeds must be unsigned 64-bit integers")
        self._state = (seed1 << 64) | seed2

    def next_uint64(self) -> int:
        """Advance the LCG and return the DXSM-permuted high word."""
        self._state = (self._state * _MUL + _INC) & _MASK128
        hi = self._state >> 64
        lo = self._state & _MASK64

        hi ^= hi >> 32
        hi = (hi * _CHEAP_MUL) & _MASK64
        hi ^= hi >> 48
        hi = (hi * (lo | 1)) & _MASK64
        return hi

    def next_int64_in_range(self, bound: int) -> int:
        """
        Uniform integer in [0, bound).

        Lemire's multiply-shift with rejection, so there is no modulo bias.

        Raises:
            ValueError: bound is not positive.
        """
        if bound <= 0:
            raise ValueError(f"invalid bound {bound}")
        if bound & (bound - 1) == 0:
            return self.next_uint64() & (bound - 1)

        product = self.next_uint64() * bound
        lo = product & _MASK64
        if lo < bound:
            threshold = ((1 << 64) - bound) % bound
            while lo < threshold:
                product = self.next_uint64() * bound
                lo = product & _MASK64
        return product >> 64

    def next_float01(self) -> float:
        """Uniform float in [0, 1) with 53 random bits."""
        return (self.next_uint64() & ((1 << 53) - 1)) / (1 << 53)


def new_jitter_generator(seed1: int, seed2: int) -> PCGJitterGenerator:
    """Create a generator for one resolution."""
    return PCGJitterGenerator(seed1, seed2)
