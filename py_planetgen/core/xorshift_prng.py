"""
Xorshift128 PRNG used for every random draw in planet generation.

All state words are kept as unsigned 32-bit integers so a given seed yields
the same stream on every platform.
"""

import math

import numpy as np

DEFAULT_SEED = (123456789, 362436069, 521288629, 88675123)

_UINT32_RANGE = 0x100000000  # 2^32
_UINT32_MAX = 0xFFFFFFFF


def _uint32(n):
    """Convert to unsigned 32-bit integer."""
    return int(n) & 0xFFFFFFFF


def hash_string(s: str) -> int:
    """
    Java-style 31-multiplier string hash folded to a signed 32-bit value.

    Args:
        s: String to hash

    Returns:
        Signed 32-bit hash, 0 for the empty string
    """
    value = 0
    for char in s:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


class XorShift128:
    """
    Marsaglia xorshift128 generator.

    A zero seed word is replaced by the matching word of DEFAULT_SEED.
    """

    def __init__(self, x=0, y=0, z=0, w=0):
        """Initialize with four 32-bit seed words."""
        self.call_count = 0
        self.reseed(x, y, z, w)

    @classmethod
    def from_seed(cls, seed):
        """
        Build a generator from an int, a string or a 4-tuple of ints.

        Strings are hashed with hash_string; a single int seeds every word.
        """
        if isinstance(seed, str):
            value = _uint32(hash_string(seed))
            return cls(value, value, value, value)
        if hasattr(seed, "__iter__"):
            words = [int(s) for s in seed]
            if len(words) != 4:
                raise ValueError(f"Seed tuple must have 4 words, got {len(words)}")
            return cls(*words)
        if seed is None:
            return cls()
        value = _uint32(seed)
        return cls(value, value, value, value)

    def reseed(self, x=0, y=0, z=0, w=0):
        """Reset state, substituting defaults for zero words."""
        self.x = _uint32(x) or DEFAULT_SEED[0]
        self.y = _uint32(y) or DEFAULT_SEED[1]
        self.z = _uint32(z) or DEFAULT_SEED[2]
        self.w = _uint32(w) or DEFAULT_SEED[3]

    def next(self) -> int:
        """Advance the state and return an unsigned 32-bit integer."""
        self.call_count += 1
        t = self.x ^ ((self.x << 11) & _UINT32_MAX)
        self.x = self.y
        self.y = self.z
        self.z = self.w
        self.w = (self.w ^ (self.w >> 19)) ^ (t ^ (t >> 8))
        return self.w

    def unit(self) -> float:
        """Random float in [0, 1)."""
        return self.next() / _UINT32_RANGE

    def unit_inclusive(self) -> float:
        """Random float in [0, 1]."""
        return self.next() / _UINT32_MAX

    def integer(self, min_value: int, max_value: int) -> int:
        """Random integer in [min_value, max_value]."""
        return self.integer_exclusive(min_value, max_value + 1)

    def integer_exclusive(self, min_value: int, max_value: int) -> int:
        """Random integer in [min_value, max_value)."""
        min_value = math.floor(min_value)
        max_value = math.floor(max_value)
        return math.floor(self.unit() * (max_value - min_value)) + min_value

    def real(self, min_value: float, max_value: float) -> float:
        """Random float in [min_value, max_value)."""
        return self.unit() * (max_value - min_value) + min_value

    def real_inclusive(self, min_value: float, max_value: float) -> float:
        """Random float in [min_value, max_value]."""
        return self.unit_inclusive() * (max_value - min_value) + min_value

    def choice(self, seq):
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.integer_exclusive(0, len(seq))]

    def state(self):
        """Current state words, useful for snapshotting a stream."""
        return (self.x, self.y, self.z, self.w)


def make_prng(seed=None) -> XorShift128:
    """
    Build a generator from any accepted seed form.

    An existing XorShift128 is returned unchanged so callers can share one
    stream between pipeline stages.
    """
    if isinstance(seed, XorShift128):
        return seed
    return XorShift128.from_seed(seed)


def random_unit_vector(prng: XorShift128) -> np.ndarray:
    """Uniformly distributed point on the unit sphere."""
    theta = prng.real(0, math.pi * 2)
    phi = math.acos(prng.real_inclusive(-1, 1))
    sin_phi = math.sin(phi)
    return np.array([math.cos(theta) * sin_phi, math.sin(theta) * sin_phi, math.cos(phi)])

