"""Tests for the xorshift128 PRNG."""

import math

import numpy as np
import pytest

from py_planetgen.core.xorshift_prng import (
    DEFAULT_SEED, XorShift128, hash_string, make_prng, random_unit_vector
)


class TestXorShift128:
    """Test the raw generator."""

    def test_zero_seed_uses_defaults(self):
        """Zero words are replaced by the default seed words."""
        prng = XorShift128(0, 0, 0, 0)
        assert prng.state() == DEFAULT_SEED

    def test_reference_sequence(self):
        """Default seed reproduces Marsaglia's xor128 sequence."""
        prng = XorShift128()
        assert [prng.next() for _ in range(3)] == [3701687786, 458299110, 2500872618]

    def test_small_seed_sequence(self):
        """Hand-computed first values for an all-ones seed."""
        prng = XorShift128(1, 1, 1, 1)
        assert prng.next() == 2056
        assert prng.next() == 1

    def test_outputs_are_unsigned_32_bit(self):
        prng = XorShift128.from_seed("range")
        values = [prng.next() for _ in range(1000)]
        assert min(values) >= 0
        assert max(values) <= 0xFFFFFFFF

    def test_unit_ranges(self):
        """unit() stays below 1, unit_inclusive() stays within [0, 1]."""
        prng = XorShift128.from_seed(42)
        units = [prng.unit() for _ in range(1000)]
        inclusive = [prng.unit_inclusive() for _ in range(1000)]
        assert all(0 <= u < 1 for u in units)
        assert all(0 <= u <= 1 for u in inclusive)

    def test_integer_bounds(self):
        """integer() is inclusive, integer_exclusive() is not."""
        prng = XorShift128.from_seed(7)
        values = {prng.integer(0, 3) for _ in range(500)}
        assert values == {0, 1, 2, 3}

        exclusive = {prng.integer_exclusive(0, 3) for _ in range(500)}
        assert exclusive == {0, 1, 2}

    def test_real_bounds(self):
        prng = XorShift128.from_seed(11)
        for _ in range(500):
            assert -math.pi <= prng.real(-math.pi, math.pi) < math.pi
            assert 2 <= prng.real_inclusive(2, 5) <= 5

    def test_call_count(self):
        prng = XorShift128.from_seed(3)
        prng.unit()
        prng.integer(0, 10)
        prng.real(0, 1)
        assert prng.call_count == 3

    def test_reseed_restarts_stream(self):
        prng = XorShift128(5, 6, 7, 8)
        first = [prng.next() for _ in range(5)]
        prng.reseed(5, 6, 7, 8)
        assert [prng.next() for _ in range(5)] == first

    def test_choice(self):
        prng = XorShift128.from_seed("choice")
        seq = ["a", "b", "c"]
        assert all(prng.choice(seq) in seq for _ in range(50))
        with pytest.raises(IndexError):
            prng.choice([])


class TestSeeding:
    """Test seed conversion helpers."""

    def test_hash_string(self):
        """Matches the Java String.hashCode values."""
        assert hash_string("") == 0
        assert hash_string("abc") == 96354
        assert hash_string("polygenelubricants") == -2147483648

    def test_hash_uses_every_character(self):
        assert hash_string("ab") != hash_string("aa")

    def test_string_seed_is_reproducible(self):
        a = make_prng("planet")
        b = make_prng("planet")
        assert [a.next() for _ in range(10)] == [b.next() for _ in range(10)]

    def test_different_seeds_differ(self):
        a = make_prng("planet-a")
        b = make_prng("planet-b")
        assert [a.next() for _ in range(10)] != [b.next() for _ in range(10)]

    def test_tuple_seed(self):
        prng = make_prng((1, 2, 3, 4))
        assert prng.state() == (1, 2, 3, 4)
        with pytest.raises(ValueError):
            make_prng((1, 2, 3))

    def test_existing_generator_is_shared(self):
        prng = XorShift128.from_seed(9)
        assert make_prng(prng) is prng

    def test_random_unit_vector(self):
        prng = make_prng("vectors")
        vectors = np.array([random_unit_vector(prng) for _ in range(200)])
        np.testing.assert_allclose(np.linalg.norm(vectors, axis=1), 1.0, rtol=1e-12)
        # Roughly centred on the origin
        assert np.linalg.norm(vectors.mean(axis=0)) < 0.3
