"""
Unit tests for the Box-Muller normal generator and uniform sources.
"""

import math

import numpy as np
import pytest

from config import InvalidParameterError
from simulation import NumpyUniformSource, SequenceUniformSource, generate_normal


# ============================================================================
# UNIFORM SOURCES
# ============================================================================

class TestSequenceUniformSource:

    def test_replays_values_in_order(self):
        source = SequenceUniformSource([0.1, 0.2, 0.3])
        assert [source.uniform() for _ in range(3)] == [0.1, 0.2, 0.3]

    def test_cycles_when_exhausted(self):
        source = SequenceUniformSource([0.25, 0.75])
        assert [source.uniform() for _ in range(5)] == [0.25, 0.75, 0.25, 0.75, 0.25]

    def test_empty_sequence_raises(self):
        with pytest.raises(InvalidParameterError):
            SequenceUniformSource([])

    @pytest.mark.parametrize("bad", [1.0, -0.1, 2.0])
    def test_out_of_range_value_raises(self, bad):
        with pytest.raises(InvalidParameterError, match="Uniform draws"):
            SequenceUniformSource([0.5, bad])

    def test_all_zero_sequence_raises(self):
        with pytest.raises(InvalidParameterError, match="above zero"):
            SequenceUniformSource([0.0, 0.0])


class TestNumpyUniformSource:

    def test_values_in_unit_interval(self):
        source = NumpyUniformSource(seed=1)
        draws = [source.uniform() for _ in range(1000)]
        assert all(0.0 <= d < 1.0 for d in draws)

    def test_same_seed_same_draws(self):
        a = NumpyUniformSource(seed=7)
        b = NumpyUniformSource(seed=7)
        assert [a.uniform() for _ in range(10)] == [b.uniform() for _ in range(10)]


# ============================================================================
# GENERATE NORMAL
# ============================================================================

class TestGenerateNormal:

    def test_box_muller_formula(self):
        source = SequenceUniformSource([0.3, 0.6])
        expected = math.sqrt(-2.0 * math.log(0.3)) * math.cos(2.0 * math.pi * 0.6)

        value = generate_normal(0.05, 0.2, source)

        assert value == pytest.approx(expected * 0.2 + 0.05)

    def test_zero_std_dev_returns_mean(self):
        source = SequenceUniformSource([0.9, 0.1])
        assert generate_normal(0.05, 0.0, source) == 0.05

    def test_zero_u1_is_redrawn(self):
        # 0.0 is discarded, 0.5 becomes u1 and 0.25 becomes u2
        source = SequenceUniformSource([0.0, 0.5, 0.25])
        expected = math.sqrt(-2.0 * math.log(0.5)) * math.cos(2.0 * math.pi * 0.25)

        value = generate_normal(0.0, 1.0, source)

        assert math.isfinite(value)
        assert value == pytest.approx(expected)

    def test_sample_moments(self):
        source = NumpyUniformSource(seed=123)
        draws = np.array([generate_normal(0.07, 0.15, source) for _ in range(20_000)])

        assert draws.mean() == pytest.approx(0.07, abs=0.01)
        assert draws.std() == pytest.approx(0.15, abs=0.01)
