"""Tests for z-test, confidence, intervals and power."""
import pytest
from src.experimentation.stats.hypothesis_tests import (
    proportions_z_test,
    rate_interval,
    two_tailed_confidence,
)
from src.experimentation.stats.power import sample_size_proportion


def test_proportions_z_test_known():
    """Known case: 100/1000 vs 150/1000 -> variant better, z about 3.38."""
    z, p1, p2 = proportions_z_test(1000, 100, 1000, 150)
    assert p1 == pytest.approx(0.10)
    assert p2 == pytest.approx(0.15)
    assert z == pytest.approx(3.38, abs=0.01)
    assert two_tailed_confidence(z) > 0.99


def test_proportions_z_test_equal():
    """Equal proportions -> z = 0, confidence 0."""
    z, _, _ = proportions_z_test(100, 30, 100, 30)
    assert z == pytest.approx(0.0)
    assert two_tailed_confidence(z) == pytest.approx(0.0)


@pytest.mark.parametrize("args", [(0, 0, 100, 10), (100, 0, 100, 0), (50, 50, 50, 50)])
def test_proportions_z_test_undefined(args):
    """Empty arms or a pooled rate of 0/1 leave the test undefined."""
    assert proportions_z_test(*args) is None


def test_confidence_symmetric():
    """Two-tailed: sign of z does not matter; 1.96 is about 95%."""
    assert two_tailed_confidence(-1.96) == pytest.approx(two_tailed_confidence(1.96))
    assert two_tailed_confidence(1.96) == pytest.approx(0.95, abs=0.001)


def test_rate_interval():
    """Interval brackets the rate and stays within [0, 100]."""
    lo, hi = rate_interval(1000, 100)
    assert lo < 10.0 < hi
    assert rate_interval(10, 0) == (0.0, 0.0)
    assert rate_interval(0, 0) == (0.0, 0.0)
    lo, hi = rate_interval(10, 1)
    assert lo == 0.0 and hi <= 100.0


def test_sample_size_proportion():
    """5% baseline, +10% lift needs tens of thousands per variant."""
    n = sample_size_proportion(0.05, 0.10)
    assert 25000 < n < 40000
    assert sample_size_proportion(0.05, 0.50) < n
    assert sample_size_proportion(0.0, 0.10) is None
