"""Tests for SRM chi-square."""
import pytest
from src.experimentation.stats.srm import srm_chi_square, check_srm


def test_srm_perfect_balance():
    """500/500 on a 50/50 split should pass SRM."""
    passed, _, p = check_srm([500, 500], [50, 50])
    assert passed
    assert p > 0.9


def test_srm_extreme_imbalance():
    """900/100 on a 50/50 split should fail SRM."""
    passed, _, p = check_srm([900, 100], [50, 50])
    assert not passed
    assert p < 0.01


def test_srm_uneven_split_matches():
    """700/300 is exactly what a 70/30 split expects."""
    passed, chi2, _ = check_srm([700, 300], [70, 30])
    assert passed
    assert chi2 == pytest.approx(0.0)


def test_srm_three_way():
    """Works for more than two variants."""
    passed, _, _ = check_srm([340, 330, 330], [34, 33, 33])
    assert passed
    passed, _, _ = check_srm([600, 200, 200], [34, 33, 33])
    assert not passed


def test_srm_chi_square_output():
    """Chi-square returns (stat, pvalue); no data is a pass."""
    chi2, p = srm_chi_square([50, 50], [50, 50])
    assert chi2 >= 0
    assert 0 <= p <= 1
    assert srm_chi_square([0, 0], [50, 50]) == (0.0, 1.0)
