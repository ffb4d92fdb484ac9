"""
Sample Ratio Mismatch (SRM) chi-square test.

Detects if observed exposures across variants deviate significantly from the
configured traffic split.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy import stats


def srm_chi_square(
    observed: Sequence[int],
    expected_shares: Sequence[float],
) -> Tuple[float, float]:
    """
    Chi-square goodness-of-fit test for sample ratio mismatch.

    H0: exposures follow the expected shares
    H1: they do not

    Args:
        observed: Exposures per variant
        expected_shares: Traffic share per variant (any scale, normalized here)

    Returns:
        Tuple of (chi2_statistic, p_value)
    """
    observed = np.asarray(observed, dtype=float)
    shares = np.asarray(expected_shares, dtype=float)
    n_total = observed.sum()
    if n_total == 0 or len(observed) < 2 or shares.sum() <= 0:
        return 0.0, 1.0

    expected = n_total * shares / shares.sum()

    # Avoid division by zero
    expected = np.where(expected == 0, 1e-10, expected)

    chi2 = np.sum((observed - expected) ** 2 / expected)
    p_value = 1 - stats.chi2.cdf(chi2, df=len(observed) - 1)

    return float(chi2), float(p_value)


def check_srm(
    observed: Sequence[int],
    expected_shares: Sequence[float],
    alpha: float = 0.01,
) -> Tuple[bool, float, float]:
    """
    Check for sample ratio mismatch.

    Returns:
        Tuple of (srm_passed, chi2_statistic, p_value)
    """
    chi2, p_value = srm_chi_square(observed, expected_shares)
    srm_passed = p_value >= alpha
    return srm_passed, chi2, p_value
