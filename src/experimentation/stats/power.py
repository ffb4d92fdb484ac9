"""
Power analysis for conversion experiments.

Exposures each variant needs before a given relative lift becomes detectable.
"""

from typing import Optional

import numpy as np
from scipy import stats


def sample_size_proportion(
    baseline: float,
    mde_relative: float,
    alpha: float = 0.05,
    power: float = 0.8,
) -> Optional[int]:
    """
    Per-variant sample size for a two-proportion test with equal arms.

    Args:
        baseline: Control conversion rate as a proportion (e.g., 0.05)
        mde_relative: Minimum detectable lift, relative (e.g., 0.10 = +10%)
        alpha: Type I error rate
        power: Statistical power (1 - Type II)

    Returns:
        Exposures needed per variant, or None if the baseline leaves no
        room for the lift (0, or lifted past 1)
    """
    p1 = baseline
    p2 = baseline * (1 + mde_relative)
    if p1 <= 0 or p2 >= 1:
        return None

    z_alpha = stats.norm.ppf(1 - alpha / 2)
    z_beta = stats.norm.ppf(power)

    p_pool = (p1 + p2) / 2
    effect = abs(p2 - p1)

    n_per_arm = 2 * p_pool * (1 - p_pool) * ((z_alpha + z_beta) / effect) ** 2
    return int(np.ceil(n_per_arm))
