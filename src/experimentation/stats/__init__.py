"""Experiment statistics module."""

from .srm import srm_chi_square, check_srm
from .power import sample_size_proportion
from .hypothesis_tests import proportions_z_test, two_tailed_confidence, rate_interval
from .significance import (
    Comparison,
    SignificanceResult,
    evaluate_significance,
    require_min_exposures,
)

__all__ = [
    "srm_chi_square",
    "check_srm",
    "sample_size_proportion",
    "proportions_z_test",
    "two_tailed_confidence",
    "rate_interval",
    "Comparison",
    "SignificanceResult",
    "evaluate_significance",
    "require_min_exposures",
]
