"""
Significance evaluation across all variants of an experiment.

Each non-control variant is z-tested against the control. The experiment's
significance is the highest confidence among those comparisons; a winner is
declared only when every variant has enough exposures and the most confident
variant both clears the threshold and beats the control.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import InsufficientDataError, ValidationError
from ..schema import Variant
from .hypothesis_tests import proportions_z_test, two_tailed_confidence

logger = logging.getLogger(__name__)


@dataclass
class Comparison:
    """One non-control variant tested against the control."""
    variant_id: str
    z: Optional[float]
    confidence: Optional[float]  # None when the comparison is undefined
    control_rate: float
    variant_rate: float

    @property
    def beats_control(self) -> bool:
        return self.variant_rate > self.control_rate


@dataclass
class SignificanceResult:
    significance: float = 0.0
    winner: Optional[str] = None
    best_variant: Optional[str] = None
    insufficient_data: bool = False
    comparisons: Dict[str, Comparison] = field(default_factory=dict)


def require_min_exposures(variants: List[Variant], min_exposures: int) -> None:
    """Raise InsufficientDataError for the first variant below the threshold."""
    for v in variants:
        if v.exposures < min_exposures:
            raise InsufficientDataError(v.id, v.exposures, min_exposures)


def evaluate_significance(
    variants: List[Variant],
    min_exposures: int = 100,
    confidence_threshold: float = 0.95,
) -> SignificanceResult:
    """
    Compare every non-control variant to the control.

    Args:
        variants: All variants of the experiment, exactly one control
        min_exposures: Exposures every variant needs before a winner is called
        confidence_threshold: Confidence the best variant must reach

    Returns:
        SignificanceResult; ``winner`` is None unless the result is conclusive
    """
    control = next((v for v in variants if v.is_control), None)
    if control is None:
        raise ValidationError("No control variant found", invariant="single_control")

    result = SignificanceResult()
    best: Optional[Comparison] = None

    for v in variants:
        if v is control:
            continue
        test = proportions_z_test(control.exposures, control.conversions, v.exposures, v.conversions)
        if test is None:
            comparison = Comparison(
                variant_id=v.id,
                z=None,
                confidence=None,
                control_rate=control.conversions / max(control.exposures, 1),
                variant_rate=v.conversions / max(v.exposures, 1),
            )
        else:
            z, p1, p2 = test
            comparison = Comparison(
                variant_id=v.id,
                z=z,
                confidence=two_tailed_confidence(z),
                control_rate=p1,
                variant_rate=p2,
            )
        result.comparisons[v.id] = comparison
        if comparison.confidence is not None and (best is None or comparison.confidence > best.confidence):
            best = comparison

    if best is None:
        result.insufficient_data = True
        return result

    result.significance = best.confidence
    result.best_variant = best.variant_id

    try:
        require_min_exposures(variants, min_exposures)
    except InsufficientDataError as e:
        logger.debug(f"Not yet conclusive: {e}")
        result.insufficient_data = True
        return result

    if best.confidence >= confidence_threshold and best.beats_control:
        result.winner = best.variant_id
    return result
