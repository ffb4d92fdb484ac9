"""
Traffic allocation for A/B experiments.

Redistributes integer traffic percentages when variants are added or removed,
validates the structural invariants of a variant list, and maps visitors to
variants deterministically by hashing (experiment_id, visitor_id).
"""

import hashlib
import logging
from typing import List, Optional

from .errors import ValidationError
from .schema import Experiment, ExperimentStatus, Variant

logger = logging.getLogger(__name__)

TOTAL_TRAFFIC = 100
N_BUCKETS = 10000


def _hash_to_bucket(experiment_id: str, visitor_id: str) -> int:
    """
    Deterministic hash to [0, 9999] bucket.

    Same visitor + experiment always maps to same bucket.
    """
    key = f"{experiment_id}:{visitor_id}"
    h = hashlib.sha256(key.encode()).hexdigest()
    return int(h[:8], 16) % N_BUCKETS


def redistribute_traffic(variants: List[Variant]) -> List[Variant]:
    """
    Split 100% evenly across variants, in place.

    Every variant gets floor(100 / n); the remainder goes to the first
    variant in the current ordering (3 -> 34/33/33).

    Returns:
        The same list, for chaining
    """
    n = len(variants)
    if n == 0:
        return variants
    base = TOTAL_TRAFFIC // n
    remainder = TOTAL_TRAFFIC - base * n
    for i, v in enumerate(variants):
        v.traffic = base + (remainder if i == 0 else 0)
    return variants


def validate_variants(variants: List[Variant]) -> None:
    """
    Check the structural invariants of a variant list.

    Raises:
        ValidationError: naming the first violated invariant
    """
    if len(variants) < 2:
        raise ValidationError(
            f"An experiment needs at least 2 variants, got {len(variants)}",
            invariant="min_variants",
        )

    ids = [v.id for v in variants]
    if len(ids) != len(set(ids)):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ValidationError(f"Duplicate variant ids: {dupes}", invariant="unique_ids")

    for v in variants:
        if isinstance(v.traffic, bool) or not isinstance(v.traffic, int):
            raise ValidationError(
                f"Variant {v.id} traffic must be an integer, got {v.traffic!r}",
                invariant="traffic_range",
            )
        if not 0 <= v.traffic <= TOTAL_TRAFFIC:
            raise ValidationError(
                f"Variant {v.id} traffic must be within 0-100, got {v.traffic}",
                invariant="traffic_range",
            )

    n_control = sum(1 for v in variants if v.is_control)
    if n_control != 1:
        raise ValidationError(
            f"Exactly one control variant required, got {n_control}",
            invariant="single_control",
        )

    total = sum(v.traffic for v in variants)
    if total != TOTAL_TRAFFIC:
        raise ValidationError(
            f"Variant traffic must sum to 100, got {total}",
            invariant="traffic_sum",
        )


def control_variant_id(experiment: Experiment) -> Optional[str]:
    control = experiment.control
    return control.id if control else None


def assign_variant(experiment: Experiment, visitor_id: str) -> Optional[str]:
    """
    Assign a visitor to a variant deterministically.

    Only active variants take new visitors; an inactive variant's share is
    spread proportionally over the active ones without touching stored
    traffic. Experiments that are not running always serve the control.

    Args:
        experiment: Experiment to assign within
        visitor_id: Stable visitor identifier (e.g., session id)

    Returns:
        Variant id, or None if the experiment has no control
    """
    fallback = control_variant_id(experiment)
    if experiment.status != ExperimentStatus.RUNNING:
        return fallback

    active = [v for v in experiment.variants if v.is_active and v.traffic > 0]
    active_total = sum(v.traffic for v in active)
    if active_total == 0:
        logger.warning(f"Experiment {experiment.id} has no active traffic; serving control")
        return fallback

    fraction = _hash_to_bucket(experiment.id, visitor_id) / N_BUCKETS
    point = fraction * active_total

    cumulative = 0
    for v in active:
        cumulative += v.traffic
        if point < cumulative:
            return v.id

    return active[-1].id
