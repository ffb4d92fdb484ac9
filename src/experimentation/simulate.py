"""
Visitor traffic simulator.

Sends synthetic visitors through a running experiment the way the page and
event collaborators would: assign a variant, record the exposure, and record
a conversion with the variant's true conversion probability (plus optional
noise). Returns a run summary.
"""

import logging
from typing import Dict, Optional

import numpy as np

from .engine import ExperimentEngine

logger = logging.getLogger(__name__)

SIMULATOR_SEED = 42


def run_simulation(
    engine: ExperimentEngine,
    experiment_id: str,
    conversion_rates: Dict[str, float],
    n_visitors: int = 5000,
    noise_std: float = 0.0,
    visitor_prefix: str = "visitor",
    random_seed: int = SIMULATOR_SEED,
) -> Dict:
    """
    Simulate visitors for an experiment.

    Args:
        engine: Engine holding the (running) experiment
        experiment_id: Experiment identifier
        conversion_rates: True conversion probability per variant id
        n_visitors: Number of distinct visitors
        noise_std: Per-visitor noise on the conversion probability
        visitor_prefix: Prefix for generated visitor ids
        random_seed: Random seed for reproducibility

    Returns:
        Dict with n_visitors, per-variant assigned/converted counts
    """
    rng = np.random.default_rng(random_seed)

    assigned: Dict[str, int] = {}
    converted: Dict[str, int] = {}
    unassigned = 0

    for i in range(n_visitors):
        visitor_id = f"{visitor_prefix}_{i}"
        variant_id: Optional[str] = engine.assign(experiment_id, visitor_id)
        if variant_id is None:
            unassigned += 1
            continue
        engine.record_exposure(experiment_id, variant_id, visitor_id)
        assigned[variant_id] = assigned.get(variant_id, 0) + 1

        prob = conversion_rates.get(variant_id, 0.0)
        if noise_std:
            prob += rng.normal(0, noise_std)
        prob = float(np.clip(prob, 0, 1))
        if rng.random() < prob:
            engine.record_conversion(experiment_id, variant_id, visitor_id)
            converted[variant_id] = converted.get(variant_id, 0) + 1

    summary = {
        "experiment_id": experiment_id,
        "n_visitors": n_visitors,
        "unassigned": unassigned,
        "assigned": assigned,
        "converted": converted,
        "random_seed": random_seed,
    }
    logger.info(f"Simulation complete: {summary}")
    return summary
