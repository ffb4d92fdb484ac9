"""
Experiment results for the admin screen.

Input: an experiment snapshot with its counters.
Output: ExperimentResults with per-variant rates, lift, confidence and
intervals, the significance verdict, an SRM check and a recommendation.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .config import EngineConfig
from .schema import (
    Experiment,
    ExperimentResults,
    ExperimentStatus,
    RecommendedAction,
    VariantResult,
)
from .stats import (
    SignificanceResult,
    check_srm,
    evaluate_significance,
    rate_interval,
    sample_size_proportion,
)

logger = logging.getLogger(__name__)

LOW_CONVERSION_RATE = 5.0  # percent
SMALL_LIFT = 5.0  # percent


def _lift_pct(rate: float, control_rate: float) -> float:
    return (rate - control_rate) / control_rate * 100 if control_rate > 0 else 0.0


def _recommend(
    rows: List[VariantResult],
    control: VariantResult,
    verdict: SignificanceResult,
    winner: Optional[str],
    config: EngineConfig,
) -> RecommendedAction:
    challengers = [r for r in rows if not r.is_control]
    has_significance = any(
        r.confidence is not None and r.confidence >= config.confidence_threshold
        for r in challengers
    )
    if winner:
        return RecommendedAction.IMPLEMENT
    if not has_significance or verdict.insufficient_data:
        return RecommendedAction.CONTINUE
    best = max(challengers, key=lambda r: r.conversion_rate)
    if best.conversion_rate <= control.conversion_rate:
        return RecommendedAction.KEEP_CONTROL
    return RecommendedAction.CONTINUE


def _recommendations(
    rows: List[VariantResult],
    control: VariantResult,
    action: RecommendedAction,
    winner_row: Optional[VariantResult],
    srm_passed: bool,
) -> List[str]:
    out = []
    if not srm_passed:
        out.append(
            "Sample ratio mismatch: exposures deviate from the traffic split. "
            "Check assignment and exposure logging before trusting the results."
        )
    if action == RecommendedAction.CONTINUE:
        out.append("Continue running the test to gather more data for statistical significance.")
        needed = control.required_exposures
        if needed and any(r.exposures < needed for r in rows):
            out.append(f"About {needed:,} exposures per variant are needed to detect the target lift.")
    elif action == RecommendedAction.IMPLEMENT and winner_row is not None:
        out.append(
            f"Implement {winner_row.variant_name} as it shows a {winner_row.lift_pct:.1f}% improvement."
        )
        out.append("Monitor the implementation closely to ensure the improvement is sustained.")
    elif action == RecommendedAction.KEEP_CONTROL:
        out.append("The control version performs better. Consider keeping the original design.")
        out.append("Analyze why the test variants underperformed and iterate on the hypothesis.")

    avg_rate = sum(r.conversion_rate for r in rows) / len(rows)
    if avg_rate < LOW_CONVERSION_RATE:
        out.append("Overall conversion rates are low. Consider testing more dramatic changes.")
    if any(abs(r.lift_pct) < SMALL_LIFT for r in rows if not r.is_control):
        out.append("Small differences detected. Consider testing more contrasting variants in future tests.")
    return out


def build_results(
    experiment: Experiment,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
    verdict: Optional[SignificanceResult] = None,
) -> ExperimentResults:
    """
    Build the results view for one experiment.

    Completed experiments report their stored significance and winner (the
    snapshot taken on completion); other statuses report the fresh verdict.

    Args:
        experiment: Experiment snapshot
        config: Engine configuration (thresholds, power settings)
        now: Reference time for duration
        verdict: Precomputed significance, evaluated here if omitted

    Returns:
        ExperimentResults
    """
    config = config or EngineConfig()
    if verdict is None:
        verdict = evaluate_significance(
            experiment.variants, config.min_exposures, config.confidence_threshold
        )

    if experiment.status == ExperimentStatus.COMPLETED:
        significance, winner = experiment.significance, experiment.winner
    else:
        significance, winner = verdict.significance, verdict.winner

    control_variant = experiment.control
    control_rate = control_variant.conversion_rate
    required = sample_size_proportion(
        control_rate / 100, config.mde_relative, power=config.power
    )

    rows = []
    for v in experiment.variants:
        comparison = verdict.comparisons.get(v.id)
        ci_low, ci_high = rate_interval(v.exposures, v.conversions)
        rows.append(VariantResult(
            variant_id=v.id,
            variant_name=v.name,
            is_control=v.is_control,
            is_active=v.is_active,
            traffic=v.traffic,
            exposures=v.exposures,
            conversions=v.conversions,
            conversion_rate=round(v.conversion_rate, 2),
            lift_pct=0.0 if v.is_control else round(_lift_pct(v.conversion_rate, control_rate), 2),
            confidence=comparison.confidence if comparison else None,
            ci_low=ci_low,
            ci_high=ci_high,
            required_exposures=required,
            is_winner=v.id == winner,
        ))
    control_row = next(r for r in rows if r.is_control)
    winner_row = next((r for r in rows if r.is_winner), None)

    active = [v for v in experiment.variants if v.is_active and v.traffic > 0]
    srm_passed, _, srm_p = check_srm(
        [v.exposures for v in active],
        [v.traffic for v in active],
        alpha=config.srm_alpha,
    )

    action = _recommend(rows, control_row, verdict, winner, config)

    duration_days = 0
    if experiment.start_date:
        end = experiment.end_date or now
        if end:
            duration_days = max(0, (end - experiment.start_date).days)

    result = ExperimentResults(
        experiment_id=experiment.id,
        experiment_name=experiment.name,
        status=experiment.status,
        start_date=experiment.start_date,
        end_date=experiment.end_date,
        duration_days=duration_days,
        variants=rows,
        significance=significance,
        winner=winner,
        insufficient_data=verdict.insufficient_data,
        has_statistical_significance=significance >= config.confidence_threshold,
        srm_passed=srm_passed,
        srm_p_value=srm_p,
        recommended_action=action,
        recommendations=_recommendations(rows, control_row, action, winner_row, srm_passed),
        generated_at=now,
    )
    logger.info(
        f"Results for {experiment.id}: significance={significance:.3f}, "
        f"winner={winner}, action={action.value}"
    )
    return result
