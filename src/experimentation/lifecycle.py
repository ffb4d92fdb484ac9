"""
Experiment lifecycle state machine.

draft -> running <-> paused -> completed. ``completed`` is terminal.
"""

import logging
from datetime import datetime
from typing import Dict, Tuple

from .allocation import validate_variants
from .errors import InvalidTransitionError
from .schema import Experiment, ExperimentStatus, LifecycleEvent

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[Tuple[ExperimentStatus, LifecycleEvent], ExperimentStatus] = {
    (ExperimentStatus.DRAFT, LifecycleEvent.START): ExperimentStatus.RUNNING,
    (ExperimentStatus.RUNNING, LifecycleEvent.PAUSE): ExperimentStatus.PAUSED,
    (ExperimentStatus.PAUSED, LifecycleEvent.RESUME): ExperimentStatus.RUNNING,
    (ExperimentStatus.RUNNING, LifecycleEvent.COMPLETE): ExperimentStatus.COMPLETED,
    (ExperimentStatus.PAUSED, LifecycleEvent.COMPLETE): ExperimentStatus.COMPLETED,
}


def next_status(current: ExperimentStatus, event: LifecycleEvent) -> ExperimentStatus:
    """Target status for an event, or InvalidTransitionError."""
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransitionError(current.value, event.value)
    return target


def event_for(current: ExperimentStatus, target: ExperimentStatus) -> LifecycleEvent:
    """
    Event that moves ``current`` to ``target``.

    Used to validate direct status overwrites against the transition table.
    """
    for (src, event), dst in TRANSITIONS.items():
        if src == current and dst == target:
            return event
    raise InvalidTransitionError(current.value, f"move to {target.value}")


def apply_transition(
    experiment: Experiment,
    event: LifecycleEvent,
    now: datetime,
) -> Experiment:
    """
    Apply a lifecycle event to an experiment in place.

    Starting re-validates the variant invariants. Completing stamps
    ``end_date``; snapshotting significance is the caller's job since it
    needs the evaluator.

    Returns:
        The same experiment
    """
    event = LifecycleEvent(event)
    target = next_status(experiment.status, event)

    if event == LifecycleEvent.START:
        validate_variants(experiment.variants)
        if experiment.start_date is None:
            experiment.start_date = now
    elif event == LifecycleEvent.COMPLETE:
        experiment.end_date = now

    logger.info(
        f"Experiment {experiment.id}: {experiment.status.value} -> {target.value} ({event.value})"
    )
    experiment.status = target
    return experiment
