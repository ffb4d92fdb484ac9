"""Tests for the lifecycle state machine."""
from datetime import datetime, timezone
from itertools import product

import pytest
from src.experimentation.errors import InvalidTransitionError, ValidationError
from src.experimentation.lifecycle import TRANSITIONS, apply_transition, event_for, next_status
from src.experimentation.schema import ExperimentStatus, LifecycleEvent

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def test_every_unlisted_transition_rejected():
    """Only the five table entries are allowed."""
    for status, event in product(ExperimentStatus, LifecycleEvent):
        if (status, event) in TRANSITIONS:
            assert next_status(status, event) == TRANSITIONS[(status, event)]
        else:
            with pytest.raises(InvalidTransitionError):
                next_status(status, event)


def test_full_path(make_experiment):
    """draft -> running -> paused -> running -> completed."""
    exp = make_experiment()
    for event in ("start", "pause", "resume", "complete"):
        apply_transition(exp, LifecycleEvent(event), NOW)
    assert exp.status == ExperimentStatus.COMPLETED


def test_completed_is_terminal(make_experiment):
    """completed -> running fails and leaves status alone."""
    exp = make_experiment()
    apply_transition(exp, LifecycleEvent.START, NOW)
    apply_transition(exp, LifecycleEvent.COMPLETE, NOW)
    with pytest.raises(InvalidTransitionError):
        apply_transition(exp, LifecycleEvent.RESUME, NOW)
    with pytest.raises(InvalidTransitionError):
        apply_transition(exp, LifecycleEvent.START, NOW)
    assert exp.status == ExperimentStatus.COMPLETED


def test_start_sets_start_date_once(make_experiment):
    """start_date is stamped on start only if unset."""
    exp = make_experiment()
    apply_transition(exp, LifecycleEvent.START, NOW)
    assert exp.start_date == NOW

    preset = make_experiment()
    earlier = datetime(2024, 12, 1, tzinfo=timezone.utc)
    preset.start_date = earlier
    apply_transition(preset, LifecycleEvent.START, NOW)
    assert preset.start_date == earlier


def test_complete_sets_end_date(make_experiment):
    """Completing stamps end_date, from running or paused."""
    exp = make_experiment()
    apply_transition(exp, LifecycleEvent.START, NOW)
    apply_transition(exp, LifecycleEvent.PAUSE, NOW)
    assert exp.end_date is None
    apply_transition(exp, LifecycleEvent.COMPLETE, NOW)
    assert exp.end_date == NOW


def test_start_revalidates_invariants(make_experiment):
    """An experiment whose traffic no longer sums to 100 cannot start."""
    exp = make_experiment()
    exp.variants[0].traffic = 40
    with pytest.raises(ValidationError):
        apply_transition(exp, LifecycleEvent.START, NOW)
    assert exp.status == ExperimentStatus.DRAFT


def test_event_for_direct_status_change():
    """Direct status targets map back to events, or fail."""
    assert event_for(ExperimentStatus.PAUSED, ExperimentStatus.RUNNING) == LifecycleEvent.RESUME
    with pytest.raises(InvalidTransitionError):
        event_for(ExperimentStatus.DRAFT, ExperimentStatus.PAUSED)
