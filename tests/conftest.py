"""Pytest configuration - add project root to path, shared engine fixtures."""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from src.experimentation.config import EngineConfig  # noqa: E402
from src.experimentation.engine import ExperimentEngine  # noqa: E402
from src.experimentation.schema import Experiment, LifecycleEvent, Variant  # noqa: E402


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start=datetime(2025, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(clock):
    return ExperimentEngine(EngineConfig(min_exposures=100), clock=clock)


@pytest.fixture
def make_experiment():
    """Build an Experiment with the given traffic split; first variant is control."""
    def _make(traffic=(50, 50), experiment_id="exp_1"):
        variants = [
            Variant(id=f"v{i}", name=f"Variant {i}", traffic=t, is_control=(i == 0))
            for i, t in enumerate(traffic)
        ]
        return Experiment(id=experiment_id, name="Test", component="HeroSection", variants=variants)
    return _make


@pytest.fixture
def running(engine):
    """Create and start an experiment in the engine; returns its id."""
    def _running(traffic=(50, 50), experiment_id="exp_run"):
        engine.create_experiment({
            "id": experiment_id,
            "name": "Running test",
            "component": "HeroSection",
            "variants": [
                {"id": f"v{i}", "name": f"Variant {i}", "traffic": t, "is_control": i == 0}
                for i, t in enumerate(traffic)
            ],
        })
        engine.transition(experiment_id, LifecycleEvent.START)
        return experiment_id
    return _running
