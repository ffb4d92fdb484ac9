"""Tests for exposure/conversion counting."""
from concurrent.futures import ThreadPoolExecutor

import pytest
from src.experimentation.aggregator import ConversionAggregator
from src.experimentation.errors import NotFoundError
from src.experimentation.store import ExperimentStore


@pytest.fixture
def store(make_experiment):
    store = ExperimentStore()
    store.create(make_experiment())
    store.update("exp_1", {"status": "running"})
    return store


def _counts(store):
    return [(v.exposures, v.conversions) for v in store.get("exp_1").variants]


def test_idempotent_conversion(store):
    """Two conversions from one visitor count once."""
    agg = ConversionAggregator(store)
    agg.record_exposure("exp_1", "v1", "visitor_1")
    assert agg.record_conversion("exp_1", "v1", "visitor_1")
    assert not agg.record_conversion("exp_1", "v1", "visitor_1")
    assert _counts(store)[1] == (1, 1)


def test_conversion_credited_only_to_exposed_variant(store):
    """A visitor's conversion on another variant, or without exposure, is dropped."""
    agg = ConversionAggregator(store)
    agg.record_exposure("exp_1", "v0", "alice")
    assert not agg.record_conversion("exp_1", "v1", "alice")
    assert not agg.record_conversion("exp_1", "v1", "bob")
    assert _counts(store) == [(1, 0), (0, 0)]
    assert store.get("exp_1").variants[1].conversion_rate == 0.0

    # the right variant still counts
    assert agg.record_conversion("exp_1", "v0", "alice")
    assert _counts(store) == [(1, 1), (0, 0)]


def test_duplicate_exposure_ignored(store):
    """Exposures count unique visitors."""
    agg = ConversionAggregator(store)
    assert agg.record_exposure("exp_1", "v0", "visitor_1")
    assert not agg.record_exposure("exp_1", "v0", "visitor_1")
    assert _counts(store)[0] == (1, 0)


def test_conversion_rate_derived(store):
    """conversion_rate follows the counters."""
    agg = ConversionAggregator(store)
    for i in range(4):
        agg.record_exposure("exp_1", "v0", f"visitor_{i}")
    agg.record_conversion("exp_1", "v0", "visitor_0")
    assert store.get("exp_1").variants[0].conversion_rate == 25.0


def test_paused_accepts_late_conversions(store):
    """Events still count while paused."""
    agg = ConversionAggregator(store)
    agg.record_exposure("exp_1", "v0", "visitor_1")
    store.update("exp_1", {"status": "paused"})
    assert agg.record_conversion("exp_1", "v0", "visitor_1")


def test_draft_and_completed_events_dropped(make_experiment, store):
    """Events for draft and completed experiments are dropped without raising."""
    store.create(make_experiment(experiment_id="exp_draft"))
    agg = ConversionAggregator(store)
    assert not agg.record_exposure("exp_draft", "v0", "visitor_1")

    store.update("exp_1", {"status": "completed"})
    assert not agg.record_conversion("exp_1", "v0", "visitor_1")
    assert _counts(store) == [(0, 0), (0, 0)]


def test_unknown_variant_raises(store):
    """The aggregator itself reports unknown ids."""
    agg = ConversionAggregator(store)
    with pytest.raises(NotFoundError):
        agg.record_exposure("exp_1", "nope", "visitor_1")
    with pytest.raises(NotFoundError):
        agg.record_conversion("missing", "v0", "visitor_1")


def test_concurrent_increments_not_lost(store):
    """Parallel callers on the same variant lose no updates."""
    agg = ConversionAggregator(store)

    def worker(t):
        for i in range(250):
            agg.record_exposure("exp_1", "v1", f"visitor_{t}_{i}")
            agg.record_conversion("exp_1", "v1", f"visitor_{t}_{i}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(worker, range(8)))
    assert _counts(store)[1] == (2000, 2000)
