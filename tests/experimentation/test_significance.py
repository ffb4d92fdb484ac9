"""Tests for significance evaluation and winner selection."""
import pytest
from src.experimentation.errors import InsufficientDataError
from src.experimentation.schema import Variant
from src.experimentation.stats.significance import evaluate_significance, require_min_exposures


def _arms(*counts):
    """(exposures, conversions) pairs; the first is the control."""
    return [
        Variant(id=f"v{i}", name=f"V{i}", traffic=0, is_control=(i == 0), exposures=n, conversions=x)
        for i, (n, x) in enumerate(counts)
    ]


def test_clear_winner():
    """10% vs 15% on 1000 each -> confidence above 0.95 and the variant wins."""
    result = evaluate_significance(_arms((1000, 100), (1000, 150)))
    assert result.significance > 0.95
    assert result.winner == "v1"
    assert not result.insufficient_data
    assert result.comparisons["v1"].z > 0


def test_below_min_exposures_no_winner():
    """20 exposures each: significance reported, no winner."""
    result = evaluate_significance(_arms((20, 2), (20, 10)))
    assert result.significance > 0
    assert result.winner is None
    assert result.insufficient_data


def test_losing_variant_not_winner():
    """A variant confidently worse than control is not a winner."""
    result = evaluate_significance(_arms((1000, 150), (1000, 100)))
    assert result.significance > 0.95
    assert result.best_variant == "v1"
    assert result.winner is None


def test_significance_is_max_across_variants():
    """With several challengers, the most confident one is reported."""
    result = evaluate_significance(_arms((1000, 100), (1000, 105), (1000, 160)))
    assert result.best_variant == "v2"
    assert result.significance == result.comparisons["v2"].confidence
    assert result.comparisons["v1"].confidence < result.significance
    assert result.winner == "v2"


def test_best_variant_must_beat_control():
    """Max-confidence variant loses -> no winner even if another slightly wins."""
    result = evaluate_significance(_arms((1000, 150), (1000, 155), (1000, 80)))
    assert result.best_variant == "v2"
    assert result.winner is None


def test_threshold_is_configurable():
    """A stricter threshold withholds the winner."""
    arms = _arms((1000, 100), (1000, 130))
    assert evaluate_significance(arms).winner == "v1"
    assert evaluate_significance(arms, confidence_threshold=0.999).winner is None
    assert evaluate_significance(arms, min_exposures=5000).winner is None


def test_undefined_when_no_data():
    """No exposures -> significance 0, comparisons undefined."""
    result = evaluate_significance(_arms((0, 0), (0, 0)))
    assert result.significance == 0.0
    assert result.winner is None
    assert result.comparisons["v1"].confidence is None
    assert result.insufficient_data


def test_control_must_have_min_exposures_too():
    """Every variant, control included, must reach the threshold."""
    result = evaluate_significance(_arms((50, 5), (5000, 750)))
    assert result.winner is None
    assert result.insufficient_data


def test_require_min_exposures():
    """Names the first variant below the threshold."""
    with pytest.raises(InsufficientDataError) as exc:
        require_min_exposures(_arms((200, 0), (99, 0)), 100)
    assert exc.value.variant_id == "v1"
    require_min_exposures(_arms((100, 0), (100, 0)), 100)
