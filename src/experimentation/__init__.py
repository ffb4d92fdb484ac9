"""Experimentation engine for the A/B-test admin screen."""

from .schema import (
    Experiment,
    Variant,
    ExperimentStatus,
    LifecycleEvent,
    RecommendedAction,
    ExperimentResults,
    VariantResult,
)
from .errors import (
    ExperimentError,
    ValidationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    InsufficientDataError,
)
from .config import EngineConfig
from .allocation import assign_variant, redistribute_traffic, validate_variants
from .store import ExperimentStore
from .aggregator import ConversionAggregator
from .engine import ExperimentEngine
from .results import build_results
from .report import export_results, render_results_summary

__all__ = [
    "Experiment",
    "Variant",
    "ExperimentStatus",
    "LifecycleEvent",
    "RecommendedAction",
    "ExperimentResults",
    "VariantResult",
    "ExperimentError",
    "ValidationError",
    "InvalidStateError",
    "InvalidTransitionError",
    "NotFoundError",
    "InsufficientDataError",
    "EngineConfig",
    "assign_variant",
    "redistribute_traffic",
    "validate_variants",
    "ExperimentStore",
    "ConversionAggregator",
    "ExperimentEngine",
    "build_results",
    "export_results",
    "render_results_summary",
]
