"""
Experiment engine.

One explicitly constructed object per process, handed to whatever serves the
admin screen, variant assignment and event collection. Admin operations
raise domain errors to the caller; assignment and event recording never do,
since they sit on the page-rendering path.
"""

import copy
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .aggregator import ConversionAggregator
from .allocation import assign_variant, redistribute_traffic
from .config import EngineConfig
from .errors import (
    ExperimentError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .lifecycle import apply_transition, event_for
from .results import build_results
from .schema import (
    Experiment,
    ExperimentResults,
    ExperimentStatus,
    LifecycleEvent,
    Variant,
)
from .stats import evaluate_significance
from .store import ExperimentStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_experiment_id() -> str:
    return f"test_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _variant_from_spec(spec: Dict[str, Any], index: int) -> Variant:
    return Variant(
        id=str(spec.get("id") or f"variant_{index + 1}"),
        name=spec.get("name") or f"Variant {index + 1}",
        description=spec.get("description", ""),
        traffic=spec.get("traffic", 0),
        is_control=bool(spec.get("is_control", False)),
        is_active=bool(spec.get("is_active", True)),
    )


def _next_variant_id(variants: List[Variant]) -> str:
    taken = {v.id for v in variants}
    n = len(variants) + 1
    while f"variant_{n}" in taken:
        n += 1
    return f"variant_{n}"


class ExperimentEngine:
    """
    Facade over the store, allocator, lifecycle, aggregator and evaluator.

    Args:
        config: Engine configuration
        store: Experiment store; built from ``config.data_dir`` if omitted
        clock: Returns the current time (timezone-aware)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[ExperimentStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else ExperimentStore(self.config.data_dir)
        self.aggregator = ConversionAggregator(self.store)
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # admin

    def list_experiments(
        self,
        status: Optional[str] = None,
        component: Optional[str] = None,
    ) -> List[Experiment]:
        """Experiments, newest start first (unstarted last), optionally filtered."""
        experiments = self.store.list()
        if status:
            try:
                status = ExperimentStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status {status!r}")
            experiments = [e for e in experiments if e.status == status]
        if component:
            experiments = [e for e in experiments if e.component == component]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        experiments.sort(key=lambda e: e.start_date or epoch, reverse=True)
        return experiments

    def summarize_experiments(self) -> Dict[str, int]:
        """Count of experiments per status, plus the total."""
        experiments = self.store.list()
        summary = {s.value: 0 for s in ExperimentStatus}
        for e in experiments:
            summary[e.status.value] += 1
        summary["total"] = len(experiments)
        return summary

    def create_experiment(self, spec: Dict[str, Any]) -> Experiment:
        """
        Create a draft experiment from an admin form.

        Missing variant ids become variant_1..n; if no variant is flagged as
        control the first one is; if any variant omits traffic the split is
        redistributed evenly.

        Raises:
            ValidationError: missing fields or a violated invariant
        """
        missing = [k for k in ("name", "component", "variants") if not spec.get(k)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        variant_specs = spec["variants"]
        if not isinstance(variant_specs, list) or not all(isinstance(v, dict) for v in variant_specs):
            raise ValidationError("variants must be a list of objects")
        variants = [_variant_from_spec(v, i) for i, v in enumerate(variant_specs)]
        if variants and not any(v.is_control for v in variants):
            variants[0].is_control = True
        if any("traffic" not in v for v in variant_specs):
            redistribute_traffic(variants)

        experiment = Experiment(
            id=str(spec.get("id") or _new_experiment_id()),
            name=spec["name"],
            description=spec.get("description", ""),
            component=spec["component"],
            target_metric=spec.get("target_metric") or "conversion_rate",
            start_date=spec.get("start_date"),
            variants=variants,
        )
        return self.store.create(experiment)

    def get_experiment(self, experiment_id: str) -> Experiment:
        return self.store.get(experiment_id)

    def update_experiment(self, experiment_id: str, patch: Dict[str, Any]) -> Experiment:
        """
        Partial update. A ``status`` entry is carried out as the matching
        lifecycle event, after the other fields are applied.
        """
        patch = dict(patch)
        target = patch.pop("status", None)
        event = None
        if target is not None:
            current = self.store.get(experiment_id).status
            try:
                target = ExperimentStatus(target)
            except ValueError:
                raise ValidationError(f"Unknown status {target!r}")
            if target != current:
                event = event_for(current, target)

        if patch:
            self.store.update(experiment_id, patch)
        if event is not None:
            return self.transition(experiment_id, event)
        return self.store.get(experiment_id)

    def _require_draft(self, experiment: Experiment) -> None:
        if experiment.status != ExperimentStatus.DRAFT:
            raise InvalidStateError(
                f"Experiment {experiment.id} is {experiment.status.value}; "
                "variants can only be changed in draft"
            )

    def add_variant(self, experiment_id: str, spec: Dict[str, Any]) -> Experiment:
        """Append a variant in draft and re-split traffic evenly."""
        with self.store.transaction(experiment_id) as working:
            self._require_draft(working)
            variant = _variant_from_spec(spec, len(working.variants))
            if not spec.get("id"):
                variant.id = _next_variant_id(working.variants)
            if variant.is_control:
                raise ValidationError(
                    "New variants cannot be the control", invariant="single_control"
                )
            working.variants.append(variant)
            redistribute_traffic(working.variants)
        logger.info(f"Added variant {variant.id} to {experiment_id}")
        return self.store.get(experiment_id)

    def remove_variant(self, experiment_id: str, variant_id: str) -> Experiment:
        """Remove a non-control variant in draft and re-split traffic evenly."""
        with self.store.transaction(experiment_id) as working:
            self._require_draft(working)
            variant = working.variant(variant_id)
            if variant is None:
                raise NotFoundError("variant", variant_id)
            if variant.is_control:
                raise ValidationError(
                    "The control variant cannot be removed", invariant="single_control"
                )
            working.variants.remove(variant)
            redistribute_traffic(working.variants)
        logger.info(f"Removed variant {variant_id} from {experiment_id}")
        return self.store.get(experiment_id)

    def set_traffic(self, experiment_id: str, allocation: Dict[str, int]) -> Experiment:
        """Manually set traffic for some or all variants in draft; the result must sum to 100."""
        with self.store.transaction(experiment_id) as working:
            self._require_draft(working)
            for variant_id, traffic in allocation.items():
                variant = working.variant(variant_id)
                if variant is None:
                    raise NotFoundError("variant", variant_id)
                variant.traffic = traffic
        return self.store.get(experiment_id)

    def transition(self, experiment_id: str, event: Any) -> Experiment:
        """
        Apply a lifecycle event.

        Completing a running experiment snapshots its final significance and
        winner.

        Raises:
            InvalidTransitionError: event not allowed from the current status
        """
        with self.store.transaction(experiment_id) as working:
            try:
                event = LifecycleEvent(event)
            except ValueError:
                raise InvalidTransitionError(working.status.value, str(event))
            was_running = working.status == ExperimentStatus.RUNNING
            apply_transition(working, event, self._clock())
            if event == LifecycleEvent.COMPLETE and was_running:
                verdict = evaluate_significance(
                    working.variants, self.config.min_exposures, self.config.confidence_threshold
                )
                working.significance = verdict.significance
                working.winner = verdict.winner
        return self.store.get(experiment_id)

    def update_variant_active(self, experiment_id: str, variant_id: str, is_active: bool) -> Experiment:
        """Toggle a variant's kill switch. Allowed in any status."""
        with self.store.transaction(experiment_id) as working:
            variant = working.variant(variant_id)
            if variant is None:
                raise NotFoundError("variant", variant_id)
            variant.is_active = bool(is_active)
        logger.info(f"Variant {experiment_id}/{variant_id} active={bool(is_active)}")
        return self.store.get(experiment_id)

    def get_results(self, experiment_id: str) -> ExperimentResults:
        """
        Evaluate significance and build the results view.

        For running and paused experiments the fresh significance and winner
        are written back to the store. Evaluation and write-back happen under
        the experiment's lock, so a concurrent completion is never overwritten.
        """
        with self.store.transaction(experiment_id) as working:
            verdict = evaluate_significance(
                working.variants, self.config.min_exposures, self.config.confidence_threshold
            )
            if working.status in (ExperimentStatus.RUNNING, ExperimentStatus.PAUSED):
                working.significance = verdict.significance
                working.winner = verdict.winner
            experiment = copy.deepcopy(working)
        return build_results(experiment, self.config, self._clock(), verdict)

    def delete_experiment(self, experiment_id: str) -> None:
        self.store.delete(experiment_id)

    # ------------------------------------------------------------------
    # page render

    def assign(self, experiment_id: str, visitor_id: str) -> Optional[str]:
        """
        Variant for a visitor. Never raises.

        Visitors already exposed keep their variant even if it has since been
        deactivated. Experiments that are not running serve the control;
        unknown experiments return None.
        """
        try:
            with self.store.locked(experiment_id) as (experiment, ledger):
                if experiment.status == ExperimentStatus.RUNNING:
                    sticky = ledger.exposed.get(visitor_id)
                    if sticky is not None and experiment.variant(sticky) is not None:
                        return sticky
                return assign_variant(experiment, visitor_id)
        except ExperimentError as e:
            logger.warning(f"Assignment failed for {experiment_id}, visitor {visitor_id}: {e}")
            return None

    # ------------------------------------------------------------------
    # events

    def record_exposure(
        self,
        experiment_id: str,
        variant_id: str,
        visitor_id: Optional[str] = None,
    ) -> bool:
        """Record an exposure; failures are logged and dropped."""
        try:
            return self.aggregator.record_exposure(experiment_id, variant_id, visitor_id)
        except ExperimentError as e:
            logger.warning(f"Dropped exposure for {experiment_id}/{variant_id}: {e}")
            return False

    def record_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        visitor_id: Optional[str] = None,
    ) -> bool:
        """Record a conversion; failures are logged and dropped."""
        try:
            return self.aggregator.record_conversion(experiment_id, variant_id, visitor_id)
        except ExperimentError as e:
            logger.warning(f"Dropped conversion for {experiment_id}/{variant_id}: {e}")
            return False
