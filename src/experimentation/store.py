"""
Experiment store.

Keeps experiments, their variant counters and participant ledgers in memory,
optionally mirrored to data/experiments/<experiment_id>/. Every mutation runs
under a per-experiment lock, re-validates the structural invariants, and is
written out only once it has fully succeeded.

On disk each experiment has a snapshot (experiment.json) and an append-only
log of counted events since that snapshot (events.jsonl). Events are appended
one line at a time; admin commits rewrite the snapshot and clear the log.
"""

import copy
import json
import logging
import os
import re
import shutil
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .allocation import validate_variants
from .errors import InvalidStateError, NotFoundError, ValidationError
from .lifecycle import apply_transition, event_for
from .schema import Experiment, ExperimentStatus, ParticipantLedger, Variant, parse_datetime

logger = logging.getLogger(__name__)

RECORD_FILE = "experiment.json"
EVENTS_FILE = "events.jsonl"
EXPOSURE = "exposure"
CONVERSION = "conversion"
_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

# Patch fields accepted by update() regardless of status.
OPEN_FIELDS = {
    "name",
    "description",
    "component",
    "target_metric",
    "start_date",
    "end_date",
    "significance",
    "winner",
}
# Patch fields that change allocation; draft only.
STRUCTURAL_FIELDS = {"variants"}


def _structure(experiment: Experiment) -> List[Tuple]:
    """Variant fields frozen once an experiment leaves draft (is_active excluded)."""
    return [(v.id, v.name, v.description, v.traffic, v.is_control) for v in experiment.variants]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _variants_from_patch(items: Any) -> List[Variant]:
    """Build replacement variants from a patch; counters always start at zero."""
    if not isinstance(items, list):
        raise ValidationError("variants must be a list")
    variants = []
    for i, item in enumerate(items):
        if isinstance(item, Variant):
            variant = copy.deepcopy(item)
        elif isinstance(item, dict):
            if not item.get("id"):
                raise ValidationError(f"Variant at position {i} is missing an id")
            variant = Variant.from_dict(
                {k: v for k, v in item.items() if k not in ("exposures", "conversions")}
            )
        else:
            raise ValidationError(f"Variant at position {i} must be an object")
        variant.exposures = 0
        variant.conversions = 0
        variants.append(variant)
    return variants


class ExperimentStore:
    """
    Keyed store of experiments.

    Args:
        base_dir: Directory for durable records. None keeps everything in memory.
    """

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir) if base_dir else None
        self._experiments: Dict[str, Experiment] = {}
        self._ledgers: Dict[str, ParticipantLedger] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        if self.base_dir is not None:
            self._load_all()

    # ------------------------------------------------------------------
    # persistence

    def _record_path(self, experiment_id: str) -> Path:
        return self.base_dir / experiment_id / RECORD_FILE

    def _events_path(self, experiment_id: str) -> Path:
        return self.base_dir / experiment_id / EVENTS_FILE

    def _load_all(self) -> None:
        if not self.base_dir.exists():
            return
        for path in sorted(self.base_dir.glob(f"*/{RECORD_FILE}")):
            with open(path) as f:
                record = json.load(f)
            experiment = Experiment.from_dict(record["experiment"])
            self._experiments[experiment.id] = experiment
            self._ledgers[experiment.id] = ParticipantLedger.from_dict(record.get("ledger", {}))
            self._locks[experiment.id] = threading.RLock()
            if self._replay_events(experiment.id):
                self._persist(experiment.id)
        logger.info(f"Loaded {len(self._experiments)} experiments from {self.base_dir}")

    def _replay_events(self, experiment_id: str) -> int:
        """Fold the event log into the loaded snapshot. Returns the number of events applied."""
        path = self._events_path(experiment_id)
        if not path.exists():
            return 0
        experiment = self._experiments[experiment_id]
        ledger = self._ledgers[experiment_id]
        applied = 0
        with open(path) as f:
            for line_no, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    # a crash mid-append leaves at most one partial trailing line
                    logger.warning(f"Ignoring unreadable line {line_no} of {path}")
                    break
                variant = experiment.variant(event.get("variant_id"))
                if variant is None:
                    logger.warning(f"Skipping event for unknown variant {event.get('variant_id')} in {path}")
                    continue
                visitor_id = event.get("visitor_id")
                if event.get("kind") == EXPOSURE:
                    if visitor_id is not None:
                        ledger.exposed[visitor_id] = variant.id
                    variant.exposures += 1
                else:
                    if visitor_id is not None:
                        ledger.converted.add(visitor_id)
                    variant.conversions += 1
                applied += 1
        logger.info(f"Replayed {applied} events for {experiment_id}")
        return applied

    def _persist(self, experiment_id: str) -> None:
        """Write a full snapshot and clear the event log it now covers."""
        if self.base_dir is None:
            return
        path = self._record_path(experiment_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "experiment": self._experiments[experiment_id].to_dict(),
            "ledger": self._ledgers[experiment_id].to_dict(),
        }
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(record, f)
        os.replace(tmp, path)
        events = self._events_path(experiment_id)
        if events.exists():
            events.unlink()

    def append_event(
        self,
        experiment_id: str,
        kind: str,
        variant_id: str,
        visitor_id: Optional[str] = None,
    ) -> None:
        """
        Log one counted exposure or conversion, if durable.

        Call while holding locked(); the in-memory counters must already
        reflect the event.
        """
        if self.base_dir is None:
            return
        with self._lock_for(experiment_id):
            path = self._events_path(experiment_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            line = {"kind": kind, "variant_id": variant_id, "visitor_id": visitor_id}
            with open(path, "a") as f:
                f.write(json.dumps(line) + "\n")

    # ------------------------------------------------------------------
    # locking

    def _lock_for(self, experiment_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(experiment_id)
        if lock is None:
            raise NotFoundError("experiment", experiment_id)
        return lock

    def _require(self, experiment_id: str) -> Experiment:
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise NotFoundError("experiment", experiment_id)
        return experiment

    @contextmanager
    def locked(self, experiment_id: str) -> Iterator[Tuple[Experiment, ParticipantLedger]]:
        """
        Hold the experiment's lock and yield its live record.

        For counter updates and consistent reads. Callers mutate counters and
        the ledger only, then call append_event(); structural edits go through
        transaction().
        """
        with self._lock_for(experiment_id):
            yield self._require(experiment_id), self._ledgers[experiment_id]

    @contextmanager
    def transaction(self, experiment_id: str) -> Iterator[Experiment]:
        """
        Yield a working copy of an experiment and commit it if the block succeeds.

        On commit the variant invariants are re-checked, and variant structure
        may only differ from the stored one while the stored status is draft.

        Raises:
            NotFoundError: unknown experiment
            ValidationError: invariant violated by the edit
            InvalidStateError: structural edit outside draft
        """
        with self._lock_for(experiment_id):
            current = self._require(experiment_id)
            working = copy.deepcopy(current)
            yield working
            if working.id != current.id:
                raise ValidationError("Experiment id is immutable", invariant="unique_ids")
            if current.status != ExperimentStatus.DRAFT and _structure(working) != _structure(current):
                raise InvalidStateError(
                    f"Experiment {experiment_id} is {current.status.value}; "
                    "variants can only be changed in draft"
                )
            validate_variants(working.variants)
            self._experiments[experiment_id] = working
            self._persist(experiment_id)

    # ------------------------------------------------------------------
    # contract

    def create(self, experiment: Experiment) -> Experiment:
        """
        Validate and store a new experiment in draft with zeroed counters.

        Raises:
            ValidationError: invariant violated, or id already taken
        """
        if not experiment.id or not _ID_PATTERN.match(experiment.id):
            raise ValidationError(f"Invalid experiment id {experiment.id!r}")
        validate_variants(experiment.variants)

        record = copy.deepcopy(experiment)
        record.status = ExperimentStatus.DRAFT
        record.significance = 0.0
        record.winner = None
        record.end_date = None
        record.start_date = parse_datetime(record.start_date)
        for v in record.variants:
            v.exposures = 0
            v.conversions = 0

        with self._registry_lock:
            if record.id in self._experiments:
                raise ValidationError(
                    f"Experiment id {record.id} already exists", invariant="unique_ids"
                )
            self._experiments[record.id] = record
            self._ledgers[record.id] = ParticipantLedger()
            self._locks[record.id] = threading.RLock()

        with self._lock_for(record.id):
            self._persist(record.id)
        logger.info(f"Created experiment {record.id} ({record.name}) with {len(record.variants)} variants")
        return copy.deepcopy(record)

    def update(self, experiment_id: str, patch: Dict[str, Any]) -> Experiment:
        """
        Apply a partial update.

        ``status`` is checked against the lifecycle table; ``variants`` only
        while draft. Nothing is applied if any part of the patch is rejected.
        """
        unknown = set(patch) - OPEN_FIELDS - STRUCTURAL_FIELDS - {"status"}
        if unknown:
            raise ValidationError(f"Unknown or immutable fields: {sorted(unknown)}")

        with self.transaction(experiment_id) as working:
            if "variants" in patch:
                if working.status != ExperimentStatus.DRAFT:
                    raise InvalidStateError(
                        f"Experiment {experiment_id} is {working.status.value}; "
                        "variants can only be changed in draft"
                    )
                working.variants = _variants_from_patch(patch["variants"])

            for key in ("name", "description", "component", "target_metric"):
                if key in patch:
                    setattr(working, key, str(patch[key]))
            for key in ("start_date", "end_date"):
                if key in patch:
                    setattr(working, key, parse_datetime(patch[key]))

            if "significance" in patch:
                significance = float(patch["significance"])
                if not 0.0 <= significance <= 1.0:
                    raise ValidationError(f"Significance must be within [0, 1], got {significance}")
                working.significance = significance
            if "winner" in patch:
                winner = patch["winner"]
                if winner is not None and working.variant(winner) is None:
                    raise NotFoundError("variant", winner)
                working.winner = winner

            if "status" in patch:
                try:
                    target = ExperimentStatus(patch["status"])
                except ValueError:
                    raise ValidationError(f"Unknown status {patch['status']!r}")
                if target != working.status:
                    apply_transition(working, event_for(working.status, target), _utcnow())

        return self.get(experiment_id)

    def get(self, experiment_id: str) -> Experiment:
        with self._lock_for(experiment_id):
            return copy.deepcopy(self._require(experiment_id))

    def list(self) -> List[Experiment]:
        with self._registry_lock:
            ids = list(self._experiments)
        out = []
        for experiment_id in ids:
            try:
                out.append(self.get(experiment_id))
            except NotFoundError:
                continue  # deleted concurrently
        return out

    def delete(self, experiment_id: str) -> None:
        """
        Remove an experiment, its counters and its ledger.

        Raises:
            InvalidStateError: the experiment is running
        """
        with self._lock_for(experiment_id):
            experiment = self._require(experiment_id)
            if experiment.status == ExperimentStatus.RUNNING:
                raise InvalidStateError(
                    f"Cannot delete running experiment {experiment_id}. Pause or complete it first."
                )
            with self._registry_lock:
                del self._experiments[experiment_id]
                del self._ledgers[experiment_id]
                del self._locks[experiment_id]
            if self.base_dir is not None:
                shutil.rmtree(self.base_dir / experiment_id, ignore_errors=True)
        logger.info(f"Deleted experiment {experiment_id}")
