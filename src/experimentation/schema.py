"""
Experiment data models for the experimentation engine.

Dataclass schemas for experiments, variants, the per-experiment participant
ledger, and the results view returned to the admin screen.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any, Set


class ExperimentStatus(str, Enum):
    """Experiment lifecycle status."""
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class LifecycleEvent(str, Enum):
    """Admin action that moves an experiment between statuses."""
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"


class RecommendedAction(str, Enum):
    """What the admin should do with an experiment given current results."""
    IMPLEMENT = "implement"
    KEEP_CONTROL = "keep_control"
    CONTINUE = "continue"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Datetime or ISO string -> timezone-aware datetime (naive values are taken as UTC)."""
    if value is None or value == "":
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Variant:
    """One arm of an experiment."""
    id: str
    name: str
    description: str = ""
    traffic: int = 0  # percentage 0-100
    is_control: bool = False
    is_active: bool = True
    exposures: int = 0  # unique visitors exposed
    conversions: int = 0  # at most one per visitor

    @property
    def conversion_rate(self) -> float:
        """Conversion rate in percent, derived from the counters."""
        return self.conversions / max(self.exposures, 1) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "traffic": self.traffic,
            "is_control": self.is_control,
            "is_active": self.is_active,
            "exposures": self.exposures,
            "conversions": self.conversions,
            "conversion_rate": self.conversion_rate,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Variant":
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            description=d.get("description", ""),
            traffic=d.get("traffic", 0),
            is_control=bool(d.get("is_control", False)),
            is_active=bool(d.get("is_active", True)),
            exposures=int(d.get("exposures", 0)),
            conversions=int(d.get("conversions", 0)),
        )


@dataclass
class Experiment:
    """An A/B experiment on one UI component."""
    id: str
    name: str
    variants: List[Variant]
    description: str = ""
    component: str = ""
    target_metric: str = "conversion_rate"
    status: ExperimentStatus = ExperimentStatus.DRAFT
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    significance: float = 0.0
    winner: Optional[str] = None

    @property
    def control(self) -> Optional[Variant]:
        return next((v for v in self.variants if v.is_control), None)

    def variant(self, variant_id: str) -> Optional[Variant]:
        return next((v for v in self.variants if v.id == variant_id), None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "component": self.component,
            "target_metric": self.target_metric,
            "status": self.status.value,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "significance": self.significance,
            "winner": self.winner,
            "variants": [v.to_dict() for v in self.variants],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Experiment":
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            description=d.get("description", ""),
            component=d.get("component", ""),
            target_metric=d.get("target_metric", "conversion_rate"),
            status=ExperimentStatus(d.get("status", ExperimentStatus.DRAFT.value)),
            start_date=parse_datetime(d.get("start_date")),
            end_date=parse_datetime(d.get("end_date")),
            significance=float(d.get("significance", 0.0)),
            winner=d.get("winner"),
            variants=[Variant.from_dict(v) for v in d.get("variants", [])],
        )


@dataclass
class ParticipantLedger:
    """Which visitors were exposed (and to what), and which converted."""
    exposed: Dict[str, str] = field(default_factory=dict)  # visitor_id -> variant_id
    converted: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {"exposed": dict(self.exposed), "converted": sorted(self.converted)}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ParticipantLedger":
        return cls(
            exposed=dict(d.get("exposed", {})),
            converted=set(d.get("converted", [])),
        )


@dataclass
class VariantResult:
    """Per-variant row of the results view."""
    variant_id: str
    variant_name: str
    is_control: bool
    is_active: bool
    traffic: int
    exposures: int
    conversions: int
    conversion_rate: float
    lift_pct: float = 0.0  # relative to control, percent
    confidence: Optional[float] = None  # None for control or undefined comparisons
    ci_low: float = 0.0
    ci_high: float = 0.0
    required_exposures: Optional[int] = None
    is_winner: bool = False


@dataclass
class ExperimentResults:
    """Complete results view for one experiment."""
    experiment_id: str
    experiment_name: str
    status: ExperimentStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration_days: int = 0
    variants: List[VariantResult] = field(default_factory=list)
    significance: float = 0.0
    winner: Optional[str] = None
    insufficient_data: bool = True
    has_statistical_significance: bool = False

    # SRM
    srm_passed: bool = True
    srm_p_value: Optional[float] = None

    # Recommendation
    recommended_action: RecommendedAction = RecommendedAction.CONTINUE
    recommendations: List[str] = field(default_factory=list)
    generated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "experiment_id": self.experiment_id,
            "experiment_name": self.experiment_name,
            "status": self.status.value,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "duration_days": self.duration_days,
            "significance": self.significance,
            "winner": self.winner,
            "insufficient_data": self.insufficient_data,
            "has_statistical_significance": self.has_statistical_significance,
            "srm_passed": self.srm_passed,
            "srm_p_value": self.srm_p_value,
            "recommended_action": self.recommended_action.value,
            "recommendations": list(self.recommendations),
            "generated_at": _iso(self.generated_at),
            "variants": [
                {
                    "variant_id": r.variant_id,
                    "variant_name": r.variant_name,
                    "is_control": r.is_control,
                    "is_active": r.is_active,
                    "traffic": r.traffic,
                    "exposures": r.exposures,
                    "conversions": r.conversions,
                    "conversion_rate": r.conversion_rate,
                    "lift_pct": r.lift_pct,
                    "confidence": r.confidence,
                    "ci_low": r.ci_low,
                    "ci_high": r.ci_high,
                    "required_exposures": r.required_exposures,
                    "is_winner": r.is_winner,
                }
                for r in self.variants
            ],
        }
