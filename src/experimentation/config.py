"""Engine configuration."""

from dataclasses import dataclass
from typing import Optional

DEFAULT_ARTIFACTS_DIR = "artifacts/experiments"
DEFAULT_MIN_EXPOSURES = 100
DEFAULT_CONFIDENCE_THRESHOLD = 0.95


@dataclass
class EngineConfig:
    """Tunables for the experiment engine."""
    min_exposures: int = DEFAULT_MIN_EXPOSURES  # per variant, before a winner can be called
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    data_dir: Optional[str] = None  # None keeps experiments in memory only
    artifacts_dir: str = DEFAULT_ARTIFACTS_DIR
    mde_relative: float = 0.10  # relative lift the power calculation targets
    power: float = 0.8
    srm_alpha: float = 0.01
