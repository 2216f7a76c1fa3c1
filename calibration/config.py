"""
Calibration configuration for the churn risk model.

Defines the CalibrationConfig dataclass for YAML-driven runs.
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class CalibrationConfig:
    """
    Configuration for accuracy evaluation and weight updates.

    Load from YAML:
        config = CalibrationConfig.from_yaml("configs/calibration.yaml")

    Create programmatically:
        config = CalibrationConfig(eligibility_days=60, max_workers=8)
    """

    # Eligibility for retroactive accuracy
    # Active students only count once enrolled this long
    eligibility_days: int = 90
    min_completed_sessions: int = 3

    # Parallel evaluation
    max_workers: int = 4
    chunk_size: int = 50
    timeout_seconds: Optional[float] = None

    # Case study rules only record changes larger than this
    adjustment_epsilon: float = 0.001

    # Learning event summaries only mention changes larger than this
    summary_epsilon: float = 0.01

    # Storage and outputs (relative to the working directory)
    database_url: str = "sqlite:///churn_weights.db"
    logs_dir: str = "logs"
    artifacts_dir: str = "artifacts"

    @classmethod
    def from_yaml(cls, path: Path | str) -> "CalibrationConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)
