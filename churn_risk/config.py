"""
Scoring configuration for the student churn risk model.

All factor thresholds, default weights and risk cut-offs are defined here
for easy tuning. Weights are always fractions that sum to 1.0; each
factor contributes weight * normalized_score to the overall risk.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List

import yaml


FACTOR_CATEGORIES: List[str] = [
    "first_session_satisfaction",
    "sessions_completed",
    "follow_up_booking_rate",
    "avg_session_score",
    "tutor_consistency",
    "student_engagement",
]

RISK_LEVELS = ["low", "medium", "high"]


@dataclass
class ScoringConfig:
    """
    Configuration for all churn factors.

    Default weights (sum 1.0):
    - First Session Satisfaction: 0.25
    - Sessions Completed: 0.15
    - Follow-up Booking Rate: 0.20
    - Avg Session Score: 0.15
    - Tutor Consistency: 0.10
    - Student Engagement: 0.15
    """

    default_weights: Dict[str, float] = field(default_factory=lambda: {
        "first_session_satisfaction": 0.25,
        "sessions_completed": 0.15,
        "follow_up_booking_rate": 0.20,
        "avg_session_score": 0.15,
        "tutor_consistency": 0.10,
        "student_engagement": 0.15,
    })

    # Used for every factor when a student has no completed sessions
    neutral_score: float = 0.5

    # Session scores and engagement are on a 0-10 scale
    score_scale: float = 10.0
    missing_score_default: float = 5.0

    # === First Session Satisfaction ===
    # A poor first session is the strongest early churn signal
    first_session_amplify_below: float = 6.5
    first_session_amplifier: float = 1.5
    first_session_positive_at: float = 7.0

    # === Sessions Completed ===
    sessions_saturation: int = 20
    sessions_positive_at: int = 5

    # === Follow-up Booking Rate ===
    follow_up_positive_at: float = 0.6

    # === Avg Session Score ===
    avg_score_positive_at: float = 7.0

    # === Tutor Consistency ===
    # <=2 tutors is consistent; each extra tutor costs 0.15
    consistent_tutor_limit: int = 2
    tutor_switch_penalty: float = 0.15

    # === Student Engagement ===
    engagement_positive_at: float = 7.0

    # === Risk Level Categorization ===
    # score < 0.33 low, < 0.66 medium, otherwise high
    medium_risk_at: float = 0.33
    high_risk_at: float = 0.66

    # Predicted churn is score > 0.6 (accuracy evaluation and case studies)
    churn_threshold: float = 0.6

    # Weights must sum to 1.0 within this tolerance
    weight_sum_tolerance: float = 0.001

    version: str = "1.0.0"

    def get_risk_level(self, score: float) -> str:
        """Map numeric score to risk level."""
        if score < self.medium_risk_at:
            return "low"
        if score < self.high_risk_at:
            return "medium"
        return "high"

    def predicts_churn(self, score: float) -> bool:
        """Whether a risk score counts as a churn prediction."""
        return score > self.churn_threshold

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ScoringConfig":
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


# Default configuration instance
DEFAULT_CONFIG = ScoringConfig()
DEFAULT_WEIGHTS: Dict[str, float] = dict(DEFAULT_CONFIG.default_weights)
