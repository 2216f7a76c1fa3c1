"""Value objects produced by a churn risk computation."""

from dataclasses import dataclass, field, asdict
from typing import Literal, Optional

Impact = Literal["positive", "negative"]


@dataclass(frozen=True)
class ChurnFactorDetail:
    """
    One factor's contribution to a student's churn risk.

    Attributes:
        category: Factor category name
        weight: Weight used for this computation
        value: Raw observed value before normalization
        normalized_score: Risk contribution on a 0-1 scale
        impact: "positive" when the raw value is healthy for retention
        contribution_to_risk: weight * normalized_score
    """

    category: str
    weight: float
    value: float
    normalized_score: float
    impact: Impact
    contribution_to_risk: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ChurnRiskResult:
    """Overall churn risk for one student with factor breakdown."""

    score: float
    level: str
    factors: list[ChurnFactorDetail] = field(default_factory=list)
    explanation: Optional[str] = None

    def get_factor(self, category: str) -> Optional[ChurnFactorDetail]:
        for factor in self.factors:
            if factor.category == category:
                return factor
        return None

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "level": self.level,
            "factors": [f.to_dict() for f in self.factors],
            "explanation": self.explanation,
        }
