"""
Case study recommender.

Turns one student's observed outcome into proposed weight adjustments.
Each factor category has exactly one rule; a rule looks at the factor's
raw value and whether the student churned and may propose a fixed
increase or decrease. Suggested weights are re-normalized to sum to 1.0
and are never applied automatically.

Rules (only when the prediction was wrong and the student churned):
- first_session_satisfaction: value < 6.5 -> +0.05; value >= 7.5 -> -0.03
- sessions_completed: value >= 10 -> -0.03; value < 5 -> +0.03
- follow_up_booking_rate: value < 0.3 -> +0.05
- avg_session_score: value < 6.0 -> +0.04
- tutor_consistency: no rule
- student_engagement: value < 6.0 -> +0.04
"""

from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from churn_risk.config import FACTOR_CATEGORIES
from churn_risk.errors import NotFoundError
from churn_risk.results import ChurnRiskResult
from churn_risk.scorer import ChurnScorer

from .config import CalibrationConfig
from .weights import WeightManager

Outcome = Literal["churned", "active"]

MAX_WEIGHT = 1.0
MIN_WEIGHT = 0.05


@dataclass(frozen=True)
class Adjustment:
    """A proposed change to one factor's weight."""

    delta: float
    reason: str

    def apply(self, current: float) -> float:
        if self.delta >= 0:
            return min(MAX_WEIGHT, current + self.delta)
        return max(MIN_WEIGHT, current + self.delta)


RuleFn = Callable[[float, bool], Optional[Adjustment]]


@dataclass(frozen=True)
class FactorRule:
    """Adjustment rule for one factor category (apply=None means no rule)."""

    category: str
    apply: Optional[RuleFn]

    def evaluate(self, value: float, churned: bool) -> Optional[Adjustment]:
        if self.apply is None:
            return None
        return self.apply(value, churned)


def _first_session_rule(value: float, churned: bool) -> Optional[Adjustment]:
    if not churned:
        return None
    if value < 6.5:
        return Adjustment(
            0.05,
            f"First session score was low ({value:.1f}) and student churned. "
            "Increase weight to catch this pattern.",
        )
    if value >= 7.5:
        return Adjustment(
            -0.03,
            f"First session was good ({value:.1f}) but student still churned. "
            "Other factors more important.",
        )
    return None


def _sessions_completed_rule(value: float, churned: bool) -> Optional[Adjustment]:
    if not churned:
        return None
    if value >= 10:
        return Adjustment(
            -0.03,
            f"Student completed many sessions ({value:.0f}) but still churned. "
            "Session count alone not sufficient.",
        )
    if value < 5:
        return Adjustment(
            0.03,
            f"Student churned with few sessions ({value:.0f}). Early engagement critical.",
        )
    return None


def _follow_up_rule(value: float, churned: bool) -> Optional[Adjustment]:
    if churned and value < 0.3:
        return Adjustment(
            0.05,
            f"Very low follow-up booking rate ({value * 100:.0f}%) predicted churn. "
            "Increase weight.",
        )
    return None


def _avg_session_score_rule(value: float, churned: bool) -> Optional[Adjustment]:
    if churned and value < 6.0:
        return Adjustment(
            0.04,
            f"Low average session score ({value:.1f}) correlated with churn.",
        )
    return None


def _engagement_rule(value: float, churned: bool) -> Optional[Adjustment]:
    if churned and value < 6.0:
        return Adjustment(
            0.04,
            f"Low student engagement ({value:.1f}) was a churn indicator.",
        )
    return None


# Tutor consistency has no rule: switching tutors is not treated as a
# reliable enough signal to recalibrate from a single case.
ADJUSTMENT_RULES: dict[str, FactorRule] = {
    rule.category: rule
    for rule in (
        FactorRule("first_session_satisfaction", _first_session_rule),
        FactorRule("sessions_completed", _sessions_completed_rule),
        FactorRule("follow_up_booking_rate", _follow_up_rule),
        FactorRule("avg_session_score", _avg_session_score_rule),
        FactorRule("tutor_consistency", None),
        FactorRule("student_engagement", _engagement_rule),
    )
}

if set(ADJUSTMENT_RULES) != set(FACTOR_CATEGORIES):
    raise RuntimeError("Adjustment rules must cover exactly the factor categories")


@dataclass(frozen=True)
class FactorAdjustment:
    """One factor's recommended change."""

    factor: str
    current_weight: float
    suggested_weight: float
    reason: str


@dataclass
class CaseStudyRecommendation:
    """Recommended weights derived from one observed outcome."""

    student_id: str
    predicted_risk: ChurnRiskResult
    actual_outcome: Outcome
    was_correct: bool
    suggested_weights: dict[str, float]
    rationale: str
    factor_analysis: list[FactorAdjustment] = field(default_factory=list)
    survey_response: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "predicted_risk": self.predicted_risk.to_dict(),
            "actual_outcome": self.actual_outcome,
            "was_correct": self.was_correct,
            "suggested_weights": dict(self.suggested_weights),
            "rationale": self.rationale,
            "factor_analysis": [vars(fa).copy() for fa in self.factor_analysis],
            "survey_response": self.survey_response,
        }


class CaseStudyRecommender:
    """Proposes weight adjustments from a single student's outcome."""

    CORRECT_RATIONALE = (
        "The prediction was correct. Current weights appear well-calibrated "
        "for this type of case. No adjustments recommended."
    )

    def __init__(
        self,
        scorer: ChurnScorer,
        manager: WeightManager,
        calibration: Optional[CalibrationConfig] = None,
    ):
        self.scorer = scorer
        self.manager = manager
        self.calibration = calibration or CalibrationConfig()

    def recommend(
        self,
        student_id: str,
        actual_outcome: Outcome,
        survey_response: Optional[str] = None,
    ) -> CaseStudyRecommendation:
        """
        Analyze one case and recommend weight changes.

        Args:
            student_id: Student to analyze
            actual_outcome: "churned" or "active"
            survey_response: Optional exit-survey text kept with the case

        Raises:
            ValueError: If actual_outcome is not "churned" or "active"
            NotFoundError: If the student is unknown
        """
        if actual_outcome not in ("churned", "active"):
            raise ValueError(f"actual_outcome must be 'churned' or 'active' (got {actual_outcome!r})")

        current = self.manager.get_current_weights()
        risk = self.scorer.score_student(student_id, current)
        if risk is None:
            raise NotFoundError(f"Student {student_id} not found")

        actual_churn = actual_outcome == "churned"
        was_correct = self.scorer.config.predicts_churn(risk.score) == actual_churn

        recommendation = CaseStudyRecommendation(
            student_id=student_id,
            predicted_risk=risk,
            actual_outcome=actual_outcome,
            was_correct=was_correct,
            suggested_weights=dict(current),
            rationale=self.CORRECT_RATIONALE,
            survey_response=survey_response,
        )
        if was_correct:
            return recommendation

        suggested = dict(current)
        pending: list[tuple[str, float, str]] = []
        for factor in risk.factors:
            adjustment = ADJUSTMENT_RULES[factor.category].evaluate(factor.value, actual_churn)
            if adjustment is None:
                continue
            new_weight = adjustment.apply(factor.weight)
            if abs(new_weight - factor.weight) > self.calibration.adjustment_epsilon:
                suggested[factor.category] = new_weight
                pending.append((factor.category, factor.weight, adjustment.reason))

        total = sum(suggested.values())
        suggested = {category: weight / total for category, weight in suggested.items()}

        analysis = [
            FactorAdjustment(
                factor=category,
                current_weight=current_weight,
                suggested_weight=suggested[category],
                reason=reason,
            )
            for category, current_weight, reason in pending
        ]

        lines = ["The prediction was incorrect. Analyzing which factors need adjustment:", ""]
        if analysis:
            lines.extend(f"- {fa.reason}" for fa in analysis)
        else:
            lines.append("No significant adjustments recommended based on this case.")
        if survey_response:
            lines.extend(["", f"Student feedback: {survey_response}"])

        recommendation.suggested_weights = suggested
        recommendation.rationale = "\n".join(lines)
        recommendation.factor_analysis = analysis
        return recommendation
