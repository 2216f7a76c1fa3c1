"""
Main ChurnScorer class - aggregates weighted factors into a risk score.

Usage:
    from churn_risk import ChurnScorer, FactorCalculator

    scorer = ChurnScorer(FactorCalculator(session_repository))

    # One student
    risk = scorer.score_student("student-123", weights)
    print(risk.score, risk.level)

    # Many students
    result = scorer.score_population(student_ids, weights)
    print(result.df[["STUDENT_ID", "RISK_SCORE", "RISK_LEVEL"]])
    print(result.summary())
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

import pandas as pd

from .config import ScoringConfig, FACTOR_CATEGORIES, RISK_LEVELS
from .factors import FactorCalculator, sessions_to_frame
from .results import ChurnFactorDetail, ChurnRiskResult
from .schemas import SCORING_OUTPUT_SCHEMA


NO_SESSIONS_EXPLANATION = (
    "No completed sessions available for this student. "
    "Risk assessment is neutral (0.5) pending session data."
)


@dataclass
class ScoringResult:
    """
    Container for population scoring results with factor breakdown.

    Attributes:
        df: One row per student with contribution columns, RISK_SCORE, RISK_LEVEL
        component_columns: List of factor contribution column names
    """

    df: pd.DataFrame
    component_columns: list[str]

    def get_high_risk(self, min_level: str = "high") -> pd.DataFrame:
        """
        Get students at or above a risk level.

        Args:
            min_level: Minimum risk level ("low", "medium", "high")

        Returns:
            DataFrame filtered to students at or above the specified level
        """
        min_idx = RISK_LEVELS.index(min_level)
        return self.df[self.df["RISK_LEVEL"].isin(RISK_LEVELS[min_idx:])]

    def summary(self) -> pd.DataFrame:
        """
        Counts and average score by risk level.

        Returns:
            DataFrame indexed by RISK_LEVEL
        """
        return (
            self.df.groupby("RISK_LEVEL")
            .agg(
                count=("STUDENT_ID", "count"),
                avg_score=("RISK_SCORE", "mean"),
            )
            .round(3)
        )

    def component_breakdown(self) -> pd.DataFrame:
        """
        Show average contribution of each factor.

        Returns:
            DataFrame with factor statistics
        """
        stats = {}
        for col in self.component_columns:
            stats[col.removesuffix("_score")] = {
                "mean": self.df[col].mean(),
                "max": self.df[col].max(),
                "min": self.df[col].min(),
            }
        return pd.DataFrame(stats).T.round(3)


class ChurnScorer:
    """
    Weighted churn risk scoring engine.

    The risk score is the sum of weight * normalized_score over the six
    factors. It is nominally in [0, 1] and is not clamped.

    Risk levels:
    - low: score < 0.33
    - medium: 0.33 <= score < 0.66
    - high: score >= 0.66
    """

    def __init__(self, calculator: FactorCalculator, config: Optional[ScoringConfig] = None):
        """
        Initialize scorer.

        Args:
            calculator: FactorCalculator bound to a session repository
            config: ScoringConfig instance. Defaults to the calculator's config.
        """
        self.calculator = calculator
        self.config = config or calculator.config

    def is_neutral(self, factors: list[ChurnFactorDetail]) -> bool:
        """True when every factor carries the no-session neutral default."""
        neutral = self.config.neutral_score
        return bool(factors) and all(
            f.value == neutral and f.normalized_score == neutral for f in factors
        )

    def aggregate(self, factors: list[ChurnFactorDetail]) -> ChurnRiskResult:
        """
        Combine factor details into a ChurnRiskResult.

        Args:
            factors: Factor details from FactorCalculator

        Returns:
            ChurnRiskResult with score, level and explanation
        """
        score = sum(f.contribution_to_risk for f in factors)
        explanation = NO_SESSIONS_EXPLANATION if self.is_neutral(factors) else None
        return ChurnRiskResult(
            score=score,
            level=self.config.get_risk_level(score),
            factors=list(factors),
            explanation=explanation,
        )

    def score_student(
        self,
        student_id: str,
        weights: Mapping[str, float],
    ) -> Optional[ChurnRiskResult]:
        """
        Calculate churn risk for one student.

        Returns:
            ChurnRiskResult, or None if the student is unknown
        """
        factors = self.calculator.calculate(student_id, weights)
        if factors is None:
            return None
        return self.aggregate(factors)

    def score_population(
        self,
        student_ids: Iterable[str],
        weights: Mapping[str, float],
    ) -> ScoringResult:
        """
        Score many students at once.

        Unknown students are skipped. Students without sessions receive
        the neutral contribution for every factor.

        Returns:
            ScoringResult with one row per known student
        """
        component_cols = [f"{category}_score" for category in FACTOR_CATEGORIES]
        neutral = self.config.neutral_score

        session_lists = []
        rows = []
        for student_id in dict.fromkeys(student_ids):
            sessions = self.calculator.sessions.list_completed_sessions(student_id)
            if sessions is None:
                continue
            if sessions:
                session_lists.extend(sessions)
                rows.append({"STUDENT_ID": student_id})
            else:
                rows.append({
                    "STUDENT_ID": student_id,
                    **{col: weights[cat] * neutral
                       for col, cat in zip(component_cols, FACTOR_CATEGORIES)},
                })

        result = pd.DataFrame(rows, columns=["STUDENT_ID", *component_cols])

        if session_lists:
            scored = self.calculator.score_frame(sessions_to_frame(session_lists))
            for col, category in zip(component_cols, FACTOR_CATEGORIES):
                contributions = scored[category]["normalized_score"] * weights[category]
                mapped = result["STUDENT_ID"].map(contributions)
                result[col] = mapped.fillna(result[col]).astype(float)

        result[component_cols] = result[component_cols].astype(float)
        result["RISK_SCORE"] = result[component_cols].sum(axis=1).astype(float)
        result["RISK_LEVEL"] = result["RISK_SCORE"].apply(self.config.get_risk_level).astype(str)
        result["STUDENT_ID"] = result["STUDENT_ID"].astype(str)

        SCORING_OUTPUT_SCHEMA.validate(result)
        return ScoringResult(df=result, component_columns=component_cols)
