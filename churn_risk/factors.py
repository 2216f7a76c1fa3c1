"""
Factor calculation from a student's completed session history.

Usage:
    calculator = FactorCalculator(session_repository)
    factors = calculator.calculate("student-123", weights)
"""

from typing import Mapping, Optional

import pandas as pd

from .components import (
    BaseFactor,
    FirstSessionFactor,
    SessionCountFactor,
    FollowUpFactor,
    SessionScoreFactor,
    TutorConsistencyFactor,
    EngagementFactor,
)
from .config import ScoringConfig, DEFAULT_CONFIG, FACTOR_CATEGORIES
from .records import SessionRecord, SessionRepository
from .results import ChurnFactorDetail


SESSION_COLUMNS = [
    "SESSION_ID",
    "STUDENT_ID",
    "TUTOR_ID",
    "SCHEDULED_START",
    "OVERALL_SESSION_SCORE",
    "FOLLOW_UP_BOOKED",
    "STUDENT_ENGAGEMENT_SCORE",
]


def sessions_to_frame(sessions: list[SessionRecord]) -> pd.DataFrame:
    """Convert session records to a frame sorted by student and start time."""
    df = pd.DataFrame(
        [
            {
                "SESSION_ID": s.session_id,
                "STUDENT_ID": s.student_id,
                "TUTOR_ID": s.tutor_id,
                "SCHEDULED_START": s.scheduled_start,
                "OVERALL_SESSION_SCORE": s.overall_score,
                "FOLLOW_UP_BOOKED": bool(s.follow_up_booked),
                "STUDENT_ENGAGEMENT_SCORE": s.engagement_score,
            }
            for s in sessions
        ],
        columns=SESSION_COLUMNS,
    )
    df["OVERALL_SESSION_SCORE"] = df["OVERALL_SESSION_SCORE"].astype(float)
    df["STUDENT_ENGAGEMENT_SCORE"] = df["STUDENT_ENGAGEMENT_SCORE"].astype(float)
    return df.sort_values(["STUDENT_ID", "SCHEDULED_START"], kind="stable")


class FactorCalculator:
    """
    Computes the six churn factors for a student.

    Factors (in order):
    - first_session_satisfaction
    - sessions_completed
    - follow_up_booking_rate
    - avg_session_score
    - tutor_consistency
    - student_engagement

    Missing optional sub-metrics degrade to neutral defaults; nothing
    here raises for incomplete session data.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        config: Optional[ScoringConfig] = None,
    ):
        """
        Initialize calculator.

        Args:
            sessions: Repository of completed sessions
            config: ScoringConfig instance. Uses DEFAULT_CONFIG if None.
        """
        self.sessions = sessions
        self.config = config or DEFAULT_CONFIG
        self._init_components()

    def _init_components(self) -> None:
        """Initialize all factor components, keyed by category."""
        components: list[BaseFactor] = [
            FirstSessionFactor(self.config),
            SessionCountFactor(self.config),
            FollowUpFactor(self.config),
            SessionScoreFactor(self.config),
            TutorConsistencyFactor(self.config),
            EngagementFactor(self.config),
        ]
        self.components = {c.name: c for c in components}

    def neutral_factors(self, weights: Mapping[str, float]) -> list[ChurnFactorDetail]:
        """Factors for a student without completed sessions."""
        neutral = self.config.neutral_score
        return [
            ChurnFactorDetail(
                category=category,
                weight=weights[category],
                value=neutral,
                normalized_score=neutral,
                impact="negative",
                contribution_to_risk=weights[category] * neutral,
            )
            for category in FACTOR_CATEGORIES
        ]

    def score_frame(self, sessions: pd.DataFrame) -> dict[str, pd.DataFrame]:
        """
        Score every component over a (multi-student) session frame.

        Returns:
            Mapping of category to DataFrame indexed by STUDENT_ID
            (value, normalized_score, impact)
        """
        students = pd.unique(sessions["STUDENT_ID"])
        return {
            category: self.components[category].score(sessions).reindex(students)
            for category in FACTOR_CATEGORIES
        }

    def from_sessions(
        self,
        sessions: list[SessionRecord],
        weights: Mapping[str, float],
    ) -> list[ChurnFactorDetail]:
        """Compute factor details from one student's completed sessions."""
        if not sessions:
            return self.neutral_factors(weights)

        frame = sessions_to_frame(sessions)
        student_id = frame["STUDENT_ID"].iloc[0]
        scored = self.score_frame(frame)
        return [
            self.components[category].detail(
                scored[category].loc[student_id], weights[category]
            )
            for category in FACTOR_CATEGORIES
        ]

    def calculate(
        self,
        student_id: str,
        weights: Mapping[str, float],
    ) -> Optional[list[ChurnFactorDetail]]:
        """
        Calculate churn factors for a student.

        Args:
            student_id: Student identifier
            weights: Weight per factor category

        Returns:
            Six ChurnFactorDetail entries, or None if the student is unknown
        """
        sessions = self.sessions.list_completed_sessions(student_id)
        if sessions is None:
            return None
        return self.from_sessions(sessions, weights)
