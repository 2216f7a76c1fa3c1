"""First session satisfaction scoring component."""

import numpy as np
import pandas as pd

from .base import BaseFactor


class FirstSessionFactor(BaseFactor):
    """
    Score based on the overall score of the student's first session.

    A disappointing first session is the strongest early churn signal,
    so scores below the amplification threshold are penalized harder.

    Normalization:
    - risk = 1 - score / 10
    - score < 6.5: risk * 1.5 (capped at 1.0)
    - missing score: treated as 5.0
    """

    name = "first_session_satisfaction"

    @property
    def required_columns(self) -> list[str]:
        return ["STUDENT_ID", "OVERALL_SESSION_SCORE"]

    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        first = sessions.drop_duplicates("STUDENT_ID", keep="first")
        return (
            first.set_index("STUDENT_ID")["OVERALL_SESSION_SCORE"]
            .astype(float)
            .fillna(self.config.missing_score_default)
        )

    def normalize(self, raw: pd.Series) -> pd.Series:
        risk = 1 - raw / self.config.score_scale
        amplified = np.minimum(1.0, risk * self.config.first_session_amplifier)
        return pd.Series(
            np.where(raw < self.config.first_session_amplify_below, amplified, risk),
            index=raw.index,
        )

    def is_positive(self, raw: pd.Series) -> pd.Series:
        return raw >= self.config.first_session_positive_at
