"""Student engagement scoring component."""

import pandas as pd

from .base import BaseFactor


class EngagementFactor(BaseFactor):
    """
    Score based on the mean engagement sub-score from session audio metrics.

    Sessions without the sub-metric are excluded from the mean; a student
    with no engagement data at all gets the neutral 5.0.

    Normalization:
    - risk = 1 - mean_engagement / 10
    """

    name = "student_engagement"

    @property
    def required_columns(self) -> list[str]:
        return ["STUDENT_ID", "STUDENT_ENGAGEMENT_SCORE"]

    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        return (
            sessions["STUDENT_ENGAGEMENT_SCORE"].astype(float)
            .groupby(sessions["STUDENT_ID"], sort=False)
            .mean()
            .fillna(self.config.missing_score_default)
        )

    def normalize(self, raw: pd.Series) -> pd.Series:
        return 1 - raw / self.config.score_scale

    def is_positive(self, raw: pd.Series) -> pd.Series:
        return raw >= self.config.engagement_positive_at
