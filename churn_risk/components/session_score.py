"""Average session score scoring component."""

import pandas as pd

from .base import BaseFactor


class SessionScoreFactor(BaseFactor):
    """
    Score based on the mean overall session score.

    Unscored sessions count as 5.0 rather than being dropped.

    Normalization:
    - risk = 1 - mean_score / 10
    """

    name = "avg_session_score"

    @property
    def required_columns(self) -> list[str]:
        return ["STUDENT_ID", "OVERALL_SESSION_SCORE"]

    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        return (
            sessions["OVERALL_SESSION_SCORE"].astype(float)
            .fillna(self.config.missing_score_default)
            .groupby(sessions["STUDENT_ID"], sort=False)
            .mean()
        )

    def normalize(self, raw: pd.Series) -> pd.Series:
        return 1 - raw / self.config.score_scale

    def is_positive(self, raw: pd.Series) -> pd.Series:
        return raw >= self.config.avg_score_positive_at
