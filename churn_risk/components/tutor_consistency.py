"""Tutor consistency scoring component."""

import numpy as np
import pandas as pd

from .base import BaseFactor


class TutorConsistencyFactor(BaseFactor):
    """
    Score based on how many distinct tutors the student has seen.

    Frequent tutor switches break rapport. Up to two tutors is treated
    as consistent.

    Normalization:
    - consistency = 1.0 if tutors <= 2
    - otherwise max(0, 1 - (tutors - 2) * 0.15)
    - risk = 1 - consistency
    """

    name = "tutor_consistency"

    @property
    def required_columns(self) -> list[str]:
        return ["STUDENT_ID", "TUTOR_ID"]

    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        return sessions.groupby("STUDENT_ID", sort=False)["TUTOR_ID"].nunique()

    def normalize(self, raw: pd.Series) -> pd.Series:
        limit = self.config.consistent_tutor_limit
        penalized = np.maximum(0.0, 1 - (raw - limit) * self.config.tutor_switch_penalty)
        consistency = np.where(raw <= limit, 1.0, penalized)
        return pd.Series(1 - consistency, index=raw.index)

    def is_positive(self, raw: pd.Series) -> pd.Series:
        return raw <= self.config.consistent_tutor_limit
