"""Sessions completed scoring component."""

import numpy as np
import pandas as pd

from .base import BaseFactor


class SessionCountFactor(BaseFactor):
    """
    Score based on the number of completed sessions.

    Students who keep showing up are invested; risk falls linearly
    until the saturation point.

    Normalization:
    - risk = 1 - min(count / 20, 1.0)
    """

    name = "sessions_completed"

    @property
    def required_columns(self) -> list[str]:
        return ["STUDENT_ID"]

    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        return sessions.groupby("STUDENT_ID", sort=False).size()

    def normalize(self, raw: pd.Series) -> pd.Series:
        return 1 - np.minimum(raw / self.config.sessions_saturation, 1.0)

    def is_positive(self, raw: pd.Series) -> pd.Series:
        return raw >= self.config.sessions_positive_at
