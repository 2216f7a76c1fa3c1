"""Follow-up booking rate scoring component."""

import pandas as pd

from .base import BaseFactor


class FollowUpFactor(BaseFactor):
    """
    Score based on the fraction of sessions with a booked follow-up.

    Rebooking is the clearest behavioral sign of intent to continue.

    Normalization:
    - risk = 1 - booking_rate
    """

    name = "follow_up_booking_rate"

    @property
    def required_columns(self) -> list[str]:
        return ["STUDENT_ID", "FOLLOW_UP_BOOKED"]

    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        return (
            sessions["FOLLOW_UP_BOOKED"].astype(bool).astype(float)
            .groupby(sessions["STUDENT_ID"], sort=False)
            .mean()
        )

    def normalize(self, raw: pd.Series) -> pd.Series:
        return 1 - raw

    def is_positive(self, raw: pd.Series) -> pd.Series:
        return raw >= self.config.follow_up_positive_at
