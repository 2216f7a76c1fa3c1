"""Base class for churn factor components."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from ..results import ChurnFactorDetail

if TYPE_CHECKING:
    from ..config import ScoringConfig


class BaseFactor(ABC):
    """
    Abstract base class for churn factors.

    Each factor turns a student's completed session history into a raw
    value and a normalized 0-1 risk score. Factors operate on a session
    DataFrame that may hold many students and return one row per
    STUDENT_ID, using vectorized pandas operations.
    """

    name: str = "base"

    def __init__(self, config: "ScoringConfig"):
        """
        Initialize factor with configuration.

        Args:
            config: ScoringConfig instance with thresholds
        """
        self.config = config

    @property
    @abstractmethod
    def required_columns(self) -> list[str]:
        """List of session columns required by this factor."""
        pass

    @abstractmethod
    def raw_values(self, sessions: pd.DataFrame) -> pd.Series:
        """
        Raw observed value per student.

        Args:
            sessions: Completed sessions sorted by STUDENT_ID, SCHEDULED_START

        Returns:
            Series of floats indexed by STUDENT_ID
        """
        pass

    @abstractmethod
    def normalize(self, raw: pd.Series) -> pd.Series:
        """Convert raw values to a 0-1 risk score (1 = highest risk)."""
        pass

    @abstractmethod
    def is_positive(self, raw: pd.Series) -> pd.Series:
        """Boolean mask of raw values that are healthy for retention."""
        pass

    def validate(self, df: pd.DataFrame) -> None:
        """Validate required columns exist."""
        missing = set(self.required_columns) - set(df.columns)
        if missing:
            raise ValueError(
                f"{self.__class__.__name__} requires columns: {missing}"
            )

    def score(self, sessions: pd.DataFrame) -> pd.DataFrame:
        """
        Calculate raw value, normalized score and impact for all students.

        Returns:
            DataFrame indexed by STUDENT_ID with columns
            value, normalized_score, impact
        """
        self.validate(sessions)
        raw = self.raw_values(sessions).astype(float)
        return pd.DataFrame(
            {
                "value": raw,
                "normalized_score": self.normalize(raw).astype(float),
                "impact": np.where(self.is_positive(raw), "positive", "negative"),
            },
            index=raw.index,
        )

    def detail(self, row: pd.Series, weight: float) -> ChurnFactorDetail:
        """Build the factor detail for one student's scored row."""
        normalized = float(row["normalized_score"])
        return ChurnFactorDetail(
            category=self.name,
            weight=weight,
            value=float(row["value"]),
            normalized_score=normalized,
            impact=row["impact"],
            contribution_to_risk=weight * normalized,
        )
