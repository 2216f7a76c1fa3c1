"""
Student Churn Risk Package

A transparent, weighted multi-factor scoring model for predicting
tutoring student churn from session-quality signals.
"""

from .config import ScoringConfig, DEFAULT_CONFIG, DEFAULT_WEIGHTS, FACTOR_CATEGORIES
from .factors import FactorCalculator
from .records import (
    SessionRecord,
    StudentRecord,
    FrameSessionRepository,
    FrameStudentRepository,
)
from .results import ChurnFactorDetail, ChurnRiskResult
from .sample import generate_sample_data
from .scorer import ChurnScorer, ScoringResult

__all__ = [
    "ChurnScorer",
    "ScoringResult",
    "ScoringConfig",
    "DEFAULT_CONFIG",
    "DEFAULT_WEIGHTS",
    "FACTOR_CATEGORIES",
    "FactorCalculator",
    "SessionRecord",
    "StudentRecord",
    "FrameSessionRepository",
    "FrameStudentRepository",
    "ChurnFactorDetail",
    "ChurnRiskResult",
    "generate_sample_data",
]
__version__ = "1.0.0"
