"""
Self-calibration for the churn risk model.

Usage:
    from calibration import CalibrationService, InMemoryWeightStore

    service = CalibrationService.build(sessions, students, InMemoryWeightStore())

    # Preview, then apply
    preview = service.simulate_weight_change(proposed)
    result = service.update_weights(proposed, "admin-1", "Emphasize follow-ups")

    # Learn from one student's outcome
    case = service.create_case_study("student-123")

CLI:
    python -m calibration.run evaluate --students students.csv --sessions sessions.csv
"""

from .config import CalibrationConfig
from .store import WeightHistoryEntry, WeightStore, InMemoryWeightStore
from .sql_store import SqlWeightStore
from .weights import WeightManager, WeightValidationResult, VersionAudit, validate_weights
from .evaluator import AccuracyEvaluator, AccuracyMetrics, ConfusionCounts, EvaluationResult
from .transaction import WeightUpdateTransaction, WeightUpdateResult, CaseStudyRef
from .recommender import (
    ADJUSTMENT_RULES,
    CaseStudyRecommender,
    CaseStudyRecommendation,
    FactorAdjustment,
)
from .service import ActionResult, CalibrationService
from .logger import CalibrationLogger
from .artifacts import ArtifactManager

__all__ = [
    "CalibrationConfig",
    "WeightHistoryEntry",
    "WeightStore",
    "InMemoryWeightStore",
    "SqlWeightStore",
    "WeightManager",
    "WeightValidationResult",
    "VersionAudit",
    "validate_weights",
    "AccuracyEvaluator",
    "AccuracyMetrics",
    "ConfusionCounts",
    "EvaluationResult",
    "WeightUpdateTransaction",
    "WeightUpdateResult",
    "CaseStudyRef",
    "ADJUSTMENT_RULES",
    "CaseStudyRecommender",
    "CaseStudyRecommendation",
    "FactorAdjustment",
    "ActionResult",
    "CalibrationService",
    "CalibrationLogger",
    "ArtifactManager",
]
