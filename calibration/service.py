"""
Calibration service facade.

Every operation returns an ActionResult instead of raising, so callers
(the CLI, a web handler) get either data or an error message.

Usage:
    service = CalibrationService.build(sessions, students, store)
    result = service.simulate_weight_change(proposed)
    if result.success:
        print(result.data.metrics.summary())
    else:
        print(result.error)
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Generic, Mapping, Optional, TypeVar

from churn_risk.config import ScoringConfig, DEFAULT_CONFIG
from churn_risk.factors import FactorCalculator
from churn_risk.records import SessionRepository, StudentRepository
from churn_risk.results import ChurnRiskResult
from churn_risk.scorer import ChurnScorer

from .config import CalibrationConfig
from .evaluator import AccuracyEvaluator, AccuracyMetrics, EvaluationResult
from .logger import CalibrationLogger
from .recommender import CaseStudyRecommendation, CaseStudyRecommender
from .store import WeightHistoryEntry, WeightStore
from .transaction import CaseStudyRef, WeightUpdateResult, WeightUpdateTransaction
from .weights import VersionAudit, WeightManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ActionResult(Generic[T]):
    """Either data (success) or an error message (failure)."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "ActionResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ActionResult[T]":
        return cls(success=False, error=error)


@dataclass(frozen=True)
class AffectedStudent:
    """A student whose churn prediction changes under proposed weights."""

    student_id: str
    student_name: Optional[str]
    old_prediction: str  # churn | no_churn
    new_prediction: str
    actual_outcome: str  # churned | active
    old_risk_score: float
    new_risk_score: float
    is_improvement: bool


@dataclass
class SimulationResult:
    """Accuracy of proposed weights, compared with the current ones."""

    metrics: AccuracyMetrics
    current_metrics: AccuracyMetrics
    affected_students: list[AffectedStudent] = field(default_factory=list)

    @property
    def accuracy_delta(self) -> float:
        return self.metrics.accuracy - self.current_metrics.accuracy


@dataclass(frozen=True)
class LearningEvent:
    """A weight change driven by a case study, re-scored under the old weights."""

    id: str
    version: int
    student_id: str
    student_name: Optional[str]
    churn_date: Optional[date]
    predicted_risk: float
    predicted_level: str
    actual_outcome: str
    was_prediction_correct: bool
    survey_response: Optional[str]
    what_system_learned: str
    weight_change_summary: str
    created_at: datetime


@dataclass(frozen=True)
class ChurnedStudent:
    """A churned student with their risk under the current weights."""

    student_id: str
    name: Optional[str]
    enrolled_since: date
    churned_date: Optional[date]
    churn_survey_response: Optional[str]
    predicted_risk: Optional[ChurnRiskResult]
    sessions_completed: int
    churn_reasons: list[str] = field(default_factory=list)


def _prediction_label(predicted_churn: bool) -> str:
    return "churn" if predicted_churn else "no_churn"


def summarize_weight_changes(
    old_weights: Mapping[str, float],
    new_weights: Mapping[str, float],
    epsilon: float = 0.01,
) -> str:
    """Describe weight changes larger than epsilon, e.g. "sessions completed increased by 3.0%"."""
    changes = []
    for factor, old in old_weights.items():
        diff = new_weights.get(factor, old) - old
        if abs(diff) > epsilon:
            direction = "increased" if diff > 0 else "decreased"
            changes.append(f"{factor.replace('_', ' ')} {direction} by {abs(diff) * 100:.1f}%")
    return "; ".join(changes)


class CalibrationService:
    """Structured-result facade over scoring, evaluation and weight updates."""

    def __init__(
        self,
        scorer: ChurnScorer,
        students: StudentRepository,
        manager: WeightManager,
        evaluator: AccuracyEvaluator,
        transaction: WeightUpdateTransaction,
        recommender: CaseStudyRecommender,
        calibration: Optional[CalibrationConfig] = None,
    ):
        self.scorer = scorer
        self.students = students
        self.manager = manager
        self.evaluator = evaluator
        self.transaction = transaction
        self.recommender = recommender
        self.calibration = calibration or CalibrationConfig()

    @classmethod
    def build(
        cls,
        sessions: SessionRepository,
        students: StudentRepository,
        store: WeightStore,
        calibration: Optional[CalibrationConfig] = None,
        config: Optional[ScoringConfig] = None,
        audit_log: Optional[CalibrationLogger] = None,
    ) -> "CalibrationService":
        """Wire every component from repositories and a weight store."""
        calibration = calibration or CalibrationConfig()
        config = config or DEFAULT_CONFIG
        scorer = ChurnScorer(FactorCalculator(sessions, config), config)
        manager = WeightManager(store, config)
        evaluator = AccuracyEvaluator(scorer, students, calibration)
        return cls(
            scorer=scorer,
            students=students,
            manager=manager,
            evaluator=evaluator,
            transaction=WeightUpdateTransaction(manager, evaluator, audit_log),
            recommender=CaseStudyRecommender(scorer, manager, calibration),
            calibration=calibration,
        )

    # ------------------------------------------------------------------
    # Weight updates
    # ------------------------------------------------------------------

    def update_weights(
        self,
        new_weights: Mapping[str, float],
        actor_id: str,
        change_reason: str,
        as_of: Optional[date] = None,
    ) -> ActionResult[WeightUpdateResult]:
        """Validate and apply a new weight version."""
        try:
            return ActionResult.ok(
                self.transaction.update(new_weights, actor_id, change_reason, as_of=as_of)
            )
        except Exception as e:
            logger.error("Weight update by %s failed: %s", actor_id, e)
            return ActionResult.fail(str(e) or "Failed to update weights")

    def apply_case_study_weights(
        self,
        student_id: str,
        accepted_weights: Mapping[str, float],
        actor_id: str,
        change_reason: str,
        session_id: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> ActionResult[WeightUpdateResult]:
        """Apply weights accepted from a case study, linked to that student."""
        try:
            result = self.transaction.update(
                accepted_weights,
                actor_id,
                change_reason,
                case_study=CaseStudyRef(student_id=student_id, session_id=session_id),
                as_of=as_of,
            )
            return ActionResult.ok(result)
        except Exception as e:
            logger.error("Applying case study weights for %s failed: %s", student_id, e)
            return ActionResult.fail(str(e) or "Failed to apply case study weights")

    def simulate_weight_change(
        self,
        proposed_weights: Mapping[str, float],
        as_of: Optional[date] = None,
    ) -> ActionResult[SimulationResult]:
        """
        Preview the accuracy of proposed weights without saving them.

        Affected students are those whose churn prediction flips; a flip is
        an improvement when the new prediction matches the actual outcome.
        """
        validation = self.manager.validate(proposed_weights)
        if not validation.is_valid:
            return ActionResult.fail(f"Weight validation failed: {', '.join(validation.errors)}")

        try:
            current = self.evaluator.evaluate_with_predictions(
                self.manager.get_current_weights(), as_of
            )
            proposed = self.evaluator.evaluate_with_predictions(proposed_weights, as_of)
        except Exception as e:
            logger.error("Weight change simulation failed: %s", e)
            return ActionResult.fail(str(e) or "Failed to simulate weight change")

        merged = current.predictions.merge(
            proposed.predictions, on="STUDENT_ID", suffixes=("_OLD", "_NEW")
        )
        flipped = merged[merged["PREDICTED_CHURN_OLD"] != merged["PREDICTED_CHURN_NEW"]]

        affected = []
        for row in flipped.itertuples(index=False):
            student = self.students.get_student(row.STUDENT_ID)
            affected.append(AffectedStudent(
                student_id=row.STUDENT_ID,
                student_name=student.name if student else None,
                old_prediction=_prediction_label(bool(row.PREDICTED_CHURN_OLD)),
                new_prediction=_prediction_label(bool(row.PREDICTED_CHURN_NEW)),
                actual_outcome="churned" if row.IS_CHURN_OLD else "active",
                old_risk_score=float(row.RISK_SCORE_OLD),
                new_risk_score=float(row.RISK_SCORE_NEW),
                is_improvement=bool(row.PREDICTED_CHURN_NEW) == bool(row.IS_CHURN_OLD),
            ))

        return ActionResult.ok(SimulationResult(
            metrics=proposed.metrics,
            current_metrics=current.metrics,
            affected_students=affected,
        ))

    # ------------------------------------------------------------------
    # Case studies
    # ------------------------------------------------------------------

    def create_case_study(
        self,
        student_id: str,
        survey_response: Optional[str] = None,
    ) -> ActionResult[CaseStudyRecommendation]:
        """Analyze a student's case using their recorded status as the outcome."""
        try:
            student = self.students.get_student(student_id)
            if student is None:
                return ActionResult.fail("Student not found")
            outcome = "churned" if student.has_churned else "active"
            survey = survey_response or student.churn_survey_response
            return ActionResult.ok(self.recommender.recommend(student_id, outcome, survey))
        except Exception as e:
            logger.error("Case study for %s failed: %s", student_id, e)
            return ActionResult.fail(str(e) or "Failed to create case study")

    def get_learning_events(self, limit: int = 20) -> ActionResult[list[LearningEvent]]:
        """
        Weight changes linked to a case study, most recent first.

        Each is re-scored under the weights in force before the change to
        show what was predicted at the time.
        """
        try:
            store = self.manager.store
            history = store.list_history(limit=max(len(store.list_versions()), 1))
            events = []
            for entry in history:
                if len(events) >= limit:
                    break
                if not entry.is_case_study:
                    continue
                student = self.students.get_student(entry.case_study_student_id)
                if student is None:
                    continue
                risk = self.scorer.score_student(student.student_id, entry.old_weights)
                if risk is None:
                    continue
                predicted_churn = self.scorer.config.predicts_churn(risk.score)
                events.append(LearningEvent(
                    id=entry.id,
                    version=entry.version,
                    student_id=student.student_id,
                    student_name=student.name,
                    churn_date=student.churned_date,
                    predicted_risk=risk.score,
                    predicted_level=risk.level,
                    actual_outcome="churned" if student.has_churned else "active",
                    was_prediction_correct=predicted_churn == student.has_churned,
                    survey_response=student.churn_survey_response,
                    what_system_learned=entry.change_reason,
                    weight_change_summary=summarize_weight_changes(
                        entry.old_weights, entry.new_weights, self.calibration.summary_epsilon
                    ),
                    created_at=entry.created_at,
                ))
            return ActionResult.ok(events)
        except Exception as e:
            logger.error("Loading learning events failed: %s", e)
            return ActionResult.fail(f"Failed to get learning events: {e}")

    def get_recent_churns(self, limit: int = 10) -> ActionResult[list[ChurnedStudent]]:
        """Churned students, most recent churn first, with current predicted risk."""
        try:
            churned = [s for s in self.students.list_students() if s.has_churned]
            churned.sort(key=lambda s: s.churned_date or date.min, reverse=True)
            weights = self.manager.get_current_weights()
            sessions = self.scorer.calculator.sessions

            result = []
            for student in churned[:limit]:
                completed = sessions.list_completed_sessions(student.student_id) or []
                try:
                    risk = self.scorer.score_student(student.student_id, weights)
                except Exception as e:
                    logger.warning("Could not calculate risk for student %s: %s", student.student_id, e)
                    risk = None
                result.append(ChurnedStudent(
                    student_id=student.student_id,
                    name=student.name,
                    enrolled_since=student.enrolled_since,
                    churned_date=student.churned_date,
                    churn_survey_response=student.churn_survey_response,
                    predicted_risk=risk,
                    sessions_completed=len(completed),
                    churn_reasons=list(student.churn_reasons),
                ))
            return ActionResult.ok(result)
        except Exception as e:
            logger.error("Loading recent churns failed: %s", e)
            return ActionResult.fail(f"Failed to get recent churns: {e}")

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def score_student(
        self,
        student_id: str,
        weights: Optional[Mapping[str, float]] = None,
    ) -> ActionResult[ChurnRiskResult]:
        """Churn risk for one student (current weights unless given)."""
        try:
            risk = self.scorer.score_student(student_id, weights or self.manager.get_current_weights())
            if risk is None:
                return ActionResult.fail("Student not found")
            return ActionResult.ok(risk)
        except Exception as e:
            logger.error("Scoring %s failed: %s", student_id, e)
            return ActionResult.fail(str(e) or "Failed to score student")

    def evaluate(
        self,
        weights: Optional[Mapping[str, float]] = None,
        as_of: Optional[date] = None,
    ) -> ActionResult[AccuracyMetrics]:
        """Retroactive accuracy (current weights unless given)."""
        try:
            return ActionResult.ok(
                self.evaluator.evaluate(weights or self.manager.get_current_weights(), as_of)
            )
        except Exception as e:
            logger.error("Accuracy evaluation failed: %s", e)
            return ActionResult.fail(str(e) or "Failed to evaluate accuracy")

    def evaluate_with_predictions(
        self,
        weights: Optional[Mapping[str, float]] = None,
        as_of: Optional[date] = None,
    ) -> ActionResult[EvaluationResult]:
        """Retroactive accuracy with per-student predictions, for reports."""
        weights = weights or self.manager.get_current_weights()
        validation = self.manager.validate(weights)
        if not validation.is_valid:
            return ActionResult.fail(f"Weight validation failed: {', '.join(validation.errors)}")
        try:
            return ActionResult.ok(self.evaluator.evaluate_with_predictions(weights, as_of))
        except Exception as e:
            logger.error("Accuracy evaluation failed: %s", e)
            return ActionResult.fail(str(e) or "Failed to evaluate accuracy")

    def get_weight_history(self, limit: int = 10) -> ActionResult[list[WeightHistoryEntry]]:
        try:
            return ActionResult.ok(self.manager.get_history(limit))
        except Exception as e:
            logger.error("Loading weight history failed: %s", e)
            return ActionResult.fail(f"Failed to get weight history: {e}")

    def get_weight_history_entry(self, entry_id: str) -> ActionResult[WeightHistoryEntry]:
        try:
            entry = self.manager.get_history_entry(entry_id)
        except Exception as e:
            logger.error("Loading history entry %s failed: %s", entry_id, e)
            return ActionResult.fail(f"Failed to get history entry: {e}")
        if entry is None:
            return ActionResult.fail("History entry not found")
        return ActionResult.ok(entry)

    def audit_status(self) -> ActionResult[list[VersionAudit]]:
        try:
            return ActionResult.ok(self.manager.audit_status())
        except Exception as e:
            logger.error("Loading audit status failed: %s", e)
            return ActionResult.fail(f"Failed to get audit status: {e}")

    def to_jsonable(self, value: Any) -> Any:
        """Convert service data into JSON-friendly structures."""
        if hasattr(value, "to_dict"):
            return value.to_dict()
        if isinstance(value, list):
            return [self.to_jsonable(v) for v in value]
        if hasattr(value, "__dataclass_fields__"):
            return {k: self.to_jsonable(getattr(value, k)) for k in value.__dataclass_fields__}
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value
