"""
Retroactive accuracy evaluation for churn risk weights.

Back-tests a candidate weight set against students whose outcome is
already known and reports confusion-matrix metrics.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Mapping, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix

from churn_risk.config import ScoringConfig
from churn_risk.errors import StorageError
from churn_risk.records import StudentRecord, StudentRepository
from churn_risk.scorer import ChurnScorer

from .config import CalibrationConfig

logger = logging.getLogger(__name__)


PREDICTION_COLUMNS = ["STUDENT_ID", "RISK_SCORE", "RISK_LEVEL", "PREDICTED_CHURN", "IS_CHURN"]


@dataclass(frozen=True)
class ConfusionCounts:
    """
    Confusion matrix counts. Adding two counts merges them, so partial
    results from parallel workers combine in any order.
    """

    true_positives: int = 0
    false_positives: int = 0
    true_negatives: int = 0
    false_negatives: int = 0

    @classmethod
    def from_labels(cls, y_true, y_pred) -> "ConfusionCounts":
        """Build counts from actual and predicted churn labels."""
        y_true = np.asarray(y_true, dtype=int)
        y_pred = np.asarray(y_pred, dtype=int)
        if y_true.size == 0:
            return cls()
        cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
        return cls(
            true_positives=int(cm[1, 1]),
            false_positives=int(cm[0, 1]),
            true_negatives=int(cm[0, 0]),
            false_negatives=int(cm[1, 0]),
        )

    def __add__(self, other: "ConfusionCounts") -> "ConfusionCounts":
        if not isinstance(other, ConfusionCounts):
            return NotImplemented
        return ConfusionCounts(
            true_positives=self.true_positives + other.true_positives,
            false_positives=self.false_positives + other.false_positives,
            true_negatives=self.true_negatives + other.true_negatives,
            false_negatives=self.false_negatives + other.false_negatives,
        )

    @property
    def total(self) -> int:
        return (
            self.true_positives + self.false_positives
            + self.true_negatives + self.false_negatives
        )


@dataclass(frozen=True)
class AccuracyMetrics:
    """Accuracy report for one weight set."""

    accuracy: float
    precision: float
    recall: float
    f1_score: float
    true_positives: int
    false_positives: int
    true_negatives: int
    false_negatives: int
    total_predictions: int

    @classmethod
    def neutral(cls) -> "AccuracyMetrics":
        """Report for an empty population."""
        return cls(
            accuracy=0.5,
            precision=0.0,
            recall=0.0,
            f1_score=0.0,
            true_positives=0,
            false_positives=0,
            true_negatives=0,
            false_negatives=0,
            total_predictions=0,
        )

    @classmethod
    def from_counts(cls, counts: ConfusionCounts) -> "AccuracyMetrics":
        """Derive metrics from confusion counts; zero denominators give 0."""
        total = counts.total
        if total == 0:
            return cls.neutral()

        tp, fp = counts.true_positives, counts.false_positives
        tn, fn = counts.true_negatives, counts.false_negatives

        precision = tp / (tp + fp) if tp + fp > 0 else 0.0
        recall = tp / (tp + fn) if tp + fn > 0 else 0.0
        f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0

        return cls(
            accuracy=(tp + tn) / total,
            precision=precision,
            recall=recall,
            f1_score=f1,
            true_positives=tp,
            false_positives=fp,
            true_negatives=tn,
            false_negatives=fn,
            total_predictions=total,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"  Accuracy:  {self.accuracy:.1%}\n"
            f"  Precision: {self.precision:.1%}\n"
            f"  Recall:    {self.recall:.1%}\n"
            f"  F1:        {self.f1_score:.3f}\n"
            f"  Evaluated: {self.total_predictions} "
            f"(TP={self.true_positives} FP={self.false_positives} "
            f"TN={self.true_negatives} FN={self.false_negatives})"
        )


@dataclass
class EvaluationResult:
    """Metrics together with the per-student predictions behind them."""

    metrics: AccuracyMetrics
    predictions: pd.DataFrame


class AccuracyEvaluator:
    """
    Tests a weight set against students with known outcomes.

    Eligible students:
    - status "churned", or status "active" and enrolled at least
      90 days before the evaluation date
    - and at least 3 completed sessions

    A student is predicted to churn when their risk score exceeds the
    shared churn threshold (0.6). Students are scored in parallel chunks
    and the chunk counts are summed.
    """

    def __init__(
        self,
        scorer: ChurnScorer,
        students: StudentRepository,
        calibration: Optional[CalibrationConfig] = None,
    ):
        self.scorer = scorer
        self.students = students
        self.calibration = calibration or CalibrationConfig()

    @property
    def config(self) -> ScoringConfig:
        return self.scorer.config

    def has_known_outcome(self, student: StudentRecord, as_of: date) -> bool:
        """Churned, or active long enough to count as retained."""
        if student.status == "churned":
            return True
        cutoff = as_of - timedelta(days=self.calibration.eligibility_days)
        return student.status == "active" and student.enrolled_since <= cutoff

    def candidates(self, as_of: Optional[date] = None) -> list[StudentRecord]:
        """Students passing the outcome part of eligibility."""
        as_of = as_of or date.today()
        return [s for s in self.students.list_students() if self.has_known_outcome(s, as_of)]

    def _predict_chunk(
        self,
        chunk: list[StudentRecord],
        weights: Mapping[str, float],
    ) -> tuple[ConfusionCounts, list[dict]]:
        calculator = self.scorer.calculator
        rows = []
        for student in chunk:
            sessions = calculator.sessions.list_completed_sessions(student.student_id)
            if sessions is None or len(sessions) < self.calibration.min_completed_sessions:
                continue
            risk = self.scorer.aggregate(calculator.from_sessions(sessions, weights))
            rows.append({
                "STUDENT_ID": student.student_id,
                "RISK_SCORE": risk.score,
                "RISK_LEVEL": risk.level,
                "PREDICTED_CHURN": self.config.predicts_churn(risk.score),
                "IS_CHURN": student.has_churned,
            })
        counts = ConfusionCounts.from_labels(
            [r["IS_CHURN"] for r in rows],
            [r["PREDICTED_CHURN"] for r in rows],
        )
        return counts, rows

    def _chunks(self, students: list[StudentRecord]) -> list[list[StudentRecord]]:
        size = max(1, self.calibration.chunk_size)
        return [students[i:i + size] for i in range(0, len(students), size)]

    def evaluate_with_predictions(
        self,
        weights: Mapping[str, float],
        as_of: Optional[date] = None,
    ) -> EvaluationResult:
        """
        Run the back-test and keep per-student predictions.

        Args:
            weights: Candidate weight map
            as_of: Evaluation date (default: today)

        Raises:
            StorageError: If scoring does not finish within the timeout
        """
        candidates = self.candidates(as_of)
        counts = ConfusionCounts()
        rows: list[dict] = []

        if candidates:
            executor = ThreadPoolExecutor(max_workers=max(1, self.calibration.max_workers))
            try:
                futures = [
                    executor.submit(self._predict_chunk, chunk, weights)
                    for chunk in self._chunks(candidates)
                ]
                for future in as_completed(futures, timeout=self.calibration.timeout_seconds):
                    chunk_counts, chunk_rows = future.result()
                    counts = counts + chunk_counts
                    rows.extend(chunk_rows)
            except FuturesTimeoutError as e:
                logger.warning(
                    "Accuracy evaluation exceeded %ss over %d candidates",
                    self.calibration.timeout_seconds, len(candidates),
                )
                raise StorageError("Accuracy evaluation timed out") from e
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        metrics = AccuracyMetrics.from_counts(counts)
        predictions = (
            pd.DataFrame(rows, columns=PREDICTION_COLUMNS)
            .sort_values("STUDENT_ID", kind="stable")
            .reset_index(drop=True)
        )
        logger.info(
            "Evaluated %d of %d candidate students: accuracy=%.3f f1=%.3f",
            metrics.total_predictions, len(candidates), metrics.accuracy, metrics.f1_score,
        )
        return EvaluationResult(metrics=metrics, predictions=predictions)

    def evaluate(
        self,
        weights: Mapping[str, float],
        as_of: Optional[date] = None,
    ) -> AccuracyMetrics:
        """Retroactive accuracy of a weight map."""
        return self.evaluate_with_predictions(weights, as_of).metrics
