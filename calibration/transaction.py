"""
Weight update transaction.

Steps:
1. Validate the new weights (nothing is written if invalid)
2. Evaluate accuracy of the current weights
3. Persist the new weights as the next version
4. Evaluate accuracy of the new weights
5. Write the history entry
6. Return version, accuracy before/after and delta

A failure after step 3 leaves the new version in place without a history
entry. That version is reported by WeightManager.audit_status() as
applied without full audit, and the failure is logged.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date
from typing import Mapping, Optional

from churn_risk.errors import WeightValidationError

from .evaluator import AccuracyEvaluator
from .logger import CalibrationLogger
from .store import WeightHistoryEntry
from .weights import WeightManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaseStudyRef:
    """Links a weight change to the case study that motivated it."""

    student_id: str
    session_id: Optional[str] = None


@dataclass(frozen=True)
class WeightUpdateResult:
    """Outcome of a successful weight update."""

    version: int
    accuracy_before: float
    accuracy_after: float
    delta: float
    history_id: str

    def to_dict(self) -> dict:
        return asdict(self)


class WeightUpdateTransaction:
    """Applies a new weight version with before/after accuracy and audit history."""

    def __init__(
        self,
        manager: WeightManager,
        evaluator: AccuracyEvaluator,
        audit_log: Optional[CalibrationLogger] = None,
    ):
        self.manager = manager
        self.evaluator = evaluator
        self.audit_log = audit_log

    def update(
        self,
        new_weights: Mapping[str, float],
        actor_id: str,
        reason: str,
        case_study: Optional[CaseStudyRef] = None,
        as_of: Optional[date] = None,
    ) -> WeightUpdateResult:
        """
        Create a new weight version.

        Args:
            new_weights: Complete weight map (must sum to 1.0)
            actor_id: Administrator making the change
            reason: Free-text change reason, stored with every weight row
            case_study: Optional case-study linkage
            as_of: Evaluation date for both accuracy runs (default: today)

        Returns:
            WeightUpdateResult

        Raises:
            WeightValidationError: If the weights or actor are invalid
            StorageError: If the store fails; nothing is defaulted silently
        """
        validation = self.manager.validate(new_weights)
        errors = list(validation.errors)
        if not actor_id:
            errors.append("Actor id is required")
        if errors:
            raise WeightValidationError(errors)

        new_weights = {k: float(v) for k, v in new_weights.items()}
        store = self.manager.store

        old_weights = self.manager.get_current_weights(strict=True)
        accuracy_before = self.evaluator.evaluate(old_weights, as_of)

        version = store.create_version(new_weights, reason)
        logger.info("Persisted weight version %d for %s", version, actor_id)

        try:
            accuracy_after = self.evaluator.evaluate(new_weights, as_of)
            entry = WeightHistoryEntry(
                version=version,
                changed_by=actor_id,
                change_reason=reason,
                old_weights=old_weights,
                new_weights=new_weights,
                accuracy_before=accuracy_before.accuracy,
                accuracy_after=accuracy_after.accuracy,
                case_study_student_id=case_study.student_id if case_study else None,
                case_study_session_id=case_study.session_id if case_study else None,
            )
            history_id = store.insert_history_entry(entry)
        except Exception as e:
            logger.warning(
                "Weight version %d applied without full audit: %s", version, e
            )
            if self.audit_log:
                self.audit_log.log_failure(actor_id, reason, str(e), version=version)
            raise

        result = WeightUpdateResult(
            version=version,
            accuracy_before=accuracy_before.accuracy,
            accuracy_after=accuracy_after.accuracy,
            delta=accuracy_after.accuracy - accuracy_before.accuracy,
            history_id=history_id,
        )
        if self.audit_log:
            self.audit_log.log_update(result, entry)
        return result
