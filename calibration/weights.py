"""
Weight store accessor: current weights, validation and history.

Usage:
    manager = WeightManager(store)
    weights = manager.get_current_weights()

    result = validate_weights(proposed)
    if not result.is_valid:
        print(result.errors)
"""

import logging
import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Mapping, Optional

from churn_risk.config import ScoringConfig, DEFAULT_CONFIG, FACTOR_CATEGORIES
from churn_risk.errors import StorageError

from .store import WeightHistoryEntry, WeightStore

logger = logging.getLogger(__name__)


@dataclass
class WeightValidationResult:
    """Outcome of validating a weight map."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_weights(
    weights: Mapping[str, object],
    config: Optional[ScoringConfig] = None,
) -> WeightValidationResult:
    """
    Validate that weights meet all requirements.

    Checks:
    - All six factor categories are present (and no others)
    - Each weight is a finite number between 0 and 1
    - Total sum equals 1.0 within the configured tolerance

    Never raises; problems are reported in the result.
    """
    config = config or DEFAULT_CONFIG
    errors: list[str] = []

    missing = [c for c in FACTOR_CATEGORIES if c not in weights]
    if missing:
        errors.append(f"Missing required factors: {', '.join(missing)}")

    unknown = [c for c in weights if c not in FACTOR_CATEGORIES]
    if unknown:
        errors.append(f"Unknown factors: {', '.join(map(str, unknown))}")

    total = 0.0
    for factor, weight in weights.items():
        if isinstance(weight, bool) or not isinstance(weight, Real) or not math.isfinite(weight):
            errors.append(f"Invalid weight for {factor}: must be a number")
            continue
        if weight < 0 or weight > 1:
            errors.append(f"Invalid weight for {factor}: must be between 0 and 1 (got {weight})")
        total += float(weight)

    if abs(total - 1.0) > config.weight_sum_tolerance:
        errors.append(f"Weights must sum to 1.0 (current sum: {total:.3f})")

    return WeightValidationResult(is_valid=not errors, errors=errors)


@dataclass(frozen=True)
class VersionAudit:
    """Whether a stored weight version has its history entry."""

    version: int
    history_id: Optional[str]

    @property
    def audited(self) -> bool:
        return self.history_id is not None

    @property
    def status(self) -> str:
        return "audited" if self.audited else "applied_without_full_audit"


class WeightManager:
    """Reads and validates versioned weights from a WeightStore."""

    def __init__(self, store: WeightStore, config: Optional[ScoringConfig] = None):
        self.store = store
        self.config = config or DEFAULT_CONFIG

    @property
    def default_weights(self) -> dict[str, float]:
        return dict(self.config.default_weights)

    def get_current_weights(self, strict: bool = False) -> dict[str, float]:
        """
        Weights of the latest version, or the defaults if none exist.

        Categories missing from the stored version are filled from the
        defaults. Storage failures fall back to the defaults with a
        warning, unless strict is set (write paths), in which case the
        StorageError propagates.
        """
        try:
            latest = self.store.get_latest_version()
            if latest is None:
                return self.default_weights
            stored = self.store.get_weights(latest)
        except StorageError as e:
            if strict:
                raise
            logger.warning("Weight store unavailable, using default weights: %s", e)
            return self.default_weights

        weights = self.default_weights
        weights.update(stored)
        return weights

    def get_current_version(self) -> Optional[int]:
        try:
            return self.store.get_latest_version()
        except StorageError as e:
            logger.warning("Weight store unavailable: %s", e)
            return None

    def validate(self, weights: Mapping[str, object]) -> WeightValidationResult:
        return validate_weights(weights, self.config)

    def get_history(self, limit: int = 10) -> list[WeightHistoryEntry]:
        """Recent weight changes, most recent first."""
        return self.store.list_history(limit)

    def get_history_entry(self, entry_id: str) -> Optional[WeightHistoryEntry]:
        return self.store.get_history_entry(entry_id)

    def audit_status(self) -> list[VersionAudit]:
        """
        Audit state of every stored version, oldest first.

        A version without a history entry was applied without full audit
        (the update failed after the weights were persisted).
        """
        versions = self.store.list_versions()
        history = self.store.list_history(limit=max(len(versions), 1))
        by_version = {entry.version: entry.id for entry in history}
        return [VersionAudit(version=v, history_id=by_version.get(v)) for v in versions]

    def unaudited_versions(self) -> list[int]:
        return [a.version for a in self.audit_status() if not a.audited]
