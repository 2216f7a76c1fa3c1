"""
Weight store contract and in-memory implementation.

A weight version is immutable once written: updates always create a new
version. History entries are written once per successful update and
never mutated.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from churn_risk.errors import StorageError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WeightHistoryEntry:
    """One audited transition between weight versions."""

    version: int
    changed_by: str
    change_reason: str
    old_weights: dict[str, float]
    new_weights: dict[str, float]
    accuracy_before: Optional[float] = None
    accuracy_after: Optional[float] = None
    case_study_student_id: Optional[str] = None
    case_study_session_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def delta(self) -> Optional[float]:
        if self.accuracy_before is None or self.accuracy_after is None:
            return None
        return self.accuracy_after - self.accuracy_before

    @property
    def is_case_study(self) -> bool:
        return self.case_study_student_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "version": self.version,
            "changed_by": self.changed_by,
            "change_reason": self.change_reason,
            "old_weights": dict(self.old_weights),
            "new_weights": dict(self.new_weights),
            "accuracy_before": self.accuracy_before,
            "accuracy_after": self.accuracy_after,
            "delta": self.delta,
            "case_study_student_id": self.case_study_student_id,
            "case_study_session_id": self.case_study_session_id,
            "created_at": self.created_at.isoformat(),
        }


@runtime_checkable
class WeightStore(Protocol):
    """Versioned factor weights and their change history."""

    def get_latest_version(self) -> Optional[int]:
        ...

    def get_weights(self, version: int) -> dict[str, float]:
        ...

    def list_versions(self) -> list[int]:
        ...

    def insert_weight_version(self, version: int, weights: dict[str, float], note: str) -> None:
        """Insert a specific version. Raises StorageError if it already exists."""
        ...

    def create_version(self, weights: dict[str, float], note: str) -> int:
        """Atomically allocate the next version and insert its weights."""
        ...

    def insert_history_entry(self, entry: WeightHistoryEntry) -> str:
        ...

    def get_history_entry(self, entry_id: str) -> Optional[WeightHistoryEntry]:
        ...

    def list_history(self, limit: int = 10) -> list[WeightHistoryEntry]:
        """Most recent entries first."""
        ...


class InMemoryWeightStore:
    """
    Thread-safe in-memory weight store.

    Version allocation and insertion happen under one lock, so concurrent
    updates always receive distinct, increasing version numbers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._versions: dict[int, dict[str, float]] = {}
        self._notes: dict[int, str] = {}
        self._history: dict[str, WeightHistoryEntry] = {}

    def get_latest_version(self) -> Optional[int]:
        with self._lock:
            return max(self._versions) if self._versions else None

    def get_weights(self, version: int) -> dict[str, float]:
        with self._lock:
            if version not in self._versions:
                raise StorageError(f"Weight version {version} does not exist")
            return dict(self._versions[version])

    def list_versions(self) -> list[int]:
        with self._lock:
            return sorted(self._versions)

    def get_note(self, version: int) -> Optional[str]:
        with self._lock:
            return self._notes.get(version)

    def insert_weight_version(self, version: int, weights: dict[str, float], note: str) -> None:
        with self._lock:
            self._insert(version, weights, note)

    def create_version(self, weights: dict[str, float], note: str) -> int:
        with self._lock:
            version = max(self._versions, default=0) + 1
            self._insert(version, weights, note)
            return version

    def _insert(self, version: int, weights: dict[str, float], note: str) -> None:
        if version in self._versions:
            raise StorageError(f"Weight version {version} already exists")
        self._versions[version] = {k: float(v) for k, v in weights.items()}
        self._notes[version] = note

    def insert_history_entry(self, entry: WeightHistoryEntry) -> str:
        with self._lock:
            if entry.id in self._history:
                raise StorageError(f"History entry {entry.id} already exists")
            self._history[entry.id] = replace(
                entry,
                old_weights=dict(entry.old_weights),
                new_weights=dict(entry.new_weights),
            )
            return entry.id

    def get_history_entry(self, entry_id: str) -> Optional[WeightHistoryEntry]:
        with self._lock:
            entry = self._history.get(entry_id)
            return copy.deepcopy(entry) if entry else None

    def list_history(self, limit: int = 10) -> list[WeightHistoryEntry]:
        with self._lock:
            entries = sorted(
                self._history.values(),
                key=lambda e: (e.created_at, e.version),
                reverse=True,
            )
            return [copy.deepcopy(e) for e in entries[:limit]]
