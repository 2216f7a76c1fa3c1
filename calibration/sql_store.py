"""
Relational weight store backed by SQLAlchemy.

Tables:
- churn_algorithm_weights: one row per (version, factor_category),
  unique on that pair so two writers can never share a version
- churn_weight_history: one audited transition per row, with the full
  old/new weight maps stored as JSON
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from churn_risk.errors import StorageError

from .store import WeightHistoryEntry

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlgorithmWeightRow(Base):
    """One factor weight within a version."""
    __tablename__ = "churn_algorithm_weights"
    __table_args__ = (
        UniqueConstraint("version", "factor_category", name="uq_weight_version_factor"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    version = Column(Integer, index=True, nullable=False)
    factor_category = Column(String(50), nullable=False)
    weight = Column(Float, nullable=False)
    effective_from = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class WeightHistoryRow(Base):
    """One audited weight change."""
    __tablename__ = "churn_weight_history"

    id = Column(String(36), primary_key=True)
    version = Column(Integer, index=True, nullable=False)
    changed_by = Column(String(128), nullable=False)
    change_reason = Column(Text, nullable=False)
    case_study_session_id = Column(String(128), nullable=True)
    case_study_student_id = Column(String(128), nullable=True)
    old_weights = Column(JSON, nullable=False)
    new_weights = Column(JSON, nullable=False)
    accuracy_before = Column(Float, nullable=True)
    accuracy_after = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlWeightStore:
    """
    WeightStore implementation over any SQLAlchemy engine.

    Usage:
        store = SqlWeightStore.from_url("sqlite:///weights.db")
        version = store.create_version(weights, "Initial weights")

    All SQLAlchemy errors surface as StorageError.
    """

    def __init__(self, engine: Engine, max_version_retries: int = 5):
        """
        Args:
            engine: SQLAlchemy engine
            max_version_retries: Attempts at allocating a free version
                number when concurrent writers collide
        """
        self.engine = engine
        self.max_version_retries = max_version_retries
        self.SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(bind=engine)

    @classmethod
    def from_url(cls, url: str, timeout: Optional[float] = None) -> "SqlWeightStore":
        """
        Build a store from a database URL.

        Args:
            url: SQLAlchemy database URL
            timeout: Seconds to wait for a connection or database lock
        """
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
            if timeout is not None:
                connect_args["timeout"] = timeout
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)
            else:
                engine = create_engine(url, connect_args=connect_args)
        else:
            kwargs = {"pool_pre_ping": True}
            if timeout is not None:
                kwargs["pool_timeout"] = timeout
            engine = create_engine(url, **kwargs)
        return cls(engine)

    def get_latest_version(self) -> Optional[int]:
        try:
            with self.SessionLocal() as db:
                return db.execute(select(func.max(AlgorithmWeightRow.version))).scalar()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read latest weight version: {e}") from e

    def get_weights(self, version: int) -> dict[str, float]:
        try:
            with self.SessionLocal() as db:
                rows = db.execute(
                    select(AlgorithmWeightRow.factor_category, AlgorithmWeightRow.weight)
                    .where(AlgorithmWeightRow.version == version)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read weight version {version}: {e}") from e
        if not rows:
            raise StorageError(f"Weight version {version} does not exist")
        return {category: float(weight) for category, weight in rows}

    def list_versions(self) -> list[int]:
        try:
            with self.SessionLocal() as db:
                return list(
                    db.execute(
                        select(AlgorithmWeightRow.version)
                        .distinct()
                        .order_by(AlgorithmWeightRow.version)
                    ).scalars()
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list weight versions: {e}") from e

    def _weight_rows(self, version: int, weights: dict[str, float], note: str) -> list[AlgorithmWeightRow]:
        now = _utcnow()
        return [
            AlgorithmWeightRow(
                version=version,
                factor_category=category,
                weight=float(weight),
                effective_from=now,
                notes=note,
            )
            for category, weight in weights.items()
        ]

    def insert_weight_version(self, version: int, weights: dict[str, float], note: str) -> None:
        try:
            with self.SessionLocal.begin() as db:
                exists = db.execute(
                    select(func.count(AlgorithmWeightRow.id)).where(AlgorithmWeightRow.version == version)
                ).scalar()
                if exists:
                    raise StorageError(f"Weight version {version} already exists")
                db.add_all(self._weight_rows(version, weights, note))
        except IntegrityError as e:
            raise StorageError(f"Weight version {version} already exists") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert weight version {version}: {e}") from e

    def create_version(self, weights: dict[str, float], note: str) -> int:
        for attempt in range(1, self.max_version_retries + 1):
            try:
                with self.SessionLocal.begin() as db:
                    current = db.execute(
                        select(func.coalesce(func.max(AlgorithmWeightRow.version), 0))
                    ).scalar()
                    version = int(current) + 1
                    db.add_all(self._weight_rows(version, weights, note))
                return version
            except IntegrityError:
                logger.warning(
                    "Weight version collision on attempt %d/%d, retrying",
                    attempt, self.max_version_retries,
                )
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to create weight version: {e}") from e
        raise StorageError(
            f"Could not allocate a weight version after {self.max_version_retries} attempts"
        )

    def insert_history_entry(self, entry: WeightHistoryEntry) -> str:
        try:
            with self.SessionLocal.begin() as db:
                db.add(WeightHistoryRow(
                    id=entry.id,
                    version=entry.version,
                    changed_by=entry.changed_by,
                    change_reason=entry.change_reason,
                    case_study_session_id=entry.case_study_session_id,
                    case_study_student_id=entry.case_study_student_id,
                    old_weights=dict(entry.old_weights),
                    new_weights=dict(entry.new_weights),
                    accuracy_before=entry.accuracy_before,
                    accuracy_after=entry.accuracy_after,
                    created_at=entry.created_at,
                ))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write weight history: {e}") from e
        return entry.id

    @staticmethod
    def _to_entry(row: WeightHistoryRow) -> WeightHistoryEntry:
        return WeightHistoryEntry(
            id=row.id,
            version=row.version,
            changed_by=row.changed_by,
            change_reason=row.change_reason,
            old_weights={k: float(v) for k, v in row.old_weights.items()},
            new_weights={k: float(v) for k, v in row.new_weights.items()},
            accuracy_before=row.accuracy_before,
            accuracy_after=row.accuracy_after,
            case_study_student_id=row.case_study_student_id,
            case_study_session_id=row.case_study_session_id,
            created_at=_as_utc(row.created_at),
        )

    def get_history_entry(self, entry_id: str) -> Optional[WeightHistoryEntry]:
        try:
            with self.SessionLocal() as db:
                row = db.get(WeightHistoryRow, entry_id)
                return self._to_entry(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read weight history {entry_id}: {e}") from e

    def list_history(self, limit: int = 10) -> list[WeightHistoryEntry]:
        try:
            with self.SessionLocal() as db:
                rows = db.execute(
                    select(WeightHistoryRow)
                    .order_by(WeightHistoryRow.created_at.desc(), WeightHistoryRow.version.desc())
                    .limit(limit)
                ).scalars()
                return [self._to_entry(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list weight history: {e}") from e
