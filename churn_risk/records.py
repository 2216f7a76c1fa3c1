"""
Session and student records and the repositories that provide them.

The scoring engine only reads through the SessionRepository and
StudentRepository protocols. FrameSessionRepository and
FrameStudentRepository are pandas-backed implementations used for batch
runs over CSV exports and in tests.
"""

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import pandas as pd

from .schemas import REASON_SEPARATOR, SESSION_SCHEMA, STUDENT_SCHEMA, split_reasons


@dataclass(frozen=True)
class SessionRecord:
    """A completed tutoring session with its quality sub-metrics."""

    session_id: str
    student_id: str
    tutor_id: str
    scheduled_start: datetime
    follow_up_booked: bool = False
    overall_score: Optional[float] = None
    engagement_score: Optional[float] = None


@dataclass(frozen=True)
class StudentRecord:
    """Enrollment status and outcome for one student."""

    student_id: str
    status: str  # active | churned | paused
    enrolled_since: date
    churned_date: Optional[date] = None
    name: Optional[str] = None
    churn_survey_response: Optional[str] = None
    churn_reasons: tuple[str, ...] = ()

    @property
    def has_churned(self) -> bool:
        return self.status == "churned"


@runtime_checkable
class SessionRepository(Protocol):
    """Source of completed sessions."""

    def list_completed_sessions(self, student_id: str) -> Optional[list[SessionRecord]]:
        """
        Completed sessions for a student ordered by scheduled start.

        Returns None if the student is unknown.
        """
        ...


@runtime_checkable
class StudentRepository(Protocol):
    """Source of enrollment status and outcomes."""

    def get_student(self, student_id: str) -> Optional[StudentRecord]:
        ...

    def list_students(self) -> list[StudentRecord]:
        ...


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _optional_str(value) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return str(value)


def _optional_date(value) -> Optional[date]:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).date()


class FrameSessionRepository:
    """
    Session repository backed by a validated pandas DataFrame.

    Usage:
        repo = FrameSessionRepository.from_csv("data/sessions.csv")
        sessions = repo.list_completed_sessions("student-123")
    """

    def __init__(self, df: pd.DataFrame, known_students: Optional[set[str]] = None):
        """
        Args:
            df: Session rows matching SESSION_SCHEMA
            known_students: Students that exist even without sessions.
                Anyone else with no rows is reported as unknown (None).
        """
        self.df = SESSION_SCHEMA.validate(df.copy())
        self.known_students = set(known_students or ()) | set(self.df["STUDENT_ID"])
        completed = self.df[self.df["STATUS"] == "completed"]
        self._by_student = {
            student_id: group.sort_values("SCHEDULED_START", kind="stable")
            for student_id, group in completed.groupby("STUDENT_ID")
        }

    @classmethod
    def from_csv(cls, path: Path | str, known_students: Optional[set[str]] = None) -> "FrameSessionRepository":
        """Load sessions from a CSV export."""
        df = pd.read_csv(path, dtype={"SESSION_ID": str, "STUDENT_ID": str, "TUTOR_ID": str})
        return cls(df, known_students=known_students)

    @classmethod
    def from_records(cls, records: list[SessionRecord], known_students: Optional[set[str]] = None) -> "FrameSessionRepository":
        """Build a repository from completed session records."""
        df = pd.DataFrame(
            [
                {
                    "SESSION_ID": r.session_id,
                    "STUDENT_ID": r.student_id,
                    "TUTOR_ID": r.tutor_id,
                    "SCHEDULED_START": r.scheduled_start,
                    "STATUS": "completed",
                    "OVERALL_SESSION_SCORE": r.overall_score,
                    "FOLLOW_UP_BOOKED": r.follow_up_booked,
                    "STUDENT_ENGAGEMENT_SCORE": r.engagement_score,
                }
                for r in records
            ],
            columns=list(SESSION_SCHEMA.columns),
        )
        return cls(df, known_students=known_students)

    def list_completed_sessions(self, student_id: str) -> Optional[list[SessionRecord]]:
        if student_id not in self.known_students:
            return None
        group = self._by_student.get(student_id)
        if group is None:
            return []
        return [
            SessionRecord(
                session_id=row.SESSION_ID,
                student_id=row.STUDENT_ID,
                tutor_id=row.TUTOR_ID,
                scheduled_start=pd.Timestamp(row.SCHEDULED_START).to_pydatetime(),
                follow_up_booked=bool(row.FOLLOW_UP_BOOKED),
                overall_score=_optional_float(row.OVERALL_SESSION_SCORE),
                engagement_score=_optional_float(row.STUDENT_ENGAGEMENT_SCORE),
            )
            for row in group.itertuples(index=False)
        ]

    def count_completed_sessions(self, student_id: str) -> int:
        group = self._by_student.get(student_id)
        return 0 if group is None else len(group)


class FrameStudentRepository:
    """Student repository backed by a validated pandas DataFrame."""

    def __init__(self, df: pd.DataFrame):
        self.df = STUDENT_SCHEMA.validate(df.copy())
        self._students = {
            record.student_id: record
            for record in (self._to_record(row) for row in self.df.to_dict("records"))
        }

    @classmethod
    def from_csv(cls, path: Path | str) -> "FrameStudentRepository":
        """Load students from a CSV export."""
        df = pd.read_csv(
            path,
            dtype={
                "STUDENT_ID": str,
                "NAME": object,
                "CHURN_SURVEY_RESPONSE": object,
                "CHURN_REASONS": object,
            },
        )
        return cls(df)

    @classmethod
    def from_records(cls, records: list[StudentRecord]) -> "FrameStudentRepository":
        df = pd.DataFrame(
            [
                {
                    "STUDENT_ID": r.student_id,
                    "STATUS": r.status,
                    "ENROLLED_SINCE": pd.Timestamp(r.enrolled_since),
                    "CHURNED_DATE": pd.Timestamp(r.churned_date) if r.churned_date else pd.NaT,
                    "NAME": r.name,
                    "CHURN_SURVEY_RESPONSE": r.churn_survey_response,
                    "CHURN_REASONS": REASON_SEPARATOR.join(r.churn_reasons) or None,
                }
                for r in records
            ],
            columns=["STUDENT_ID", "STATUS", "ENROLLED_SINCE", "CHURNED_DATE",
                     "NAME", "CHURN_SURVEY_RESPONSE", "CHURN_REASONS"],
        )
        return cls(df)

    @staticmethod
    def _to_record(row: dict) -> StudentRecord:
        return StudentRecord(
            student_id=row["STUDENT_ID"],
            status=row["STATUS"],
            enrolled_since=pd.Timestamp(row["ENROLLED_SINCE"]).date(),
            churned_date=_optional_date(row.get("CHURNED_DATE")),
            name=_optional_str(row.get("NAME")),
            churn_survey_response=_optional_str(row.get("CHURN_SURVEY_RESPONSE")),
            churn_reasons=tuple(split_reasons(row.get("CHURN_REASONS"))),
        )

    def get_student(self, student_id: str) -> Optional[StudentRecord]:
        return self._students.get(student_id)

    def list_students(self) -> list[StudentRecord]:
        return list(self._students.values())

    @property
    def student_ids(self) -> set[str]:
        return set(self._students)
