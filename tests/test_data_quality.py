"""
Data quality and schema validation tests.

Tests input data validation for session and student exports.
"""

import pandas as pd
import pandera as pa
import pytest

from churn_risk import FrameSessionRepository, FrameStudentRepository
from churn_risk.schemas import SESSION_SCHEMA, STUDENT_SCHEMA, validate_sessions, validate_students


def session_row(**overrides):
    row = {
        "SESSION_ID": "S1",
        "STUDENT_ID": "STUDENT_1",
        "TUTOR_ID": "TUTOR_1",
        "SCHEDULED_START": "2025-01-06 16:00",
        "STATUS": "completed",
        "OVERALL_SESSION_SCORE": 7.5,
        "FOLLOW_UP_BOOKED": True,
        "STUDENT_ENGAGEMENT_SCORE": 6.0,
    }
    row.update(overrides)
    return row


def student_row(**overrides):
    row = {
        "STUDENT_ID": "STUDENT_1",
        "STATUS": "active",
        "ENROLLED_SINCE": "2024-09-01",
    }
    row.update(overrides)
    return row


class TestSessionSchema:
    """Session export validation."""

    def test_sample_data_valid(self, sample_data):
        _, sessions = sample_data
        validated = SESSION_SCHEMA.validate(sessions)
        assert len(validated) == len(sessions)

    def test_dates_coerced(self):
        validated = validate_sessions(pd.DataFrame([session_row()]))
        assert pd.api.types.is_datetime64_any_dtype(validated["SCHEDULED_START"])

    def test_missing_sub_metrics_allowed(self):
        """Scores and engagement may be null, the rest may not."""
        df = pd.DataFrame([session_row(OVERALL_SESSION_SCORE=None, STUDENT_ENGAGEMENT_SCORE=None)])
        assert len(validate_sessions(df)) == 1

    @pytest.mark.parametrize("overrides", [
        {"OVERALL_SESSION_SCORE": 10.5},
        {"STUDENT_ENGAGEMENT_SCORE": -1.0},
        {"STATUS": "finished"},
        {"TUTOR_ID": None},
    ])
    def test_invalid_rows_rejected(self, overrides):
        with pytest.raises(pa.errors.SchemaError):
            validate_sessions(pd.DataFrame([session_row(**overrides)]))

    def test_duplicate_session_ids_rejected(self):
        df = pd.DataFrame([session_row(), session_row(STUDENT_ID="STUDENT_2")])
        with pytest.raises(pa.errors.SchemaError):
            validate_sessions(df)

    def test_repository_validates(self):
        with pytest.raises(pa.errors.SchemaError):
            FrameSessionRepository(pd.DataFrame([session_row(STATUS="finished")]))


class TestStudentSchema:
    """Student export validation."""

    def test_sample_data_valid(self, sample_data):
        students, _ = sample_data
        assert len(STUDENT_SCHEMA.validate(students)) == len(students)

    def test_optional_columns(self):
        assert len(validate_students(pd.DataFrame([student_row()]))) == 1

    @pytest.mark.parametrize("overrides", [
        {"STATUS": "graduated"},
        {"ENROLLED_SINCE": None},
    ])
    def test_invalid_rows_rejected(self, overrides):
        with pytest.raises(pa.errors.SchemaError):
            validate_students(pd.DataFrame([student_row(**overrides)]))

    def test_churn_reasons(self):
        df = pd.DataFrame([student_row(STATUS="churned", CHURN_REASONS="price_concerns; other")])
        assert len(validate_students(df)) == 1

    def test_unknown_churn_reason_rejected(self):
        df = pd.DataFrame([student_row(STATUS="churned", CHURN_REASONS="price_concerns;bored")])
        with pytest.raises(pa.errors.SchemaError):
            validate_students(df)

    def test_duplicate_students_rejected(self):
        with pytest.raises(pa.errors.SchemaError):
            validate_students(pd.DataFrame([student_row(), student_row()]))


class TestCsvRepositories:
    """Loading repositories from CSV exports."""

    def test_round_trip_sample_exports(self, sample_data, tmp_path):
        students_df, sessions_df = sample_data
        students_df.to_csv(tmp_path / "students.csv", index=False)
        sessions_df.to_csv(tmp_path / "sessions.csv", index=False)

        students = FrameStudentRepository.from_csv(tmp_path / "students.csv")
        sessions = FrameSessionRepository.from_csv(tmp_path / "sessions.csv", students.student_ids)

        assert len(students.list_students()) == len(students_df)
        first = students_df.iloc[0]["STUDENT_ID"]
        expected = int(
            ((sessions_df["STUDENT_ID"] == first) & (sessions_df["STATUS"] == "completed")).sum()
        )
        assert sessions.count_completed_sessions(first) == expected

    def test_sessions_ordered_by_start(self, tmp_path):
        df = pd.DataFrame([
            session_row(SESSION_ID="LATE", SCHEDULED_START="2025-02-01 10:00"),
            session_row(SESSION_ID="EARLY", SCHEDULED_START="2025-01-01 10:00"),
        ])
        df.to_csv(tmp_path / "sessions.csv", index=False)

        sessions = FrameSessionRepository.from_csv(tmp_path / "sessions.csv")
        assert [s.session_id for s in sessions.list_completed_sessions("STUDENT_1")] == ["EARLY", "LATE"]

    def test_unknown_vs_no_sessions(self):
        sessions = FrameSessionRepository(pd.DataFrame([session_row()]), known_students={"STUDENT_2"})

        assert sessions.list_completed_sessions("STUDENT_2") == []
        assert sessions.list_completed_sessions("STUDENT_3") is None

    def test_student_records(self):
        students = FrameStudentRepository(pd.DataFrame([
            student_row(STATUS="churned", CHURNED_DATE="2025-03-01", NAME="Jo", CHURN_SURVEY_RESPONSE=None),
        ]))
        record = students.get_student("STUDENT_1")

        assert record.has_churned
        assert record.churned_date.isoformat() == "2025-03-01"
        assert record.name == "Jo"
        assert record.churn_survey_response is None
        assert students.get_student("STUDENT_9") is None

    def test_churn_reasons_from_csv(self, tmp_path):
        pd.DataFrame([
            student_row(STATUS="churned", CHURNED_DATE="2025-03-01", CHURN_REASONS="price_concerns;other"),
            student_row(STUDENT_ID="STUDENT_2"),
        ]).to_csv(tmp_path / "students.csv", index=False)

        students = FrameStudentRepository.from_csv(tmp_path / "students.csv")

        assert students.get_student("STUDENT_1").churn_reasons == ("price_concerns", "other")
        assert students.get_student("STUDENT_2").churn_reasons == ()


class TestEmptyExports:
    """Exports with no rows are valid inputs."""

    def test_empty_student_repository(self):
        students = FrameStudentRepository.from_records([])

        assert students.list_students() == []
        assert students.student_ids == set()

    def test_empty_session_repository(self):
        sessions = FrameSessionRepository.from_records([], known_students={"STUDENT_1"})

        assert sessions.list_completed_sessions("STUDENT_1") == []
        assert sessions.count_completed_sessions("STUDENT_1") == 0

    def test_header_only_csv(self, tmp_path):
        pd.DataFrame(columns=list(STUDENT_SCHEMA.columns)).to_csv(tmp_path / "students.csv", index=False)
        pd.DataFrame(columns=list(SESSION_SCHEMA.columns)).to_csv(tmp_path / "sessions.csv", index=False)

        students = FrameStudentRepository.from_csv(tmp_path / "students.csv")
        sessions = FrameSessionRepository.from_csv(tmp_path / "sessions.csv", students.student_ids)

        assert students.list_students() == []
        assert sessions.list_completed_sessions("STUDENT_1") is None
