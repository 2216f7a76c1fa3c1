"""
Pytest fixtures for churn risk and calibration tests.
"""

from datetime import date, datetime, timedelta

import pytest

# Add packages to path
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from churn_risk import (
    ChurnScorer,
    FactorCalculator,
    FrameSessionRepository,
    FrameStudentRepository,
    ScoringConfig,
    SessionRecord,
    StudentRecord,
    generate_sample_data,
)
from calibration import (
    AccuracyEvaluator,
    CalibrationConfig,
    CalibrationLogger,
    CalibrationService,
    InMemoryWeightStore,
    WeightManager,
)


# Fixed evaluation date so eligibility windows are deterministic
AS_OF = date(2025, 6, 1)
FIRST_SESSION_AT = datetime(2025, 1, 6, 16, 0)


def make_sessions(
    student_id: str,
    scores: list,
    follow_ups=False,
    engagement=None,
    tutors=None,
) -> list[SessionRecord]:
    """
    Build a student's completed sessions, one week apart.

    follow_ups, engagement and tutors may be a single value applied to
    every session or a list with one value per session.
    """
    n = len(scores)

    def per_session(value, default):
        if value is None:
            return [default] * n
        if isinstance(value, list):
            return value
        return [value] * n

    follow_ups = per_session(follow_ups, False)
    engagement = per_session(engagement, None)
    tutors = per_session(tutors, "TUTOR_1")

    return [
        SessionRecord(
            session_id=f"{student_id}_S{j:02d}",
            student_id=student_id,
            tutor_id=tutors[j],
            scheduled_start=FIRST_SESSION_AT + timedelta(days=7 * j),
            follow_up_booked=follow_ups[j],
            overall_score=scores[j],
            engagement_score=engagement[j],
        )
        for j in range(n)
    ]


def enrolled(days_ago: int) -> date:
    return AS_OF - timedelta(days=days_ago)


@pytest.fixture
def default_config():
    """Default scoring configuration."""
    return ScoringConfig()


@pytest.fixture
def default_weights(default_config):
    return dict(default_config.default_weights)


@pytest.fixture
def session_factory():
    """Builder for one student's completed sessions."""
    return make_sessions


@pytest.fixture
def scenario_a_sessions():
    """One completed first session scored 5.0, no follow-up, one tutor, no engagement."""
    return make_sessions("SCENARIO_A", [5.0], follow_ups=False, engagement=None)


@pytest.fixture
def population_records():
    """
    Small population with hand-computed predictions under default weights.

    Eligible (churned, or active >= 90 days; and >= 3 sessions):
    - CHURN_LOW:   churned, poor sessions        -> score 0.7475, TP
    - ACTIVE_GOOD: active 200d, strong sessions  -> score 0.13,   TN
    - CHURN_GOOD:  churned, strong sessions      -> score 0.17,   FN
    - ACTIVE_BAD:  active 200d, poor sessions    -> score 0.74,   FP
    - CHURN_MIXED: churned, mixed sessions       -> score ~0.371, FN

    Not eligible:
    - ACTIVE_NEW:  active only 30 days
    - CHURN_FEW:   churned with 2 sessions
    - PAUSED:      paused
    - NO_SESSIONS: active 200d without sessions
    """
    students = [
        StudentRecord("CHURN_LOW", "churned", enrolled(150), churned_date=date(2025, 3, 1),
                      name="Casey Low", churn_survey_response="The first session was rough.",
                      churn_reasons=("poor_first_session", "tutor_mismatch")),
        StudentRecord("ACTIVE_GOOD", "active", enrolled(200), name="Alex Good"),
        StudentRecord("CHURN_GOOD", "churned", enrolled(300), churned_date=date(2025, 5, 1),
                      name="Chris Good"),
        StudentRecord("ACTIVE_BAD", "active", enrolled(200), name="Avery Bad"),
        StudentRecord("CHURN_MIXED", "churned", enrolled(120), churned_date=date(2025, 4, 1),
                      name="Morgan Mixed"),
        StudentRecord("ACTIVE_NEW", "active", enrolled(30), name="Nico New"),
        StudentRecord("CHURN_FEW", "churned", enrolled(100), churned_date=date(2025, 2, 1),
                      name="Fran Few"),
        StudentRecord("PAUSED", "paused", enrolled(200), name="Pat Paused"),
        StudentRecord("NO_SESSIONS", "active", enrolled(200), name="Sam None"),
    ]
    sessions = (
        make_sessions("CHURN_LOW", [4.0] * 3, follow_ups=False, engagement=3.0)
        + make_sessions("ACTIVE_GOOD", [9.0] * 10, follow_ups=True, engagement=9.0)
        + make_sessions("CHURN_GOOD", [8.0] * 12, follow_ups=True, engagement=8.0)
        + make_sessions("ACTIVE_BAD", [4.0] * 4, follow_ups=False, engagement=3.0)
        + make_sessions("CHURN_MIXED", [6.0, 9.0, 9.0, 9.0], follow_ups=True, engagement=5.0)
        + make_sessions("ACTIVE_NEW", [7.0] * 5, follow_ups=True, engagement=7.0)
        + make_sessions("CHURN_FEW", [3.0] * 2, follow_ups=False, engagement=2.0)
        + make_sessions("PAUSED", [6.0] * 4, follow_ups=True, engagement=6.0)
    )
    return students, sessions


@pytest.fixture
def student_repo(population_records):
    students, _ = population_records
    return FrameStudentRepository.from_records(students)


@pytest.fixture
def session_repo(population_records, student_repo):
    _, sessions = population_records
    return FrameSessionRepository.from_records(sessions, known_students=student_repo.student_ids)


@pytest.fixture
def scorer(session_repo, default_config):
    """ChurnScorer over the small population."""
    return ChurnScorer(FactorCalculator(session_repo, default_config))


@pytest.fixture
def calibration_config(tmp_path):
    """Small chunks and two workers so parallel evaluation is exercised."""
    return CalibrationConfig(
        max_workers=2,
        chunk_size=2,
        logs_dir=str(tmp_path / "logs"),
        artifacts_dir=str(tmp_path / "artifacts"),
    )


@pytest.fixture
def weight_store():
    return InMemoryWeightStore()


@pytest.fixture
def manager(weight_store, default_config):
    return WeightManager(weight_store, default_config)


@pytest.fixture
def evaluator(scorer, student_repo, calibration_config):
    return AccuracyEvaluator(scorer, student_repo, calibration_config)


@pytest.fixture
def audit_log(calibration_config):
    return CalibrationLogger(calibration_config.logs_dir)


@pytest.fixture
def service(session_repo, student_repo, weight_store, calibration_config, audit_log):
    """CalibrationService over the small population and an in-memory store."""
    return CalibrationService.build(
        session_repo,
        student_repo,
        weight_store,
        calibration=calibration_config,
        audit_log=audit_log,
    )


@pytest.fixture
def sample_data():
    """100 sample students with realistic distributions."""
    return generate_sample_data(n_students=100, seed=42, as_of=AS_OF)


@pytest.fixture
def sample_repos(sample_data):
    students_df, sessions_df = sample_data
    students = FrameStudentRepository(students_df)
    sessions = FrameSessionRepository(sessions_df, known_students=students.student_ids)
    return students, sessions
