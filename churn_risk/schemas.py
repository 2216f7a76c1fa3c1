"""
Data schema definitions for the churn risk model.

Uses Pandera for runtime validation of session and student DataFrames to
catch pipeline errors before scoring.
"""

import pandera as pa
from pandera import Column, Check, DataFrameSchema


SESSION_STATUSES = ["scheduled", "in_progress", "completed", "cancelled", "no_show"]
STUDENT_STATUSES = ["active", "churned", "paused"]

CHURN_REASONS = [
    "poor_first_session",
    "tutor_mismatch",
    "no_progress",
    "scheduling_difficulty",
    "price_concerns",
    "technical_issues",
    "found_competitor",
    "completed_goals",
    "personal_circumstances",
    "other",
]

# CHURN_REASONS column cells hold reasons joined with this separator
REASON_SEPARATOR = ";"


def split_reasons(value) -> list[str]:
    """Split a CHURN_REASONS cell into its reasons."""
    if not isinstance(value, str):
        return []
    return [r.strip() for r in value.split(REASON_SEPARATOR) if r.strip()]


# Schema for session history data
SESSION_SCHEMA = DataFrameSchema(
    {
        "SESSION_ID": Column(
            str,
            coerce=True,
            nullable=False,
            unique=True,
            description="Unique session identifier"
        ),
        "STUDENT_ID": Column(
            str,
            coerce=True,
            nullable=False,
            description="Student who attended the session"
        ),
        "TUTOR_ID": Column(
            str,
            coerce=True,
            nullable=False,
            description="Tutor who ran the session"
        ),
        "SCHEDULED_START": Column(
            "datetime64[ns]",
            nullable=False,
            coerce=True,
            description="Scheduled start time (sessions are ordered by this)"
        ),
        "STATUS": Column(
            str,
            coerce=True,
            nullable=False,
            checks=Check.isin(SESSION_STATUSES),
            description="Session lifecycle status"
        ),
        "OVERALL_SESSION_SCORE": Column(
            float,
            nullable=True,  # Not every session is scored
            coerce=True,
            checks=[
                Check.greater_than_or_equal_to(0.0),
                Check.less_than_or_equal_to(10.0),
            ],
            description="Overall session quality score (0-10)"
        ),
        "FOLLOW_UP_BOOKED": Column(
            bool,
            nullable=False,
            coerce=True,
            description="Whether the student booked a follow-up session"
        ),
        "STUDENT_ENGAGEMENT_SCORE": Column(
            float,
            nullable=True,  # Only present when audio metrics were captured
            coerce=True,
            checks=[
                Check.greater_than_or_equal_to(0.0),
                Check.less_than_or_equal_to(10.0),
            ],
            description="Student engagement sub-score from audio metrics (0-10)"
        ),
    },
    strict=False,  # Allow extra columns
    description="Schema for tutoring session history"
)


# Schema for student enrollment data
STUDENT_SCHEMA = DataFrameSchema(
    {
        "STUDENT_ID": Column(
            str,
            coerce=True,
            nullable=False,
            unique=True,
            description="Unique student identifier"
        ),
        "STATUS": Column(
            str,
            coerce=True,
            nullable=False,
            checks=Check.isin(STUDENT_STATUSES),
            description="Enrollment status (active, churned or paused)"
        ),
        "ENROLLED_SINCE": Column(
            "datetime64[ns]",
            nullable=False,
            coerce=True,
            description="Date the student enrolled"
        ),
        "CHURNED_DATE": Column(
            "datetime64[ns]",
            nullable=True,
            coerce=True,
            required=False,
            description="Date the student churned, if they did"
        ),
        "NAME": Column(str, nullable=True, coerce=True, required=False),
        "CHURN_SURVEY_RESPONSE": Column(str, nullable=True, coerce=True, required=False),
        "CHURN_REASONS": Column(
            str,
            nullable=True,
            coerce=True,
            required=False,
            checks=Check(
                lambda value: all(r in CHURN_REASONS for r in split_reasons(value)),
                element_wise=True,
                ignore_na=True,
                error="unknown churn reason",
            ),
            description="Exit reasons separated by ';'"
        ),
    },
    strict=False,
    description="Schema for student enrollment and outcome data"
)


# Schema for population scoring output
SCORING_OUTPUT_SCHEMA = DataFrameSchema(
    {
        "STUDENT_ID": Column(str, nullable=False, unique=True, coerce=True),
        "RISK_SCORE": Column(
            float,
            coerce=True,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0.0),
                Check.less_than_or_equal_to(1.5),  # Not clamped, flexible bound
            ]
        ),
        "RISK_LEVEL": Column(
            str,
            coerce=True,
            nullable=False,
            checks=Check.isin(["low", "medium", "high"])
        ),
    },
    strict=False,  # Allow factor columns
    description="Schema for churn risk scoring output data"
)


def validate_sessions(df):
    """Validate a session DataFrame, raising pa.errors.SchemaError on failure."""
    return SESSION_SCHEMA.validate(df)


def validate_students(df):
    """Validate a student DataFrame, raising pa.errors.SchemaError on failure."""
    return STUDENT_SCHEMA.validate(df)


__all__ = [
    "SESSION_SCHEMA",
    "STUDENT_SCHEMA",
    "SCORING_OUTPUT_SCHEMA",
    "CHURN_REASONS",
    "split_reasons",
    "SESSION_STATUSES",
    "STUDENT_STATUSES",
    "validate_sessions",
    "validate_students",
]
