"""
Synthetic student and session data for tests and demos.

Churned students are drawn with poorer first sessions, fewer follow-up
bookings and lower engagement so that the default weights separate
the two groups reasonably well.
"""

from datetime import date, timedelta
from typing import Optional

import numpy as np
import pandas as pd

from .schemas import CHURN_REASONS, REASON_SEPARATOR


SURVEY_RESPONSES = [
    "The first session did not meet my expectations.",
    "Scheduling was too difficult.",
    "I kept getting a different tutor.",
    "Too expensive for the progress I made.",
    "I reached my goal.",
]


def generate_sample_data(
    n_students: int = 100,
    seed: int = 42,
    as_of: Optional[date] = None,
    churn_rate: float = 0.3,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Generate realistic sample students and sessions.

    Args:
        n_students: Number of students
        seed: Random seed
        as_of: Reference date; enrollments fall 30-400 days before it
        churn_rate: Fraction of students marked churned

    Returns:
        Tuple of (students_df, sessions_df) matching STUDENT_SCHEMA and
        SESSION_SCHEMA
    """
    rng = np.random.default_rng(seed)
    as_of = as_of or date.today()

    churned = rng.random(n_students) < churn_rate
    paused = (~churned) & (rng.random(n_students) < 0.05)
    enrolled_days_ago = rng.integers(30, 400, size=n_students)

    students = []
    sessions = []
    for i in range(n_students):
        student_id = f"STUDENT_{i:04d}"
        enrolled = as_of - timedelta(days=int(enrolled_days_ago[i]))
        status = "churned" if churned[i] else ("paused" if paused[i] else "active")

        if churned[i]:
            n_sessions = int(rng.integers(0, 9))
            score_mean, follow_up_p, engagement_mean, tutor_pool = 5.5, 0.3, 5.0, 5
        else:
            n_sessions = int(rng.integers(2, 25))
            score_mean, follow_up_p, engagement_mean, tutor_pool = 7.8, 0.75, 7.5, 2

        churned_date = None
        if churned[i]:
            churned_date = enrolled + timedelta(days=int(max(1, n_sessions) * 7))

        students.append({
            "STUDENT_ID": student_id,
            "STATUS": status,
            "ENROLLED_SINCE": pd.Timestamp(enrolled),
            "CHURNED_DATE": pd.Timestamp(churned_date) if churned_date else pd.NaT,
            "NAME": f"Student {i}",
            "CHURN_SURVEY_RESPONSE": (
                str(rng.choice(SURVEY_RESPONSES)) if churned[i] and rng.random() < 0.5 else None
            ),
            "CHURN_REASONS": (
                REASON_SEPARATOR.join(
                    rng.choice(CHURN_REASONS, size=int(rng.integers(1, 3)), replace=False)
                )
                if churned[i] else None
            ),
        })

        for j in range(n_sessions):
            score = float(np.clip(rng.normal(score_mean, 1.2), 0, 10).round(1))
            engagement = float(np.clip(rng.normal(engagement_mean, 1.5), 0, 10).round(1))
            sessions.append({
                "SESSION_ID": f"{student_id}_S{j:03d}",
                "STUDENT_ID": student_id,
                "TUTOR_ID": f"TUTOR_{int(rng.integers(0, tutor_pool)):02d}_{i % 7}",
                "SCHEDULED_START": pd.Timestamp(enrolled + timedelta(days=7 * j)),
                "STATUS": "completed" if rng.random() > 0.08 else "cancelled",
                # ~10% of sessions unscored, ~30% without audio metrics
                "OVERALL_SESSION_SCORE": score if rng.random() > 0.10 else None,
                "FOLLOW_UP_BOOKED": bool(rng.random() < follow_up_p),
                "STUDENT_ENGAGEMENT_SCORE": engagement if rng.random() > 0.30 else None,
            })

    students_df = pd.DataFrame(students)
    sessions_df = pd.DataFrame(
        sessions,
        columns=[
            "SESSION_ID", "STUDENT_ID", "TUTOR_ID", "SCHEDULED_START", "STATUS",
            "OVERALL_SESSION_SCORE", "FOLLOW_UP_BOOKED", "STUDENT_ENGAGEMENT_SCORE",
        ],
    )
    return students_df, sessions_df
