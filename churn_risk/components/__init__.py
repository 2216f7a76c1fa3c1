"""Churn factor components."""

from .base import BaseFactor
from .first_session import FirstSessionFactor
from .session_count import SessionCountFactor
from .follow_up import FollowUpFactor
from .session_score import SessionScoreFactor
from .tutor_consistency import TutorConsistencyFactor
from .engagement import EngagementFactor

__all__ = [
    "BaseFactor",
    "FirstSessionFactor",
    "SessionCountFactor",
    "FollowUpFactor",
    "SessionScoreFactor",
    "TutorConsistencyFactor",
    "EngagementFactor",
]
