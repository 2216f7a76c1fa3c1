"""Error types shared by the scoring and calibration packages."""


class ChurnRiskError(Exception):
    """Base class for all churn risk errors."""


class WeightValidationError(ChurnRiskError, ValueError):
    """Weight map is malformed or does not sum to 1.0."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Weight validation failed: {', '.join(self.errors)}")


class NotFoundError(ChurnRiskError, LookupError):
    """Referenced student, session or history entry does not exist."""


class StorageError(ChurnRiskError):
    """Weight store or a repository could not be reached."""
