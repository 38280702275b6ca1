from typing import Iterable, List, Union


class SurveyServiceError(Exception):
    """Base class; carries one or more human-readable messages."""

    def __init__(self, errors: Union[str, Iterable[str]]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors) or ["Request failed."]
        super().__init__("; ".join(self.errors))


class NotFoundError(SurveyServiceError):
    """Raised when a survey, question, rule or channel does not exist."""


class PermissionDeniedError(SurveyServiceError):
    """Raised when the acting user lacks the role an authoring action needs."""


class EligibilityError(SurveyServiceError):
    """Raised when a survey cannot take responses right now (status, schedule, quota, channel)."""


class ValidationFailedError(SurveyServiceError):
    """Raised with every collected violation of a submission or authoring request."""


class ConflictError(SurveyServiceError):
    """Raised when a mutation conflicts with current state (lifecycle, references)."""


class PersistenceError(SurveyServiceError):
    """Raised after a rolled-back transaction; safe to retry."""
