"""Ports (interfaces) for RxTutor dependency inversion.

These abstract interfaces define how the pure study logic reaches persisted
state, so reducers and parsers stay testable without any storage.
"""

from .profile_repository import ProfileRepository
from .question_bank_repository import QuestionBankRepository
from .study_state_repository import StudyStateRepository

__all__ = [
    "ProfileRepository",
    "QuestionBankRepository",
    "StudyStateRepository",
]
