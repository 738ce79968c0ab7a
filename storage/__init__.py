"""
RxTutor Storage - SQLite key-value store and repositories.
"""

from storage.database import Database
from storage.repositories import (
    SQLiteProfileRepository,
    SQLiteQuestionBankRepository,
    SQLiteStudyStateRepository,
    migrate_banks,
)

__all__ = [
    "Database",
    "SQLiteProfileRepository",
    "SQLiteQuestionBankRepository",
    "SQLiteStudyStateRepository",
    "migrate_banks",
]
