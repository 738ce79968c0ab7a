"""SQLite implementations of the persistence ports.

Each repository opens its own short-lived Database connection per call, so
several ingestion jobs (or processes) can share one database file.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from core.learning_model import normalize_profile
from core.ports import ProfileRepository, QuestionBankRepository, StudyStateRepository
from storage.database import (
    BANKS_KEY,
    BOOKMARKS_KEY,
    CONFIDENCE_KEY,
    OBJECTIVES_KEY,
    PROFILE_KEY,
    Database,
)

logger = logging.getLogger(__name__)

IMPORTED_BANK = "Imported"


def migrate_banks(raw: Any) -> Dict[str, Dict[str, Any]]:
    """Bring any stored bank shape to the file-name keyed map.

    Older stores kept either a list of {examTitle, questions} records (or bare
    question objects), or a map keyed by exam title. Banks that carry their
    own fileName are re-keyed under it.
    """
    if isinstance(raw, dict):
        entries = list(raw.items())
    elif isinstance(raw, list):
        entries = [(None, item) for item in raw]
    else:
        return {}

    banks: Dict[str, Dict[str, Any]] = {}
    loose: List[Dict[str, Any]] = []
    for key, value in entries:
        if isinstance(value, list):
            value = {"examTitle": key, "questions": value}
        if not isinstance(value, dict):
            continue
        if not isinstance(value.get("questions"), list):
            # A bare question object from the oldest list format
            if value.get("stem"):
                loose.append(value)
            continue

        name = value.get("fileName") or key or value.get("examTitle")
        if not name:
            continue
        bank = dict(value)
        bank["fileName"] = name
        bank.setdefault("examTitle", name)
        banks[name] = bank

    if loose:
        existing = banks.setdefault(IMPORTED_BANK, {
            "fileName": IMPORTED_BANK,
            "examTitle": IMPORTED_BANK,
            "questions": [],
        })
        existing["questions"] = list(existing["questions"]) + loose
    return banks


class SQLiteProfileRepository(ProfileRepository):
    """Learning profile under the profile key."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path

    def load_profile(self) -> Dict[str, Any]:
        with Database(self.db_path) as db:
            return normalize_profile(db.get_json(PROFILE_KEY))

    def save_profile(self, profile: Dict[str, Any]) -> None:
        with Database(self.db_path) as db:
            db.set_json(PROFILE_KEY, profile)


class SQLiteQuestionBankRepository(QuestionBankRepository):
    """File-name keyed question banks under a single key."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path

    def load_banks(self) -> Dict[str, Dict[str, Any]]:
        with Database(self.db_path) as db:
            return migrate_banks(db.get_json(BANKS_KEY, {}))

    def merge_bank(self, file_name: str, bank: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """Insert or replace one bank atomically.

        The read and the write happen under one write lock, so two jobs
        finishing together both land in the stored map.
        """
        with Database(self.db_path) as db:
            with db.transaction():
                banks = migrate_banks(db.get_json(BANKS_KEY, {}))
                banks[file_name] = {**bank, "fileName": file_name}
                db.set_json(BANKS_KEY, banks)
        logger.info(f"Stored bank {file_name!r} ({len(bank.get('questions') or [])} questions)")
        return banks

    def delete_bank(self, file_name: str) -> bool:
        with Database(self.db_path) as db:
            with db.transaction():
                banks = migrate_banks(db.get_json(BANKS_KEY, {}))
                if file_name not in banks:
                    return False
                del banks[file_name]
                if banks:
                    db.set_json(BANKS_KEY, banks)
                else:
                    db.delete(BANKS_KEY)
        return True


class SQLiteStudyStateRepository(StudyStateRepository):
    """Confidence ratings, bookmarks and objectives, one key each."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path

    def _load(self, key: str, default: Any) -> Any:
        with Database(self.db_path) as db:
            value = db.get_json(key, default)
        return value if isinstance(value, type(default)) else default

    def _save(self, key: str, value: Any):
        with Database(self.db_path) as db:
            db.set_json(key, value)

    def load_confidence(self) -> Dict[str, int]:
        ratings = self._load(CONFIDENCE_KEY, {})
        return {str(k): int(v) for k, v in ratings.items() if isinstance(v, (int, float))}

    def save_confidence(self, ratings: Dict[str, int]) -> None:
        self._save(CONFIDENCE_KEY, dict(ratings))

    def load_bookmarks(self) -> Set[str]:
        return {str(item) for item in self._load(BOOKMARKS_KEY, [])}

    def save_bookmarks(self, bookmarks: Set[str]) -> None:
        self._save(BOOKMARKS_KEY, sorted(bookmarks))

    def load_objectives(self) -> List[Dict[str, Any]]:
        return [item for item in self._load(OBJECTIVES_KEY, []) if isinstance(item, dict)]

    def save_objectives(self, objectives: List[Dict[str, Any]]) -> None:
        self._save(OBJECTIVES_KEY, list(objectives))
