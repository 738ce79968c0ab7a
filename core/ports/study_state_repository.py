"""Abstract repository interface for small per-student study state.

Confidence ratings, bookmarks and learning objectives are each stored under
their own key, independently of the profile and the question banks.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Set


class StudyStateRepository(ABC):
    """Persistence port for confidence ratings, bookmarks and objectives."""

    @abstractmethod
    def load_confidence(self) -> Dict[str, int]:
        """Question id -> self-rated confidence."""
        pass

    @abstractmethod
    def save_confidence(self, ratings: Dict[str, int]) -> None:
        pass

    @abstractmethod
    def load_bookmarks(self) -> Set[str]:
        """Bookmarked question ids."""
        pass

    @abstractmethod
    def save_bookmarks(self, bookmarks: Set[str]) -> None:
        pass

    @abstractmethod
    def load_objectives(self) -> List[Dict[str, Any]]:
        """Learning objectives as persisted dicts."""
        pass

    @abstractmethod
    def save_objectives(self, objectives: List[Dict[str, Any]]) -> None:
        pass
