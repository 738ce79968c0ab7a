"""Abstract repository interface for learning-profile persistence.

The learning model is a pure reducer; this port is where its results are
loaded from and written back to.

Implementations:
- SQLiteProfileRepository: local key-value store (storage.repositories)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class ProfileRepository(ABC):
    """Load/save port for the learning profile."""

    @abstractmethod
    def load_profile(self) -> Dict[str, Any]:
        """Load the persisted profile.

        Returns:
            The profile merged over defaults; defaults when nothing is stored
        """
        pass

    @abstractmethod
    def save_profile(self, profile: Dict[str, Any]) -> None:
        """Persist the profile, replacing the stored copy."""
        pass
