"""Abstract repository interface for parsed question banks.

Banks are keyed by source file name. Each value holds the parse result
(questions, exam title, detected format, ...).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class QuestionBankRepository(ABC):
    """Persistence port for the file-name -> question-bank map."""

    @abstractmethod
    def load_banks(self) -> Dict[str, Dict[str, Any]]:
        """Load every stored bank keyed by file name."""
        pass

    @abstractmethod
    def merge_bank(self, file_name: str, bank: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """Insert or replace one bank without losing concurrently merged banks.

        Returns:
            The full bank map after the merge
        """
        pass

    @abstractmethod
    def delete_bank(self, file_name: str) -> bool:
        """Remove one bank. Returns False if it did not exist."""
        pass
