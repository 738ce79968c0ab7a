"""
RxTutor Models - LLM provider adapters.
"""

from models.llm_manager import LLMManager, LLMResponse, MissingCredentialsError

__all__ = [
    "LLMManager",
    "LLMResponse",
    "MissingCredentialsError",
]
