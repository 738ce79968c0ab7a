"""
RxTutor Core - exam ingestion and adaptive study logic.

Main components:
- Ingestion: PDF page extraction, layout classification, question parsing
- Learning model: pure profile reducer and system-prompt builder
- Study aids: histology identification, Deep-Learn phases, objectives
"""

from core.format_classifier import ExamFormat, classify_format
from core.json_extract import ExtractionResult, extract_json
from core.learning_model import build_system_prompt, record_answer
from core.question import Difficulty, Question, QuestionType

__all__ = [
    "ExamFormat",
    "classify_format",
    "ExtractionResult",
    "extract_json",
    "build_system_prompt",
    "record_answer",
    "Difficulty",
    "Question",
    "QuestionType",
]
