"""
Question record shared by every parser and quiz view.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

PLACEHOLDER_CHOICE = "(See image)"
NO_ANSWER_KEY = "no answer key"


class QuestionType(Enum):
    """Content style of a question."""
    CLINICAL_VIGNETTE = "clinicalVignette"
    MECHANISM_BASED = "mechanismBased"
    PHARMACOLOGY = "pharmacology"
    LABORATORY = "laboratory"
    IMAGE = "image"

    @classmethod
    def parse(cls, value: Any, default: "QuestionType" = None) -> "QuestionType":
        for member in cls:
            if member.value == value or member.name == value:
                return member
        return default or cls.CLINICAL_VIGNETTE


class Difficulty(Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.MEDIUM


@dataclass
class Question:
    """One quiz question, regardless of source format."""
    id: str
    type: QuestionType = QuestionType.CLINICAL_VIGNETTE
    stem: str = ""
    choices: Dict[str, str] = field(default_factory=dict)
    correct: Optional[str] = None
    explanation: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    topic: Optional[str] = None
    subtopic: Optional[str] = None
    num: Optional[int] = None
    subject: Optional[str] = None
    image_question: bool = False
    question_page_image: Optional[str] = None
    answer_page_image: Optional[str] = None
    # Fields a specific producer adds (histology metadata, source file, ...)
    extra: Dict[str, Any] = field(default_factory=dict)

    def populated_choices(self) -> Dict[str, str]:
        return {k: v for k, v in self.choices.items() if v and str(v).strip()}

    def is_multiple_choice_ready(self) -> bool:
        """At least two populated choices, required by multiple-choice views."""
        return len(self.populated_choices()) >= 2

    def has_answer_key(self) -> bool:
        return bool(self.correct) and self.correct in self.choices

    def reveal_answer(self) -> str:
        """Correct letter, or the 'no answer key' marker."""
        return self.correct if self.has_answer_key() else NO_ANSWER_KEY

    def is_correct(self, letter: str) -> Optional[bool]:
        """Grade a chosen letter; None when there is no key to grade against."""
        if not self.has_answer_key():
            return None
        return letter.strip().upper() == self.correct

    def to_dict(self) -> Dict[str, Any]:
        """Persisted (camelCase) representation."""
        data = {
            "id": self.id,
            "num": self.num,
            "type": self.type.value,
            "imageQuestion": self.image_question,
            "subject": self.subject,
            "topic": self.topic,
            "subtopic": self.subtopic,
            "stem": self.stem,
            "choices": dict(self.choices),
            "correct": self.correct,
            "explanation": self.explanation,
            "difficulty": self.difficulty.value,
        }
        if self.question_page_image is not None:
            data["questionPageImage"] = self.question_page_image
        if self.answer_page_image is not None:
            data["answerPageImage"] = self.answer_page_image
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        known = {
            "id", "num", "type", "imageQuestion", "subject", "topic", "subtopic",
            "stem", "choices", "correct", "explanation", "difficulty",
            "questionPageImage", "answerPageImage",
        }
        return cls(
            id=str(data.get("id", "")),
            num=data.get("num"),
            # "clinical" is what early slide-deck imports stored
            type=QuestionType.parse(
                data.get("type"),
                QuestionType.IMAGE if data.get("imageQuestion") else None,
            ),
            image_question=bool(data.get("imageQuestion", False)),
            subject=data.get("subject"),
            topic=data.get("topic"),
            subtopic=data.get("subtopic"),
            stem=data.get("stem") or "",
            choices=dict(data.get("choices") or {}),
            correct=data.get("correct"),
            explanation=data.get("explanation"),
            difficulty=Difficulty.parse(data.get("difficulty")),
            question_page_image=data.get("questionPageImage"),
            answer_page_image=data.get("answerPageImage"),
            extra={k: v for k, v in data.items() if k not in known},
        )


def normalize_choices(raw: Any) -> Dict[str, str]:
    """Coerce an LLM 'choices' value (dict or list) into letter -> text."""
    if isinstance(raw, dict):
        return {
            str(k).strip().upper()[:1]: str(v).strip()
            for k, v in raw.items()
            if str(k).strip() and v is not None
        }
    if isinstance(raw, list):
        return {chr(ord("A") + i): str(v).strip() for i, v in enumerate(raw[:5]) if v is not None}
    return {}


def normalize_correct(raw: Any, choices: Dict[str, str]) -> Optional[str]:
    """Uppercased answer letter if it names one of the choices, else None."""
    if not raw:
        return None
    letter = str(raw).strip().upper()[:1]
    return letter if letter in choices else None


def _text_or_none(value: Any) -> Optional[str]:
    """Stripped string, or None for blanks and non-string values."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def question_from_llm(raw: Dict[str, Any], question_id: str, num: int,
                      default_topic: str = "Exam Review",
                      subject: str = "Uploaded") -> Question:
    """Normalise one question object returned by an extraction prompt.

    Free-text fields the model filled with something other than a string
    (a list of topics, a nested object) fall back to their defaults.
    """
    choices = normalize_choices(raw.get("choices"))
    stem = raw.get("stem")
    return Question(
        id=question_id,
        num=num,
        type=QuestionType.parse(raw.get("type")),
        subject=subject,
        topic=_text_or_none(raw.get("topic")) or default_topic,
        subtopic=_text_or_none(raw.get("subtopic")),
        stem=stem.strip() if isinstance(stem, str) else "",
        choices=choices,
        correct=normalize_correct(raw.get("correct"), choices),
        explanation=_text_or_none(raw.get("explanation")),
        difficulty=Difficulty.parse(raw.get("difficulty")),
    )
