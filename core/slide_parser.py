"""
Slide-deck exam parsing.

Each logical question spans consecutive slides labelled "QUESTION n": a
question slide, then an answer/explanation slide. Text slides are parsed
locally; image-heavy slides (histology) are rasterised and kept as image
questions. Unlabelled choice-bearing slides fall back to the grid parser.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from config import Config
from core.exam_parser import ExamParser, ProgressCallback, _notify
from core.format_classifier import count_choice_markers
from core.pdf_processor import PDFPage
from core.question import PLACEHOLDER_CHOICE, Difficulty, Question, QuestionType

logger = logging.getLogger(__name__)

LEADING_LABEL = re.compile(r"^\s*QUESTION\s+(\d+)\s*", re.IGNORECASE)
CHOICE_LINE = re.compile(r"^([A-E])[.)]\s*(.*)")
HEADER_LINE = re.compile(r"^(Lecture|DLA)\s+\d+")
LECTURE_TITLE = re.compile(r"Lecture\s+\d+[^\n]*")
EXPLANATION_LINE = re.compile(r"^[Ee]xplanation[:\s]")
EXPLANATION_PREFIX = re.compile(r"^[Ee]xplanation[:\s]*")
# Choice letters and "Explanation" that share a line with preceding text,
# separated by a run of 2+ spaces, begin a new logical line
INLINE_BREAK = re.compile(r"[ \t]{2,}(?=[A-E][.)]\s|[Ee]xplanation\b)")
SEGMENT_BREAK = re.compile(r"\s{2,}|\n")

IMAGE_QUESTION_STEM = (
    "Examine the histological slide. Identify the labeled structures or answer the question."
)


@dataclass
class SlideGroup:
    """All physical pages belonging to one 'QUESTION n' label."""
    number: int
    pages: List[PDFPage] = field(default_factory=list)

    @property
    def first(self) -> PDFPage:
        return self.pages[0]

    @property
    def answer_page(self) -> Optional[PDFPage]:
        return self.pages[-1] if len(self.pages) > 1 else None


@dataclass
class SlideText:
    """Fields recovered from a text question slide and its answer slide."""
    stem: str
    choices: Dict[str, str]
    correct: Optional[str]
    explanation: Optional[str]


def strip_label(text: str) -> str:
    return LEADING_LABEL.sub("", text or "", count=1)


def _logical_lines(text: str) -> List[str]:
    text = INLINE_BREAK.sub("\n", text or "")
    return [line.strip() for line in text.split("\n") if line.strip()]


def group_slide_pages(pages: Sequence[PDFPage]) -> List[SlideGroup]:
    """Group pages by their leading 'QUESTION n' label, ordered by n."""
    groups: Dict[int, SlideGroup] = {}
    for page in pages:
        match = LEADING_LABEL.match(page.text)
        if not match:
            continue
        number = int(match.group(1))
        groups.setdefault(number, SlideGroup(number=number)).pages.append(page)
    return [groups[n] for n in sorted(groups)]


def parse_question_text(question_text: str):
    """Split a question slide into stem lines and lettered choices."""
    stem_lines: List[str] = []
    choices: Dict[str, str] = {}
    current = None

    for line in _logical_lines(strip_label(question_text)):
        if HEADER_LINE.match(line):
            continue
        match = CHOICE_LINE.match(line)
        if match:
            current = match.group(1)
            choices[current] = match.group(2).strip()
        elif current is not None:
            choices[current] = (choices[current] + " " + line).strip()
        else:
            stem_lines.append(line)

    return " ".join(stem_lines).strip(), choices


def parse_answer_text(answer_text: str):
    """Find the correct letter and explanation on an answer slide.

    A lettered line is the answer when it mentions 'correct' and has no
    'incorrect' within its first 40 characters. An 'Explanation' line opens
    an accumulator that runs until the next lettered line.
    """
    correct = None
    explanation: List[str] = []
    in_explanation = False

    for line in _logical_lines(strip_label(answer_text)):
        match = CHOICE_LINE.match(line)
        if match:
            content = match.group(2)
            if re.search(r"[Cc]orrect", content) and not re.search(r"[Ii]ncorrect", content[:40]):
                correct = match.group(1)
            in_explanation = False
        elif EXPLANATION_LINE.match(line):
            in_explanation = True
            rest = EXPLANATION_PREFIX.sub("", line)
            if rest:
                explanation.append(rest)
        elif in_explanation:
            explanation.append(line)

    return correct, " ".join(explanation).strip() or None


def parse_text_slide(question_text: str, answer_text: str = "") -> SlideText:
    """Parse one text-based question group."""
    stem, choices = parse_question_text(question_text)
    correct, explanation = parse_answer_text(answer_text) if answer_text else (None, None)
    return SlideText(stem=stem, choices=choices, correct=correct, explanation=explanation)


def image_slide_topic(text: str) -> str:
    """First text segment after the label, or 'Histology'."""
    remainder = strip_label(text).strip()
    first = SEGMENT_BREAK.split(remainder)[0].strip() if remainder else ""
    return first or "Histology"


class SlideDeckParser:
    """Parses 'QUESTION n' slide decks, mostly without LLM calls."""

    def __init__(self, exam_parser: ExamParser, render_scale: Optional[float] = None):
        self.exam_parser = exam_parser
        self.thresholds = exam_parser.thresholds
        self.render_scale = render_scale or Config.SLIDE_RENDER_SCALE

    def is_image_group(self, group: SlideGroup) -> bool:
        first = group.first
        return (first.embedded_image_count > self.thresholds.image_slide_min_images
                and len(first.text) < self.thresholds.image_slide_max_text)

    def parse(self, pages: Sequence[PDFPage], on_progress: ProgressCallback = None) -> List[Question]:
        groups = group_slide_pages(pages)
        _notify(on_progress, f"Found {len(groups)} labelled question slide group(s)...")

        questions: List[Question] = []
        used = set()
        for group in groups:
            used.update(page.page_number for page in group.pages)
            if self.is_image_group(group):
                questions.append(self.build_image_question(group))
            else:
                questions.append(self.build_text_question(group))

        remaining = [
            page for page in pages
            if page.page_number not in used
            and count_choice_markers(page.text) >= self.thresholds.slide_fallback_choice_threshold
        ]
        if remaining:
            questions.extend(self._parse_unlabelled(remaining, questions, on_progress))

        logger.info(f"Slide deck parse: {len(questions)} question(s)")
        return questions

    def _parse_unlabelled(self, remaining: List[PDFPage], questions: List[Question],
                          on_progress: ProgressCallback) -> List[Question]:
        if not self.exam_parser.llm.has_credentials:
            logger.warning(
                f"Skipping {len(remaining)} unlabelled slide(s): no API key for grid fallback"
            )
            return []

        _notify(on_progress, f"Parsing {len(remaining)} unlabelled question slide(s)...")
        # Labels may skip numbers, so continue after the highest one in use
        start = max([len(questions)] + [q.num or 0 for q in questions]) + 1
        return self.exam_parser.parse_grid(
            remaining,
            on_progress,
            min_choice_count=self.thresholds.slide_fallback_choice_threshold,
            start_num=start,
        )

    def build_image_question(self, group: SlideGroup) -> Question:
        question_image = answer_image = None
        try:
            if group.first.can_render:
                question_image = group.first.render_b64(self.render_scale)
            if len(group.pages) > 1 and group.pages[1].can_render:
                answer_image = group.pages[1].render_b64(self.render_scale)
        except Exception as e:
            logger.warning(f"QUESTION {group.number} render error: {e}")

        return Question(
            id=f"q{group.number}",
            num=group.number,
            type=QuestionType.IMAGE,
            image_question=True,
            subject="Histology",
            topic=image_slide_topic(group.first.text),
            stem=IMAGE_QUESTION_STEM,
            question_page_image=question_image,
            answer_page_image=answer_image,
            choices={letter: PLACEHOLDER_CHOICE for letter in "ABCD"},
            correct=None,
            explanation="See annotated answer slide.",
            difficulty=Difficulty.MEDIUM,
        )

    def build_text_question(self, group: SlideGroup) -> Question:
        answer = group.answer_page
        parsed = parse_text_slide(group.first.text, answer.text if answer else "")
        lecture = LECTURE_TITLE.search(group.first.text)

        return Question(
            id=f"q{group.number}",
            num=group.number,
            type=QuestionType.CLINICAL_VIGNETTE,
            subject="Uploaded",
            topic=lecture.group(0).strip()[:60] if lecture else "Review",
            stem=parsed.stem,
            choices=parsed.choices,
            correct=parsed.correct,
            explanation=parsed.explanation,
            difficulty=Difficulty.MEDIUM,
        )
