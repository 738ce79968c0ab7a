"""
Exam layout classification.

Chooses which ingestion strategy runs for a PDF. The rules are heuristics
over the extracted text; a misclassification only changes the parser used.
"""

import logging
import re
from enum import Enum
from typing import Optional, Sequence

from config import Config, ParserThresholds
from core.pdf_processor import PDFPage

logger = logging.getLogger(__name__)

SLIDE_LABEL_PATTERN = re.compile(r"QUESTION\s+(\d+)", re.IGNORECASE)
# A./B./C./D. as a standalone token at line start or after whitespace
CHOICE_MARKER_PATTERN = re.compile(r"(?:^|(?<=\s))[A-D]\.(?=\s|$)", re.MULTILINE)
NUMBERED_LINE_PATTERN = re.compile(r"^\s*\d+[.)]\s+\S", re.MULTILINE)


class ExamFormat(Enum):
    """Ingestion strategy for an exam document."""
    SLIDE_DECK = "slidedeck"
    GRID = "grid"
    STANDARD = "standard"

    @property
    def label(self) -> str:
        return FORMAT_LABELS[self]


FORMAT_LABELS = {
    ExamFormat.SLIDE_DECK: "Slide deck format",
    ExamFormat.GRID: "Grid/table slide format",
    ExamFormat.STANDARD: "Standard question bank format",
}


def count_choice_markers(text: str) -> int:
    """Number of lettered-choice tokens (A. .. D.) in text."""
    return len(CHOICE_MARKER_PATTERN.findall(text or ""))


def distinct_slide_labels(text: str) -> set:
    """Distinct integers appearing in 'QUESTION n' labels."""
    return {int(n) for n in SLIDE_LABEL_PATTERN.findall(text or "")}


def count_numbered_lines(text: str) -> int:
    """Lines starting with an integer followed by '.' or ')'."""
    return len(NUMBERED_LINE_PATTERN.findall(text or ""))


def classify_format(full_text: str, pages: Sequence[PDFPage],
                    thresholds: Optional[ParserThresholds] = None) -> ExamFormat:
    """Pick the ingestion strategy; first matching rule wins.

    1. More than N distinct 'QUESTION n' labels -> slide deck
    2. Any page with >= grid threshold choice markers -> grid
    3. More than N numbered lines -> standard
    4. Otherwise standard
    """
    t = thresholds or Config.thresholds()

    labels = distinct_slide_labels(full_text)
    if len(labels) > t.slide_label_min_distinct:
        logger.debug(f"Slide deck: {len(labels)} distinct QUESTION labels")
        return ExamFormat.SLIDE_DECK

    for page in pages:
        if count_choice_markers(page.text) >= t.grid_choice_threshold:
            logger.debug(f"Grid: page {page.page_number} is choice-dense")
            return ExamFormat.GRID

    if count_numbered_lines(full_text) > t.standard_numbered_min:
        logger.debug("Standard: numbered question list")
        return ExamFormat.STANDARD

    return ExamFormat.STANDARD
