"""
LLM-delegated question extraction for standard and grid exam layouts.

Standard banks are split into overlapping text chunks, grid slides are sent
to the vision endpoint one question/answer page pair at a time. Both merge
their results through stem-prefix deduplication.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence

from config import Config, ParserThresholds
from core.format_classifier import count_choice_markers
from core.json_extract import extract_json
from core.pdf_processor import PDFPage, resize_image_if_needed
from core.question import Question, question_from_llm

if TYPE_CHECKING:
    from models.llm_manager import LLMManager

logger = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[str], None]]


STANDARD_EXTRACTION_PROMPT = """Extract ALL medical exam questions from this text. Return ONLY valid JSON, no markdown:
{{"questions":[{{"stem":"complete question text ending with ?","choices":{{"A":"...","B":"...","C":"...","D":"..."}},"correct":"A","explanation":"explanation text or null","topic":"medical topic","difficulty":"easy|medium|hard","type":"clinicalVignette|mechanismBased|pharmacology|laboratory"}}]}}

Rules:
- Only extract questions actually present in the text. Never invent, complete or rewrite a question.
- Copy each stem as it appears in the text.
- If an answer key shows the correct answer, include it; otherwise set correct to null.
- If no explanation exists set it to null.
- Detect question type from content.

TEXT:
{text}"""


GRID_EXTRACTION_PROMPT = """This is a medical exam slide with multiple questions arranged in a grid/table layout.
Each cell in the grid contains one complete question with answer choices A, B, C, D.

Extract EVERY question from this slide. There should be multiple questions per slide.

If an answer page is provided, use it to determine the correct answer for each question.

Return ONLY valid JSON with no markdown:
{{"questions":[{{
  "stem": "complete question text ending with ?",
  "choices": {{"A": "...", "B": "...", "C": "...", "D": "..."}},
  "correct": "B",
  "explanation": "why this is correct based on answer page, or null",
  "topic": "medical topic from the lecture title on the slide",
  "difficulty": "easy|medium|hard",
  "type": "clinicalVignette|mechanismBased|pharmacology|laboratory"
}}]}}

Rules:
- Extract ALL questions visible, even if 6 questions are on one slide
- Only extract questions actually shown; never invent questions
- If the answer page shows which answer is correct (highlighted, marked, or labeled), use it
- Set correct to null if you cannot determine the answer
- The topic should come from the lecture title shown on the slide (e.g. 'Lecture 50: Introduction to Nutrition')

EXTRACTED TEXT FROM SLIDE:
{text}"""


def chunk_text(text: str, size: int, overlap: int) -> List[str]:
    """Split text into windows of `size` chars, each overlapping the previous.

    Overlap keeps a question that straddles a boundary whole in at least one
    chunk; deduplication removes the second copy.
    """
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if not 0 <= overlap < size:
        raise ValueError("overlap must be in [0, size)")

    step = size - overlap
    return [text[i:i + size] for i in range(0, len(text), step)]


class StemDeduplicator:
    """Accepts a stem only if its prefix has not been seen before."""

    def __init__(self, prefix_length: int = 60, min_length: int = 0):
        self.prefix_length = prefix_length
        self.min_length = min_length
        self._seen: set = set()

    def accept(self, stem: Optional[str]) -> bool:
        if not stem or len(stem) <= self.min_length:
            return False
        key = stem[:self.prefix_length]
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __len__(self) -> int:
        return len(self._seen)


@dataclass
class GridGroup:
    """A choice-dense question page and its optional answer page."""
    question_page: PDFPage
    answer_page: Optional[PDFPage] = None

    @property
    def combined_text(self) -> str:
        text = self.question_page.text
        if self.answer_page is not None:
            text += "\n\nANSWER PAGE:\n" + self.answer_page.text
        return text


def _normalize_ws(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip().lower()


def verify_stems_in_source(questions: Iterable[Question], source: str) -> List[str]:
    """Stems that do not occur in the source text (whitespace-insensitive).

    A non-empty result means the model paraphrased or fabricated questions.
    """
    haystack = _normalize_ws(source)
    return [
        q.stem for q in questions
        if q.stem and _normalize_ws(q.stem) not in haystack
    ]


def _questions_payload(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, list):
        items = value
    elif isinstance(value, dict):
        items = value.get("questions") or []
    else:
        items = []
    return [q for q in items if isinstance(q, dict)]


class ExamParser:
    """Extracts question records through LLM calls."""

    def __init__(self, llm: "LLMManager", thresholds: Optional[ParserThresholds] = None,
                 max_workers: Optional[int] = None,
                 render_scale: Optional[float] = None):
        """Initialize exam parser.

        Args:
            llm: LLM manager (text + vision)
            thresholds: Layout heuristics (defaults to Config.thresholds())
            max_workers: Concurrent chunk requests; 1 keeps calls sequential
            render_scale: Scale for grid page renders
        """
        self.llm = llm
        self.thresholds = thresholds or Config.thresholds()
        self.max_workers = max(1, max_workers or Config.LLM_MAX_WORKERS)
        self.render_scale = render_scale or Config.GRID_RENDER_SCALE

    # ------------------------------------------------------------------
    # Standard format
    # ------------------------------------------------------------------

    def parse_standard(self, full_text: str, exam_title: str = "",
                       on_progress: ProgressCallback = None) -> List[Question]:
        """Chunk the full text and extract questions chunk by chunk.

        Raises:
            MissingCredentialsError: before any call if no key is configured
        """
        self.llm.require_credentials()

        t = self.thresholds
        chunks = chunk_text(full_text, t.chunk_size, t.chunk_overlap)
        _notify(on_progress, f"Processing {len(chunks)} section(s) with AI...")

        # map() yields in submission order, so dedup below sees chunks in
        # document order regardless of completion order
        if self.max_workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                per_chunk = list(pool.map(self._extract_chunk, range(len(chunks)), chunks))
        else:
            per_chunk = []
            for index, chunk in enumerate(chunks):
                _notify(on_progress, f"Section {index + 1} of {len(chunks)}...")
                per_chunk.append(self._extract_chunk(index, chunk))

        dedup = StemDeduplicator(t.stem_prefix_length, t.min_stem_length)
        questions: List[Question] = []
        for raw_questions in per_chunk:
            for raw in raw_questions:
                stem = raw.get("stem") if isinstance(raw.get("stem"), str) else ""
                stem = stem.strip()
                if not dedup.accept(stem):
                    continue
                num = len(questions) + 1
                questions.append(question_from_llm(
                    raw, f"q{num}", num, default_topic=exam_title or "Exam Review"
                ))

        logger.info(f"Standard parse: {len(questions)} question(s) from {len(chunks)} chunk(s)")
        return questions

    def _extract_chunk(self, index: int, chunk: str) -> List[Dict[str, Any]]:
        """Raw question dicts for one chunk; [] if the response is unusable."""
        response = self.llm.generate(
            STANDARD_EXTRACTION_PROMPT.format(text=chunk),
            temperature=0.1,
            max_tokens=8000,
        )
        if not response.success:
            logger.warning(f"Chunk {index + 1} request failed: {response.error}")
            return []

        result = extract_json(response.text)
        if not result.ok:
            logger.warning(f"Chunk {index + 1} parse error: {result.error}")
            return []
        return _questions_payload(result.value)

    # ------------------------------------------------------------------
    # Grid format
    # ------------------------------------------------------------------

    def find_grid_groups(self, pages: Sequence[PDFPage],
                         min_choice_count: Optional[int] = None) -> List[GridGroup]:
        """Pair each choice-dense page with the answer page that follows it.

        The next page counts as the answer page when it is itself
        choice-bearing or mentions 'answer'/'correct'.
        """
        t = self.thresholds
        threshold = min_choice_count if min_choice_count is not None else t.grid_choice_threshold

        groups: List[GridGroup] = []
        i = 0
        while i < len(pages):
            page = pages[i]
            if count_choice_markers(page.text) >= threshold:
                group = GridGroup(question_page=page)
                if i + 1 < len(pages):
                    nxt = pages[i + 1]
                    lowered = nxt.text.lower()
                    if (count_choice_markers(nxt.text) >= t.answer_page_choice_threshold
                            or "answer" in lowered or "correct" in lowered):
                        group.answer_page = nxt
                        i += 1
                groups.append(group)
            i += 1
        return groups

    def parse_grid(self, pages: Sequence[PDFPage], on_progress: ProgressCallback = None,
                   min_choice_count: Optional[int] = None,
                   start_num: int = 1) -> List[Question]:
        """Extract every question from each grid slide via the vision endpoint.

        Raises:
            MissingCredentialsError: before any call if no key is configured
        """
        self.llm.require_credentials()

        t = self.thresholds
        groups = self.find_grid_groups(pages, min_choice_count)
        _notify(on_progress, f"Found {len(groups)} grid question slide(s)...")

        dedup = StemDeduplicator(t.grid_stem_prefix_length, t.grid_min_stem_length)
        questions: List[Question] = []

        for gi, group in enumerate(groups):
            _notify(on_progress, f"Parsing grid slide {gi + 1} of {len(groups)}...")
            for raw in self._extract_grid_group(gi, group):
                stem = raw.get("stem") if isinstance(raw.get("stem"), str) else ""
                stem = stem.strip()
                if not dedup.accept(stem):
                    continue
                num = start_num + len(questions)
                questions.append(question_from_llm(raw, f"q{num}", num))

        logger.info(f"Grid parse: {len(questions)} question(s) from {len(groups)} slide(s)")
        return questions

    def _extract_grid_group(self, index: int, group: GridGroup) -> List[Dict[str, Any]]:
        try:
            images = []
            if group.answer_page is not None and group.answer_page.can_render:
                images.append(resize_image_if_needed(group.answer_page.render(self.render_scale)))
            if group.question_page.can_render:
                images.append(resize_image_if_needed(group.question_page.render(self.render_scale)))
        except Exception as e:
            logger.warning(f"Grid slide {index + 1} render error: {e}")
            return []

        prompt = GRID_EXTRACTION_PROMPT.format(
            text=group.combined_text[:self.thresholds.grid_text_limit]
        )
        response = self.llm.generate(prompt, images=images, temperature=0.1, max_tokens=6000)
        if not response.success:
            logger.warning(f"Grid slide {index + 1} request failed: {response.error}")
            return []

        result = extract_json(response.text)
        if not result.ok:
            logger.warning(f"Grid slide {index + 1} parse error: {result.error}")
            return []
        return _questions_payload(result.value)


def _notify(on_progress: ProgressCallback, message: str):
    logger.debug(message)
    if on_progress is not None:
        on_progress(message)
