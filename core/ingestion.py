"""
Exam ingestion pipeline.

One file in, one question bank out: open, classify, dispatch to the parser
for that layout, then summarise. run_ingestion_jobs drives several files as
independent jobs and merges each successful bank into storage.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Union

from config import Config, ParserThresholds
from core.exam_parser import ExamParser, ProgressCallback, _notify, verify_stems_in_source
from core.format_classifier import ExamFormat, classify_format
from core.pdf_processor import DocumentUnreadableError, PDFProcessor, load_text_document
from core.question import Question
from core.slide_parser import SlideDeckParser
from models.llm_manager import MissingCredentialsError

if TYPE_CHECKING:
    from core.ports import QuestionBankRepository
    from models.llm_manager import LLMManager

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md"}

LECTURE_NUMBER_PATTERNS = [
    re.compile(r"lecture\s*(\d+)", re.IGNORECASE),
    re.compile(r"\blec[\s_-]*(\d+)", re.IGNORECASE),
    re.compile(r"\bL(\d{1,3})\b"),
]


class UnsupportedFileError(Exception):
    """File type the ingestion pipeline cannot read."""
    pass


def detect_lecture_number(text: Optional[str]) -> Optional[int]:
    """Lecture number from a title such as 'Lecture 12', 'lec-12' or 'L12'."""
    for pattern in LECTURE_NUMBER_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return int(match.group(1))
    return None


def collect_subtopics(questions: Iterable[Question]) -> List[str]:
    """Distinct question topics of plausible length, first-seen order."""
    seen: Dict[str, None] = {}
    for q in questions:
        topic = q.topic or q.subject or ""
        if 3 < len(topic) < 80:
            seen.setdefault(topic, None)
    return list(seen)


@dataclass
class ExamParseResult:
    """Everything produced by parsing one exam file."""
    questions: List[Question]
    exam_title: str
    format: ExamFormat
    full_text: str
    subtopics: List[str] = field(default_factory=list)
    lecture_number: Optional[int] = None
    lecture_title: str = ""
    # Stems the model returned that are not in the document text
    unverified_stems: List[str] = field(default_factory=list)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def to_bank(self, file_name: str) -> Dict[str, Any]:
        """Persisted bank record."""
        return {
            "fileName": file_name,
            "examTitle": self.exam_title,
            "format": self.format.value,
            "totalQuestions": self.total_questions,
            "subtopics": list(self.subtopics),
            "lectureNumber": self.lecture_number,
            "lectureTitle": self.lecture_title,
            "questions": [q.to_dict() for q in self.questions],
        }


def parse_exam_file(path: Union[Path, str], llm: "LLMManager",
                    on_progress: ProgressCallback = None,
                    thresholds: Optional[ParserThresholds] = None) -> ExamParseResult:
    """Parse one exam file into questions.

    Args:
        path: PDF, or a plain-text question bank
        llm: LLM manager used by the standard and grid parsers
        on_progress: Optional callback receiving status lines
        thresholds: Layout heuristics (defaults to Config.thresholds())

    Returns:
        ExamParseResult

    Raises:
        FileNotFoundError: path does not exist
        UnsupportedFileError: neither PDF nor text
        DocumentUnreadableError: the PDF cannot be opened
        MissingCredentialsError: an LLM-backed parser was needed without a key
    """
    path = Path(path)
    suffix = path.suffix.lower()
    thresholds = thresholds or Config.thresholds()
    exam_parser = ExamParser(llm, thresholds)
    exam_title = re.sub(r"\.(pdf|txt|md)$", "", path.name, flags=re.IGNORECASE)

    if suffix in TEXT_SUFFIXES:
        document = load_text_document(path)
    elif suffix == ".pdf":
        _notify(on_progress, f"Parsing PDF {path.name}...")
        document = PDFProcessor().open(path)
    else:
        raise UnsupportedFileError(f"Unsupported file type: {path.name}")

    with document:
        full_text = document.full_text
        if suffix in TEXT_SUFFIXES:
            exam_format = ExamFormat.STANDARD
        else:
            exam_format = classify_format(full_text, document.pages, thresholds)
        _notify(on_progress, f"Detected: {exam_format.label}")

        if exam_format == ExamFormat.GRID:
            questions = exam_parser.parse_grid(document.pages, on_progress)
        elif exam_format == ExamFormat.SLIDE_DECK:
            questions = SlideDeckParser(exam_parser).parse(document.pages, on_progress)
        else:
            _notify(on_progress, "AI parsing questions...")
            questions = exam_parser.parse_standard(full_text, exam_title, on_progress)

    _notify(on_progress, f"Extracted {len(questions)} questions")

    unverified: List[str] = []
    if exam_format == ExamFormat.STANDARD:
        unverified = verify_stems_in_source(questions, full_text)
        if unverified:
            logger.warning(f"{path.name}: {len(unverified)} stem(s) not found in the source text")

    return ExamParseResult(
        questions=questions,
        exam_title=exam_title,
        format=exam_format,
        full_text=full_text,
        subtopics=collect_subtopics(questions),
        lecture_number=detect_lecture_number(exam_title),
        lecture_title=exam_title,
        unverified_stems=unverified,
    )


# ----------------------------------------------------------------------
# Jobs
# ----------------------------------------------------------------------

RUNNING = "running"
SUCCESS = "success"
EMPTY = "empty"
FAILED = "failed"


@dataclass
class IngestionJob:
    """Status of one file's ingestion."""
    file_name: str
    status: str = RUNNING
    message: str = ""
    question_count: int = 0
    progress: List[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.status != RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


StatusCallback = Optional[Callable[[IngestionJob], None]]

# Failures that end a job; any other problem degrades to fewer questions
FATAL_ERRORS = (
    DocumentUnreadableError,
    MissingCredentialsError,
    UnsupportedFileError,
    FileNotFoundError,
)


def run_ingestion_jobs(paths: Iterable[Union[Path, str]], llm: "LLMManager",
                       bank_repository: Optional["QuestionBankRepository"] = None,
                       on_status: StatusCallback = None,
                       thresholds: Optional[ParserThresholds] = None) -> List[IngestionJob]:
    """Ingest files one after another, each as an independent job.

    A failing file never affects the others: any error ends only that
    file's job, as failed. Banks with at least one question are merged
    into the repository under their file name.
    """
    jobs: List[IngestionJob] = []
    for raw_path in paths:
        path = Path(raw_path)
        job = IngestionJob(file_name=path.name)
        jobs.append(job)

        def progress(message: str, job=job):
            job.progress.append(message)
            job.message = message
            if on_status is not None:
                on_status(job)

        progress(f"Queued {path.name}")
        try:
            result = parse_exam_file(path, llm, progress, thresholds)
            job.question_count = result.total_questions
            if result.total_questions:
                if bank_repository is not None:
                    bank_repository.merge_bank(path.name, result.to_bank(path.name))
                job.status = SUCCESS
                job.message = f"{result.total_questions} questions ({result.format.label})"
            else:
                job.status = EMPTY
                job.message = "no questions found"
        except FATAL_ERRORS as e:
            logger.error(f"Ingestion of {path.name} failed: {e}")
            job.status = FAILED
            job.message = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error ingesting {path.name}")
            job.status = FAILED
            job.message = f"{type(e).__name__}: {e}"

        if on_status is not None:
            on_status(job)

    return jobs
