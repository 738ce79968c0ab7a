"""
Learning objectives: extraction from lecture PDFs, table import, tracking.
"""

import logging
import re
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from config import Config
from core.json_extract import safe_json_object
from core.pdf_processor import PDFDocument

if TYPE_CHECKING:
    from models.llm_manager import LLMManager

logger = logging.getLogger(__name__)

SCAN_PAGES = 8
PROMPT_TEXT_LIMIT = 6000
MIN_OBJECTIVE_LENGTH = 10

OBJECTIVES_PROMPT = """This is the beginning of a medical school lecture PDF.

Find and extract ALL learning objectives/goals listed in this document.
Learning objectives are usually on a slide titled 'Learning Objectives', 'Objectives', 'Goals', or 'By the end of this lecture'.
They typically start with action verbs like: Describe, Explain, List, Define, Compare, Identify, Discuss, Analyze, Predict, etc.

Also extract:
- The lecture number (e.g. Lecture 50, Lec 50, L50)
- The lecture title
- The discipline (BCHM, GNET, HCB, PHAR, PHYS, ANAT, etc.)

Return ONLY valid JSON with no markdown:
{{
  "lectureNumber": 50,
  "lectureTitle": "Nutrition in Health and Disease",
  "discipline": "BCHM",
  "objectives": [
    "Describe the general structure of proteoglycans",
    "Discuss the functions of hyaluronic acid and heparin"
  ]
}}

If no objectives are found, return {{"objectives": [], "lectureNumber": null, "lectureTitle": null, "discipline": null}}

EXTRACTED TEXT:
{text}"""


class ObjectiveStatus(Enum):
    UNTESTED = "untested"
    IN_PROGRESS = "inprogress"
    STRUGGLING = "struggling"
    MASTERED = "mastered"

    @classmethod
    def parse(cls, value: Any) -> "ObjectiveStatus":
        text = str(value or "").strip().lower().replace(" ", "").replace("_", "")
        for member in cls:
            if member.value == text:
                return member
        raise ValueError(f"Unknown objective status: {value!r}")


@dataclass
class LearningObjective:
    """One objective from a lecture or an imported objectives table."""
    id: str
    objective: str
    activity: str = "Unknown"
    discipline: str = "Unknown"
    lecture_title: str = ""
    lecture_number: Optional[int] = None
    code: Optional[str] = None
    status: ObjectiveStatus = ObjectiveStatus.UNTESTED
    confidence: int = 0
    last_tested: Optional[str] = None
    quiz_score: Optional[float] = None
    source: str = "extracted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "objective": self.objective,
            "activity": self.activity,
            "discipline": self.discipline,
            "lectureTitle": self.lecture_title,
            "lectureNumber": self.lecture_number,
            "code": self.code,
            "status": self.status.value,
            "confidence": self.confidence,
            "lastTested": self.last_tested,
            "quizScore": self.quiz_score,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningObjective":
        try:
            status = ObjectiveStatus.parse(data.get("status"))
        except ValueError:
            status = ObjectiveStatus.UNTESTED
        return cls(
            id=str(data.get("id") or f"obj_{uuid.uuid4().hex[:12]}"),
            objective=data.get("objective") or data.get("text") or "",
            activity=data.get("activity") or "Unknown",
            discipline=data.get("discipline") or "Unknown",
            lecture_title=data.get("lectureTitle") or data.get("title") or "",
            lecture_number=data.get("lectureNumber"),
            code=data.get("code"),
            status=status,
            confidence=int(data.get("confidence") or 0),
            last_tested=data.get("lastTested"),
            quiz_score=data.get("quizScore"),
            source=data.get("source") or "extracted",
        )


def set_objective_status(objectives: List[LearningObjective], objective_id: str,
                         status: ObjectiveStatus,
                         now: Optional[datetime] = None) -> List[LearningObjective]:
    """Return the list with one objective's status replaced.

    Raises:
        KeyError: no objective has that id
    """
    updated: List[LearningObjective] = []
    found = False
    for obj in objectives:
        if obj.id == objective_id:
            found = True
            obj = replace(obj, status=status)
            if status != ObjectiveStatus.UNTESTED:
                obj.last_tested = (now or datetime.now(timezone.utc)).isoformat()
        updated.append(obj)
    if not found:
        raise KeyError(objective_id)
    return updated


def objective_progress(objectives: List[LearningObjective]) -> Dict[str, int]:
    """Counts per status plus total and percent mastered."""
    counts = {status.value: 0 for status in ObjectiveStatus}
    for obj in objectives:
        counts[obj.status.value] += 1
    total = len(objectives)
    counts["total"] = total
    counts["percentMastered"] = round(counts["mastered"] * 100 / total) if total else 0
    return counts


def _objective_text(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        return str(item.get("text") or item.get("objective") or "").strip()
    return str(item).strip() if item is not None else ""


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def extract_lecture_objectives(document: PDFDocument, file_name: str,
                               llm: "LLMManager") -> List[LearningObjective]:
    """Find the objectives listed near the start of a lecture PDF.

    The first pages' text goes into the prompt together with a render of the
    first page. Returns [] when there is no key, the call fails, or nothing
    parseable comes back.
    """
    if not llm.has_credentials:
        logger.debug("No API key; skipping objective extraction")
        return []

    pages = document.pages[:SCAN_PAGES]
    combined = "".join(f"\n--- PAGE {page.page_number} ---\n{page.text}" for page in pages)

    images = []
    if pages and pages[0].can_render:
        try:
            images.append(pages[0].render(Config.OBJECTIVE_RENDER_SCALE))
        except Exception as e:
            logger.warning(f"Could not render first page of {file_name}: {e}")

    response = llm.generate(
        OBJECTIVES_PROMPT.format(text=combined[:PROMPT_TEXT_LIMIT]),
        images=images,
        temperature=0.1,
        max_tokens=3000,
    )
    if not response.success:
        logger.warning(f"Objective extraction failed: {response.error}")
        return []

    parsed = safe_json_object(response.text)
    raw_objectives = parsed.get("objectives")
    if not isinstance(raw_objectives, list):
        return []

    lecture_number = _as_int(parsed.get("lectureNumber"))
    objectives = []
    for item in raw_objectives:
        text = _objective_text(item)
        if not text:
            continue
        objectives.append(LearningObjective(
            id=f"auto_{uuid.uuid4().hex[:12]}",
            objective=text,
            activity=f"Lec{lecture_number}" if lecture_number else "Unknown",
            discipline=parsed.get("discipline") or "Unknown",
            lecture_title=parsed.get("lectureTitle") or file_name,
            lecture_number=lecture_number,
            source="extracted",
        ))
    logger.info(f"Extracted {len(objectives)} objective(s) from {file_name}")
    return objectives


def normalize_activity(value: Optional[str]) -> Optional[str]:
    """'Lecture 12' -> 'Lec12', 'DLA 3' -> 'DLA3', 'SG 4' -> 'SG4'."""
    if not value or not str(value).strip():
        return None
    text = str(value).strip()
    text = re.sub(r"Lecture\s+(\d+)", lambda m: "Lec" + m.group(1), text, flags=re.IGNORECASE)
    text = re.sub(r"DLA\s+(\d+)", lambda m: "DLA" + m.group(1), text, flags=re.IGNORECASE)
    text = re.sub(r"SG\s+(\d+)", lambda m: "SG" + m.group(1), text, flags=re.IGNORECASE)
    return text


def objectives_from_rows(rows: List[List[Any]]) -> List[LearningObjective]:
    """Build objectives from table rows.

    Columns are activity, discipline, title, code, objective. Blank activity,
    discipline and title cells repeat the last value seen above them.
    """
    objectives: List[LearningObjective] = []
    activity = discipline = title = None

    for raw_row in rows:
        row = [str(cell).strip() if cell is not None else "" for cell in (raw_row or [])]
        if len(row) < 2:
            continue
        activity = normalize_activity(row[0]) or activity
        discipline = row[1] or discipline
        if len(row) > 2 and row[2]:
            title = row[2]
        code = row[3] if len(row) > 3 else ""
        text = row[4] if len(row) > 4 else (row[3] if len(row) > 3 else "")
        if len(text) < MIN_OBJECTIVE_LENGTH:
            continue

        number = re.search(r"\d+", activity or "")
        objectives.append(LearningObjective(
            id=code or f"imp_{uuid.uuid4().hex[:12]}",
            objective=text,
            activity=activity or "Unknown",
            discipline=discipline or "Unknown",
            lecture_title=title or "",
            lecture_number=int(number.group(0)) if number else None,
            code=code or None,
            source="imported",
        ))
    return objectives


def import_objectives_table(document: PDFDocument) -> List[LearningObjective]:
    """Read an objectives spreadsheet exported to PDF.

    Every table on every page is read with PyMuPDF's table finder; header
    rows fall out because their objective cell is too short.
    """
    doc = document.fitz_document
    if doc is None:
        return []

    rows: List[List[Any]] = []
    for page in doc:
        try:
            tables = page.find_tables().tables
        except Exception as e:
            logger.warning(f"Table detection failed on page {page.number + 1}: {e}")
            continue
        for table in tables:
            rows.extend(table.extract() or [])

    objectives = objectives_from_rows(rows)
    logger.info(f"Imported {len(objectives)} objective(s) from {document.name}")
    return objectives
