"""
Histology slide identification.

A single vision call names the tissue, stain and visible structures of a
slide image and proposes one identification question for it.
"""

import base64
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from config import Config
from core.exam_parser import ProgressCallback, _notify
from core.json_extract import safe_json_object
from core.pdf_processor import PDFDocument, resize_image_if_needed
from core.question import PLACEHOLDER_CHOICE, Difficulty, Question, QuestionType, normalize_correct

if TYPE_CHECKING:
    from models.llm_manager import LLMManager

logger = logging.getLogger(__name__)

TISSUE_TYPES = ["Nervous", "Muscle", "Connective", "Epithelial", "Cardiovascular", "Lymphoid", "Other"]

# Checked in order; the first group with a matching keyword wins
TISSUE_KEYWORDS = [
    ("Nervous", ("nervous", "neuron", "brain", "cerebr", "cerebell", "spinal")),
    ("Muscle", ("muscle", "cardiac", "skeletal", "smooth")),
    ("Connective", ("connective", "collagen", "fibro", "bone", "cartilage")),
    ("Epithelial", ("epithelial", "gland", "skin", "mucosa")),
    ("Cardiovascular", ("heart", "vessel", "blood", "cardiovasc")),
    ("Lymphoid", ("lymph", "spleen", "thymus", "immune")),
]

# Pages with at least one image and less text than this are scanned
SCAN_MAX_TEXT = 500

HISTOLOGY_PROMPT = """You are a medical histology expert. Analyze this histological slide image.

Return ONLY valid JSON with no markdown:
{
  "tissueType": "Nervous|Muscle|Connective|Epithelial|Cardiovascular|Lymphoid|Other",
  "topic": "Specific lecture topic e.g. Histology of Nervous Tissue - Cerebral Cortex",
  "questionPrompt": "A specific question about this slide without naming the tissue. E.g. 'What type of fiber is shown here, and what staining technique was used?'",
  "blindTopic": "Vague category only e.g. 'Connective Tissue Fiber' not 'Reticular Fiber'",
  "structures": ["structure1", "structure2", "structure3"],
  "explanation": "2-3 sentence description of what is shown and key identifying features",
  "choices": ["correct tissue/structure name", "distractor 1", "distractor 2", "distractor 3"],
  "correct": "A",
  "stain": "H&E|PAS|Masson Trichrome|Silver|Other",
  "keyFeatures": ["identifying feature 1", "identifying feature 2"],
  "clinicalRelevance": "one sentence clinical connection"
}

For choices: put the correct answer as the first item (will be labeled A), add 3 plausible distractors.
For structures: list the most visible/important labeled or identifiable structures.
For stain: identify the staining technique used if possible.
For questionPrompt: ask what to identify without giving away the answer (no tissue/structure name).
For blindTopic: use a vague category (e.g. Connective Tissue Fiber, Nervous Tissue) not the specific name."""

UPLOAD_STEM = "Identify the tissue type and labeled structures in this histological slide."
SCAN_STEM = "Identify the tissue type and structures in this slide."


def detect_tissue_type(topic: Optional[str]) -> str:
    """Tissue family named by keywords in a topic string, or 'Other'."""
    lowered = (topic or "").lower()
    for tissue, keywords in TISSUE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return tissue
    return "Other"


def identify_histology_slide(image_bytes: bytes, llm: "LLMManager") -> Dict[str, Any]:
    """Ask the vision model to describe one slide.

    Returns:
        The parsed description, or {} when there is no key, the call fails,
        or the response is not a JSON object
    """
    if not llm.has_credentials:
        logger.debug("No API key; skipping histology identification")
        return {}

    response = llm.generate(
        HISTOLOGY_PROMPT,
        images=[resize_image_if_needed(image_bytes)],
        temperature=0.2,
        max_tokens=1000,
    )
    if not response.success:
        logger.warning(f"Histology identification failed: {response.error}")
        return {}
    return safe_json_object(response.text)


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value if item]
    return []


def is_histology_match(identified: Dict[str, Any]) -> bool:
    """True when the model reported a tissue family or any structure."""
    tissue = identified.get("tissueType")
    return bool((tissue and tissue != "Other") or _as_list(identified.get("structures")))


def build_histology_question(identified: Dict[str, Any], image_b64: str, filename: str,
                             num: int = 0, stem: str = UPLOAD_STEM,
                             topic_fallback: Optional[str] = None) -> Question:
    """Turn an identification result into an image question.

    Missing choices become '(See image)'; the answer defaults to A, where
    the prompt asks for the correct name to be placed.
    """
    raw_choices = _as_list(identified.get("choices"))
    choices = {
        letter: raw_choices[i] if i < len(raw_choices) else PLACEHOLDER_CHOICE
        for i, letter in enumerate("ABCD")
    }
    base_name = filename.rsplit(".", 1)[0] if "." in filename else filename
    correct = normalize_correct(identified.get("correct"), choices) or "A"

    return Question(
        id=f"histo_{uuid.uuid4().hex[:12]}",
        num=num,
        type=QuestionType.IMAGE,
        image_question=True,
        subject="Histology",
        topic=identified.get("topic") or topic_fallback or f"Histology — {base_name}",
        stem=stem,
        question_page_image=image_b64,
        choices=choices,
        correct=correct,
        explanation=identified.get("explanation") or None,
        difficulty=Difficulty.MEDIUM,
        extra={
            "questionPrompt": identified.get("questionPrompt") or None,
            "blindTopic": identified.get("blindTopic") or None,
            "manualUpload": True,
            "tissueType": identified.get("tissueType") or "Other",
            "structures": _as_list(identified.get("structures")),
            "stain": identified.get("stain") or None,
            "keyFeatures": _as_list(identified.get("keyFeatures")),
            "clinicalRelevance": identified.get("clinicalRelevance") or None,
            "filename": filename,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        },
    )


def identify_image_file(image_bytes: bytes, filename: str, llm: "LLMManager") -> Question:
    """Build a question for one uploaded slide image."""
    identified = identify_histology_slide(image_bytes, llm)
    return build_histology_question(
        identified, base64.b64encode(image_bytes).decode("ascii"), filename
    )


def scan_pdf_for_histology(document: PDFDocument, llm: "LLMManager",
                           on_progress: ProgressCallback = None,
                           render_scale: Optional[float] = None) -> List[Question]:
    """Identify every image-bearing, text-light page of a PDF.

    Pages the model reports as neither a known tissue nor having any
    structures are dropped.

    Raises:
        MissingCredentialsError: before rendering anything if no key is configured
    """
    llm.require_credentials()
    scale = render_scale or Config.HISTO_RENDER_SCALE

    slides: List[Question] = []
    for page in document.pages:
        _notify(on_progress, f"Page {page.page_number} of {document.total_pages}...")
        if page.embedded_image_count < 1 or len(page.text) >= SCAN_MAX_TEXT:
            continue
        if not page.can_render:
            continue

        try:
            png = page.render(scale)
        except Exception as e:
            logger.warning(f"Page {page.page_number} render error: {e}")
            continue

        identified = identify_histology_slide(png, llm)
        if not is_histology_match(identified):
            continue

        slides.append(build_histology_question(
            identified,
            base64.b64encode(png).decode("ascii"),
            document.name,
            num=page.page_number,
            stem=SCAN_STEM,
            topic_fallback=f"Histology — {document.name}",
        ))
        _notify(on_progress, f"Found {len(slides)} histology slide(s) so far...")

    logger.info(f"Histology scan of {document.name}: {len(slides)} slide(s)")
    return slides
