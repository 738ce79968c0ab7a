"""
Profile-weighted practice vignettes.

The learning profile is rendered into the system prompt (see
core.learning_model.build_system_prompt), so generated questions lean
toward the student's weak topics and preferred question styles.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from core.json_extract import safe_json_array, safe_json_object
from core.learning_model import build_system_prompt
from core.question import Question, question_from_llm

if TYPE_CHECKING:
    from models.llm_manager import LLMManager

logger = logging.getLogger(__name__)

BATCH_SIZE = 5

VIGNETTE_PROMPT = """Generate exactly {count} USMLE Step 1-style clinical vignette questions for the subject "{subject}"{subtopic_clause}.

STRICT FORMAT RULES:
1. stem: 3-5 sentence patient scenario (age, sex, chief complaint, history, vitals, exam, labs) ending with a clear question
2. choices: exactly 4 options labeled A, B, C, D, each a complete answer
3. correct: exactly one letter: A, B, C, or D
4. explanation: why the correct answer is right (mechanism), why each wrong answer is wrong, one First Aid reference
5. difficulty: exactly one of easy, medium, hard
6. type: one of clinicalVignette, mechanismBased, pharmacology, laboratory

Return ONLY valid JSON with no markdown:
{{"vignettes":[{{"id":"v1","difficulty":"medium","type":"clinicalVignette","stem":"...","choices":{{"A":"...","B":"...","C":"...","D":"..."}},"correct":"B","explanation":"...","topic":"...","subtopic":"..."}}]}}"""


def build_vignette_prompt(count: int, subject: str, subtopic: Optional[str] = None) -> str:
    clause = f', subtopic "{subtopic}"' if subtopic else ""
    return VIGNETTE_PROMPT.format(count=count, subject=subject, subtopic_clause=clause)


def _vignette_records(text: str) -> List[Dict[str, Any]]:
    records = safe_json_object(text).get("vignettes")
    if not isinstance(records, list):
        # Some replies drop the wrapper object and return the bare array
        records = safe_json_array(text)
    return [r for r in records if isinstance(r, dict)]


def generate_vignettes(profile: Optional[Dict[str, Any]], subject: str,
                       subtopic: Optional[str], count: int, llm: "LLMManager",
                       mode: str = "lecture") -> List[Question]:
    """Generate up to `count` practice questions, BATCH_SIZE per call.

    A failed or unparseable batch is logged and skipped, so fewer than
    `count` questions may come back.

    Raises:
        MissingCredentialsError: before any call if no key is configured
    """
    llm.require_credentials()
    system = build_system_prompt(profile, subject, subtopic, mode)

    questions: List[Question] = []
    for start in range(0, max(count, 0), BATCH_SIZE):
        batch_count = min(BATCH_SIZE, count - start)
        response = llm.generate(
            build_vignette_prompt(batch_count, subject, subtopic),
            system=system,
            temperature=0.7,
            max_tokens=8000,
        )
        if not response.success:
            logger.warning(f"Vignette batch {start // BATCH_SIZE + 1} failed: {response.error}")
            continue

        records = _vignette_records(response.text)
        if not records:
            logger.warning(f"Vignette batch {start // BATCH_SIZE + 1} returned no vignettes")
            continue

        for raw in records[:batch_count]:
            num = len(questions) + 1
            question = question_from_llm(raw, f"v{num}", num,
                                         default_topic=subtopic or subject, subject=subject)
            if question.stem and question.is_multiple_choice_ready():
                questions.append(question)

    logger.info(f"Generated {len(questions)} vignette(s) for {subject}")
    return questions
