"""
Deep-Learn: a six-phase guided walk through one topic.

Each phase is one generation call returning a JSON object. Phases run
strictly in order; phase 2 is anchored on the vignette produced by phase 1.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from core.json_extract import extract_json

if TYPE_CHECKING:
    from models.llm_manager import LLMManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Phase:
    num: int
    title: str
    subtitle: str
    generates: str
    prompt: str


CLINICAL_ANCHOR_PROMPT = """You are a medical educator. For the topic "{topic}", generate a Phase 1 Clinical Anchor.

Return JSON:
{{
  "vignette": "3-4 sentence patient scenario with chief complaint, timeline, vitals, and 2-3 exam findings",
  "chiefComplaint": "one sentence",
  "timeline": "acute or chronic with duration",
  "vitals": ["vital sign 1", "vital sign 2", "vital sign 3"],
  "examFindings": ["finding 1", "finding 2", "finding 3"],
  "labAbnormalities": ["lab 1", "lab 2"],
  "systemQuestion": "What organ system is most involved?",
  "dangerousQuestion": "What is the most dangerous possibility?",
  "commonQuestion": "What is the most common possibility?",
  "systemAnswer": "answer",
  "dangerousAnswer": "answer",
  "commonAnswer": "answer",
  "syndromePattern": "1-2 sentence pattern summary"
}}"""

PATHWAY_PROMPT = """For the topic "{topic}" and patient: {vignette}.

Generate Phase 2 Pathway Backtracking. Return JSON:
{{
  "layers": [
    {{ "level": "Organ dysfunction", "description": "what fails at organ level" }},
    {{ "level": "Cellular dysfunction", "description": "what fails at cell level" }},
    {{ "level": "Signaling pathway", "description": "what pathway is disrupted" }},
    {{ "level": "Molecular defect", "description": "specific enzyme/receptor/transporter" }}
  ],
  "clozeStatements": [
    "Decreased ___ leads to accumulation of ___.",
    "Failure of ___ receptor causes inability to ___.",
    "Mutation in ___ enzyme blocks conversion of ___ to ___."
  ],
  "clozeAnswers": ["answer1", "answer2", "answer3"],
  "causalChain": "clean 1-paragraph causal chain from symptom to molecule"
}}"""

STRUCTURE_PROMPT = """For "{topic}". Generate Phase 3 Structural Identification. Return JSON:
{{
  "defectType": "enzyme deficiency | receptor malfunction | transport problem | transcription problem",
  "specificDefect": "exact molecular defect name",
  "location": "tissue or organelle where defect occurs",
  "accumulates": "what accumulates as result",
  "deficient": "what becomes deficient",
  "kinetics": "competitive vs noncompetitive if applicable or N/A",
  "gainLoss": "gain of function vs loss of function",
  "inheritance": "autosomal dominant | autosomal recessive | X-linked | mitochondrial | N/A",
  "cleanStatement": "This disease is a failure of ___ located in ___ causing ___ accumulation.",
  "questions": [
    {{ "q": "Is this an enzyme deficiency?", "a": "yes/no + explanation" }},
    {{ "q": "Is this a receptor malfunction?", "a": "yes/no + explanation" }},
    {{ "q": "Is this a transport problem?", "a": "yes/no + explanation" }}
  ]
}}"""

PHARMACOLOGY_PROMPT = """For "{topic}". Generate Phase 4 Pharmacologic Intervention. Return JSON:
{{
  "interventions": [
    {{
      "problem": "physiologic problem",
      "physiologicFix": "what the fix does",
      "drugExample": "drug name",
      "mechanism": "how drug works mechanistically"
    }}
  ],
  "bypassDrug": "drug that bypasses the block",
  "inhibitorDrug": "drug that inhibits toxic buildup",
  "receptorTarget": "receptor we can stimulate instead",
  "upstreamDownstream": "pathway we can modify upstream or downstream"
}}"""

BOARDS_PROMPT = """For "{topic}". Generate Phase 5 Board Integration Layer. Return JSON:
{{
  "buzzwords": ["word1", "word2", "word3", "word4"],
  "mostCommonComplication": "...",
  "mostDeadlyComplication": "...",
  "labSignature": "characteristic lab findings",
  "histologyClue": "what to look for on histology slide",
  "inheritance": "genetic pattern",
  "trickAnswers": ["what they might trick you with 1", "trick 2"],
  "secondBestAnswer": "what the second-best choice usually is and why it's wrong",
  "mnemonics": ["mnemonic 1 if applicable"],
  "firstAidPage": "approximate First Aid chapter/topic reference"
}}"""

RECALL_PROMPT = """For "{topic}" summarize everything for Phase 6 Retention Lock. Return JSON:
{{
  "oralExplanation": "2-3 paragraph explanation as if teaching a classmate, no jargon without explanation",
  "ankiPrompts": [
    {{ "front": "cloze prompt 1", "back": "answer 1" }},
    {{ "front": "cloze prompt 2", "back": "answer 2" }},
    {{ "front": "cloze prompt 3", "back": "answer 3" }}
  ],
  "miniVignette": "1 short self-generated vignette the student can quiz themselves with",
  "miniVignetteAnswer": "answer and explanation",
  "sideEffectPrediction": "predict a drug side effect based on mechanism",
  "sideEffectAnswer": "the answer with mechanism explanation",
  "masteryStatement": "one sentence: what you now own about this topic"
}}"""

PHASES: List[Phase] = [
    Phase(1, "Clinical Anchor", "Pattern Recognition First", "vignette", CLINICAL_ANCHOR_PROMPT),
    Phase(2, "Pathway Backtracking", "Mechanism Mapping", "pathway", PATHWAY_PROMPT),
    Phase(3, "Structural Identification", "Pin the Exact Molecular Defect", "structure",
          STRUCTURE_PROMPT),
    Phase(4, "Pharmacologic Intervention", "Strategic System Override", "pharmacology",
          PHARMACOLOGY_PROMPT),
    Phase(5, "Board Integration", "Step 1 Proof", "boards", BOARDS_PROMPT),
    Phase(6, "Retention Lock", "Active Recall Loop", "recall", RECALL_PROMPT),
]


class DeepLearnComplete(Exception):
    """next_phase() called after the last phase."""
    pass


class DeepLearnSession:
    """Generates the six phases for one topic, one call per phase."""

    def __init__(self, topic: str, llm: "LLMManager"):
        """
        Args:
            topic: Topic to study, e.g. "Lesch-Nyhan syndrome"
            llm: LLM manager used for every phase
        """
        self.topic = topic
        self.llm = llm
        self.current = 0
        self.content: Dict[int, Dict[str, Any]] = {}

    @property
    def is_complete(self) -> bool:
        return self.current >= len(PHASES)

    @property
    def upcoming(self) -> Optional[Phase]:
        return None if self.is_complete else PHASES[self.current]

    def build_prompt(self, phase: Phase) -> str:
        vignette = self.content.get(1, {}).get("vignette")
        return phase.prompt.format(
            topic=self.topic,
            vignette=vignette if isinstance(vignette, str) and vignette else "patient case",
        )

    def next_phase(self) -> Tuple[Phase, Dict[str, Any]]:
        """Generate the next phase in order.

        A failed call or unparseable response still advances the session,
        with {} as that phase's content.

        Raises:
            DeepLearnComplete: all six phases are done
            MissingCredentialsError: no key is configured
        """
        if self.is_complete:
            raise DeepLearnComplete(f"All {len(PHASES)} phases of {self.topic!r} are done")

        phase = PHASES[self.current]
        response = self.llm.generate(self.build_prompt(phase), temperature=0.7, max_tokens=3000)

        content: Dict[str, Any] = {}
        if not response.success:
            logger.warning(f"Phase {phase.num} request failed: {response.error}")
        else:
            result = extract_json(response.text)
            if result.ok and isinstance(result.value, dict):
                content = result.value
            else:
                logger.warning(f"Phase {phase.num} returned no JSON object: {result.error}")

        self.content[phase.num] = content
        self.current += 1
        return phase, content

    def run_all(self) -> Iterator[Tuple[Phase, Dict[str, Any]]]:
        """Yield (phase, content) for each remaining phase in order."""
        while not self.is_complete:
            yield self.next_phase()
