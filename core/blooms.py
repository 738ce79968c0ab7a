"""
Bloom's taxonomy tagging for learning objectives.

An objective's level comes from its action verb: the leading word first,
then any whole-word verb anywhere in the text, lowest level first.
"""

import re
from typing import Any, Dict, Optional

BLOOM_VERBS = {
    1: ["define", "list", "name", "recall", "recognize", "identify", "label", "state", "enumerate",
        "indicate"],
    2: ["describe", "explain", "summarize", "discuss", "outline", "review", "clarify", "give", "note",
        "highlight"],
    3: ["apply", "use", "calculate", "demonstrate", "predict", "determine", "estimate", "correlate",
        "interpret"],
    4: ["analyze", "compare", "contrast", "differentiate", "distinguish", "examine", "relate",
        "classify", "categorize"],
    5: ["evaluate", "justify", "critique", "assess", "argue", "defend", "prioritize", "propose"],
    6: ["create", "design", "construct", "develop", "formulate", "plan", "produce", "prepare"],
}

LEVEL_NAMES = {
    1: "Remember",
    2: "Understand",
    3: "Apply",
    4: "Analyze",
    5: "Evaluate",
    6: "Create",
}

DEFAULT_LEVEL = 2

STUDY_GUIDANCE = {
    "pre_lecture": {
        1: "Skim and define the term. Just know it exists.",
        2: "Read the section. Try to explain it out loud after.",
        3: "Read and note the steps. Full mastery comes after lecture.",
        4: "Build a rough comparison table. Lecture will sharpen it.",
        5: "Read for exposure only. Flag this and revisit post-lecture.",
        6: "Read for exposure only. Flag this and revisit post-lecture.",
    },
    "post_lecture": {
        1: "Can you write the definition from memory?",
        2: "Explain it in plain language without notes.",
        3: "Work a practice problem or clinical scenario.",
        4: "Complete your comparison table. Can you distinguish without prompts?",
        5: "Justify the answer. Why is one option better than another?",
        6: "Can you construct or design the thing from scratch?",
    },
    "DLA": {
        1: "Master this independently; no lecture is coming.",
        2: "Write a full explanation in your own words before moving on.",
        3: "Apply it to a practice problem before moving on.",
        4: "Build the full comparison. Do not move on until you can differentiate.",
        5: "Work through a clinical vignette and defend your reasoning.",
        6: "Construct or formulate the full answer independently.",
    },
    "SG": {
        1: "Should be automatic by now.",
        2: "Be ready to explain to a peer.",
        3: "Be ready to apply in a group case.",
        4: "Be ready to defend your comparison to the group.",
        5: "Bring your reasoning; the group will challenge it.",
        6: "Be ready to walk through your constructed answer.",
    },
}

FALLBACK_GUIDANCE = "Review this objective."

_VERB_PATTERNS = {
    verb: re.compile(rf"\b{verb}\b")
    for verbs in BLOOM_VERBS.values()
    for verb in verbs
}


def _level(level: int, verb: str) -> Dict[str, Any]:
    return {"level": level, "levelName": LEVEL_NAMES[level], "matchedVerb": verb}


def get_bloom_level(objective_text: Optional[str]) -> Dict[str, Any]:
    """Bloom level for an objective.

    Returns:
        {"level", "levelName", "matchedVerb"}; level 2 with verb "unknown"
        when no verb matches
    """
    text = (objective_text or "").lower().strip()
    if not text:
        return _level(DEFAULT_LEVEL, "unknown")

    first_word = text.split()[0]
    for level, verbs in BLOOM_VERBS.items():
        for verb in verbs:
            if first_word == verb or text.startswith(verb + " "):
                return _level(level, verb)

    for level, verbs in BLOOM_VERBS.items():
        for verb in verbs:
            if _VERB_PATTERNS[verb].search(text):
                return _level(level, verb)

    return _level(DEFAULT_LEVEL, "unknown")


def get_study_guidance(activity_type: str, bloom_level: int) -> str:
    return STUDY_GUIDANCE.get(activity_type, {}).get(bloom_level, FALLBACK_GUIDANCE)


def get_activity_type(lecture_type: Optional[str]) -> str:
    """'DLA', 'SG' (small group / TBL) or 'lecture'."""
    kind = (lecture_type or "").upper()
    if kind == "DLA":
        return "DLA"
    if kind in ("SG", "TBL"):
        return "SG"
    return "lecture"


def enrich_objective_with_bloom(objective: Dict[str, Any],
                                lecture_type: Optional[str] = None) -> Dict[str, Any]:
    """Copy of an objective dict with Bloom level and study guides added."""
    bloom = get_bloom_level(objective.get("objective") or "")
    activity = get_activity_type(lecture_type)
    level = bloom["level"]
    post_key = activity if activity in ("DLA", "SG") else "post_lecture"

    return {
        **objective,
        "bloom_level": level,
        "bloom_level_name": bloom["levelName"],
        "bloom_verb": bloom["matchedVerb"],
        "pre_lecture_guide": get_study_guidance("pre_lecture", level),
        "post_lecture_guide": get_study_guidance(post_key, level),
        "dla_guide": get_study_guidance("DLA", level),
        "sg_guide": get_study_guidance("SG", level),
    }
