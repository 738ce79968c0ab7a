"""
Learning profile model.

The profile is a plain JSON-serialisable dict. Every function here is pure:
record_answer returns a new profile and never touches storage, so the caller
owns persistence (see core.ports.ProfileRepository).
"""

import copy
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import Config

CORRECT_DELTA = -0.03
INCORRECT_DELTA = 0.05
MIN_TYPE_WEIGHT = 0.01
TOPIC_SEPARATOR = " — "

DEFAULT_PROFILE: Dict[str, Any] = {
    "totalSessions": 0,
    "questionTypeWeights": {
        "clinicalVignette": 0.7,
        "mechanismBased": 0.15,
        "pharmacology": 0.1,
        "laboratory": 0.05,
    },
    "weakTopics": {},
    "strongTopics": {},
    "sessionHistory": [],
    "uploadedExamPatterns": [],
}


def default_profile() -> Dict[str, Any]:
    """Fresh copy of the default profile."""
    return copy.deepcopy(DEFAULT_PROFILE)


def normalize_profile(raw: Any) -> Dict[str, Any]:
    """Merge a persisted profile over the defaults.

    Anything that is not a dict with a questionTypeWeights mapping is treated
    as unreadable and replaced by the defaults.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("questionTypeWeights"), dict):
        return default_profile()

    profile = default_profile()
    profile.update(copy.deepcopy(raw))
    profile["questionTypeWeights"] = {
        **DEFAULT_PROFILE["questionTypeWeights"],
        **raw["questionTypeWeights"],
    }
    for key in ("weakTopics", "strongTopics"):
        value = raw.get(key)
        profile[key] = dict(value) if isinstance(value, dict) else {}
    for key in ("sessionHistory", "uploadedExamPatterns"):
        value = raw.get(key)
        profile[key] = list(value) if isinstance(value, list) else []
    return profile


def topic_key(topic: Optional[str], subtopic: Optional[str]) -> str:
    """'topic — subtopic', or whichever part is present."""
    return TOPIC_SEPARATOR.join(part for part in (topic, subtopic) if part)


def normalize_weights(weights: Dict[str, Any]) -> Dict[str, float]:
    """Rescale non-negative finite weights to sum to 1.

    Invalid entries are dropped; an all-zero map falls back to the defaults.
    """
    cleaned: Dict[str, float] = {}
    for key, value in weights.items():
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number) and number >= 0:
            cleaned[key] = number

    total = sum(cleaned.values())
    if not total:
        return dict(DEFAULT_PROFILE["questionTypeWeights"])
    return {key: value / total for key, value in cleaned.items()}


def _decrement(counters: Dict[str, int], key: str):
    remaining = int(counters.get(key, 0)) - 1
    if remaining <= 0:
        counters.pop(key, None)
    else:
        counters[key] = remaining


def record_answer(profile: Dict[str, Any], topic: Optional[str], subtopic: Optional[str],
                  was_correct: bool, question_type: Optional[str],
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """Fold one answer into the profile and return the new profile.

    - appends a session-history entry, keeping the newest entries only
    - nudges the answered type's weight (-0.03 correct, +0.05 wrong,
      floor 0.01) and renormalises all weights
    - moves the topic key between the weak and strong counters; a counter
      that reaches zero is removed
    """
    nxt = copy.deepcopy(profile) if profile else default_profile()
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    history = list(nxt.get("sessionHistory") or [])
    history.append({
        "timestamp": timestamp,
        "topic": topic or None,
        "subtopic": subtopic or None,
        "wasCorrect": bool(was_correct),
        "questionType": question_type or None,
    })
    limit = Config.SESSION_HISTORY_LIMIT
    nxt["sessionHistory"] = history[-limit:] if len(history) > limit else history

    weights = nxt.get("questionTypeWeights")
    if question_type and isinstance(weights, dict) and weights.get(question_type) is not None:
        updated = dict(weights)
        delta = CORRECT_DELTA if was_correct else INCORRECT_DELTA
        updated[question_type] = max(MIN_TYPE_WEIGHT, float(updated[question_type] or 0) + delta)
        nxt["questionTypeWeights"] = normalize_weights(updated)

    key = topic_key(topic, subtopic)
    if key:
        weak = dict(nxt.get("weakTopics") or {})
        strong = dict(nxt.get("strongTopics") or {})
        if was_correct:
            _decrement(weak, key)
            strong[key] = int(strong.get(key, 0)) + 1
        else:
            weak[key] = int(weak.get(key, 0)) + 1
            if key in strong:
                _decrement(strong, key)
        nxt["weakTopics"] = weak
        nxt["strongTopics"] = strong

    return nxt


def start_session(profile: Dict[str, Any]) -> Dict[str, Any]:
    """Profile with totalSessions incremented."""
    nxt = copy.deepcopy(profile) if profile else default_profile()
    nxt["totalSessions"] = int(nxt.get("totalSessions") or 0) + 1
    return nxt


def build_system_prompt(profile: Optional[Dict[str, Any]], subject: Optional[str] = None,
                        subtopic: Optional[str] = None, mode: Optional[str] = None) -> str:
    """Render the profile into the system prompt for question generation."""
    p = profile or DEFAULT_PROFILE
    weights = p.get("questionTypeWeights") or DEFAULT_PROFILE["questionTypeWeights"]
    weak_keys = list((p.get("weakTopics") or {}).keys())
    strong_keys = list((p.get("strongTopics") or {}).keys())

    context_bits = []
    if subject:
        context_bits.append(f"Subject: {subject}")
    if subtopic:
        context_bits.append(f"Subtopic: {subtopic}")
    if mode:
        context_bits.append(f"Mode: {mode}")

    type_prefs = ", ".join(f"{k} ~ {round(float(v) * 100)}%" for k, v in weights.items())

    if weak_keys:
        weak_line = ("Student weak areas (weight questions toward these, and use them for "
                     f"harder distractors): {'; '.join(weak_keys)}.")
    else:
        weak_line = "Student has no recorded weak areas yet; use a balanced mix of topics."

    if strong_keys:
        strong_line = ("Student relative strengths (can be used as subtle contrasts or "
                       f"simpler distractors): {'; '.join(strong_keys)}.")
    else:
        strong_line = "No strong-topic bias recorded yet."

    lines = [
        "You are a USMLE Step 1 question writer and medical educator.",
        f"Current session context: {' | '.join(context_bits)}." if context_bits else "",
        f"Question style distribution preference: {type_prefs}.",
        weak_line,
        strong_line,
        "Write high-yield clinical vignette questions for an M1/M2 student preparing for Step 1.",
        "Each question must:",
        "- Describe a realistic patient with **age, sex, chief complaint, relevant history**, "
        "and **presenting symptoms**.",
        "- Include **vital signs, focused physical exam findings, and key lab values** when relevant.",
        "- Use a stem of about **3-5 sentences**, concise but information-dense.",
        "- Provide exactly **4 answer choices labeled A-D**, with **one clearly correct answer** "
        "and **three plausible distractors**.",
        "Explanations must:",
        "- Clearly state **why the correct answer is right**, including the underlying "
        "**pathophysiology/mechanism**.",
        "- Briefly explain **why each wrong answer is wrong**, tying back to specific details "
        "in the vignette.",
        "- Include a short **First Aid reference** (section or page-level descriptor) when appropriate.",
        "If the student has weak topics recorded, weight question selection toward those areas,",
        "and make distractors particularly challenging around those weak mechanisms or diagnoses.",
    ]
    return "\n".join(line for line in lines if line)


def weakest_topics(profile: Dict[str, Any], limit: int = 5) -> List[Tuple[str, int]]:
    """Weak topic keys ordered by counter, highest first."""
    weak = profile.get("weakTopics") or {}
    return sorted(weak.items(), key=lambda item: (-int(item[1]), item[0]))[:limit]


def accuracy_by_type(profile: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Correct/total/accuracy per question type over the retained history."""
    stats: Dict[str, Dict[str, Any]] = {}
    for entry in profile.get("sessionHistory") or []:
        qtype = entry.get("questionType") or "unknown"
        bucket = stats.setdefault(qtype, {"correct": 0, "total": 0})
        bucket["total"] += 1
        if entry.get("wasCorrect"):
            bucket["correct"] += 1
    for bucket in stats.values():
        bucket["accuracy"] = bucket["correct"] / bucket["total"] if bucket["total"] else 0.0
    return stats
