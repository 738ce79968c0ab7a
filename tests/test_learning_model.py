from datetime import datetime, timezone

import pytest

from config import Config
from core.learning_model import (
    DEFAULT_PROFILE,
    accuracy_by_type,
    build_system_prompt,
    default_profile,
    normalize_profile,
    normalize_weights,
    record_answer,
    start_session,
    topic_key,
    weakest_topics,
)


def fresh():
    return {
        "weakTopics": {},
        "strongTopics": {},
        "questionTypeWeights": {
            "clinicalVignette": 0.7,
            "mechanismBased": 0.15,
            "pharmacology": 0.1,
            "laboratory": 0.05,
        },
        "sessionHistory": [],
    }


def test_wrong_answer_scenario():
    profile = fresh()
    nxt = record_answer(profile, "Cardiology", "Arrhythmia", False, "clinicalVignette")

    assert nxt["weakTopics"]["Cardiology — Arrhythmia"] == 1
    weights = nxt["questionTypeWeights"]
    assert sum(weights.values()) == pytest.approx(1.0)
    assert weights["clinicalVignette"] == pytest.approx(0.75 / 1.05)
    assert weights["clinicalVignette"] > 0.7
    (entry,) = nxt["sessionHistory"]
    assert entry["wasCorrect"] is False
    assert entry["topic"] == "Cardiology"
    assert entry["questionType"] == "clinicalVignette"
    # Input is not mutated
    assert profile["sessionHistory"] == []
    assert profile["weakTopics"] == {}


def test_correct_answer_moves_topic_toward_strong():
    profile = record_answer(fresh(), "Renal", None, False, "pharmacology")
    profile = record_answer(profile, "Renal", None, True, "pharmacology")

    assert "Renal" not in profile["weakTopics"]
    assert profile["strongTopics"] == {"Renal": 1}

    profile = record_answer(profile, "Renal", None, False, "pharmacology")
    assert profile["weakTopics"] == {"Renal": 1}
    assert "Renal" not in profile["strongTopics"]


def test_weight_floor():
    profile = fresh()
    profile["questionTypeWeights"]["laboratory"] = 0.011
    nxt = record_answer(profile, None, None, True, "laboratory")
    raw_total = 0.7 + 0.15 + 0.1 + 0.01
    assert nxt["questionTypeWeights"]["laboratory"] == pytest.approx(0.01 / raw_total)


def test_unknown_type_leaves_weights_alone():
    nxt = record_answer(fresh(), "Neuro", None, False, "image")
    assert nxt["questionTypeWeights"] == fresh()["questionTypeWeights"]


def test_history_is_capped_keeping_newest():
    profile = fresh()
    for i in range(600):
        profile = record_answer(profile, f"T{i}", None, i % 2 == 0, "clinicalVignette")

    history = profile["sessionHistory"]
    assert len(history) == Config.SESSION_HISTORY_LIMIT == 500
    assert history[0]["topic"] == "T100"
    assert history[-1]["topic"] == "T599"


def test_history_timestamp_uses_given_clock():
    now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    nxt = record_answer(fresh(), "A", "B", True, None, now=now)
    assert nxt["sessionHistory"][0]["timestamp"] == now.isoformat()


def test_topic_key():
    assert topic_key("Cardiology", "Arrhythmia") == "Cardiology — Arrhythmia"
    assert topic_key("Cardiology", None) == "Cardiology"
    assert topic_key(None, "Arrhythmia") == "Arrhythmia"
    assert topic_key(None, None) == ""


def test_normalize_weights():
    assert normalize_weights({"a": 1, "b": 3}) == {"a": 0.25, "b": 0.75}
    assert normalize_weights({"a": 0, "b": "bad"}) == DEFAULT_PROFILE["questionTypeWeights"]


def test_normalize_profile_merges_defaults():
    assert normalize_profile(None) == default_profile()
    assert normalize_profile({"totalSessions": 3}) == default_profile()

    merged = normalize_profile({
        "totalSessions": 3,
        "questionTypeWeights": {"pharmacology": 0.5},
        "weakTopics": None,
        "uploadedExamPatterns": [{"examTitle": "old"}],
    })
    assert merged["totalSessions"] == 3
    assert merged["questionTypeWeights"]["pharmacology"] == 0.5
    assert merged["questionTypeWeights"]["clinicalVignette"] == 0.7
    assert merged["weakTopics"] == {}
    assert merged["uploadedExamPatterns"] == [{"examTitle": "old"}]


def test_start_session():
    assert start_session(default_profile())["totalSessions"] == 1


def test_system_prompt_mentions_weak_and_strong_topics():
    profile = record_answer(fresh(), "Cardiology", "Arrhythmia", False, "clinicalVignette")
    profile = record_answer(profile, "Renal", None, True, "pharmacology")

    prompt = build_system_prompt(profile, subject="Cardiology", mode="practice")

    assert "Subject: Cardiology | Mode: practice" in prompt
    assert "Cardiology — Arrhythmia" in prompt
    assert "relative strengths" in prompt and "Renal" in prompt
    assert "clinicalVignette ~" in prompt
    assert "\n\n" not in prompt


def test_system_prompt_without_history():
    prompt = build_system_prompt(None)
    assert "no recorded weak areas" in prompt
    assert "No strong-topic bias" in prompt
    assert "Current session context" not in prompt


def test_summaries():
    profile = fresh()
    for correct in (True, False, False):
        profile = record_answer(profile, "Neuro", None, correct, "mechanismBased")
    profile = record_answer(profile, "Heme", None, False, "laboratory")

    assert weakest_topics(profile) == [("Neuro", 2), ("Heme", 1)]
    assert weakest_topics(profile, limit=1) == [("Neuro", 2)]
    stats = accuracy_by_type(profile)
    assert stats["mechanismBased"] == {"correct": 1, "total": 3, "accuracy": pytest.approx(1 / 3)}
    assert stats["laboratory"]["accuracy"] == 0.0
