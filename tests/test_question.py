from core.question import (
    NO_ANSWER_KEY,
    Difficulty,
    Question,
    QuestionType,
    normalize_choices,
    normalize_correct,
    question_from_llm,
)


def test_normalize_choices_from_dict_and_list():
    assert normalize_choices({"a": " Aspirin ", "B": "Heparin", "C": None}) == {
        "A": "Aspirin", "B": "Heparin",
    }
    assert normalize_choices(["x", "y", "z"]) == {"A": "x", "B": "y", "C": "z"}
    assert normalize_choices("nonsense") == {}


def test_normalize_correct_requires_known_letter():
    choices = {"A": "1", "B": "2"}
    assert normalize_correct("b", choices) == "B"
    assert normalize_correct("E", choices) is None
    assert normalize_correct(None, choices) is None


def test_question_from_llm_defaults():
    q = question_from_llm({"stem": " Which enzyme? ", "choices": ["x", "y"], "correct": "a",
                           "type": "pharmacology", "difficulty": "HARD"}, "q3", 3)
    assert q.stem == "Which enzyme?"
    assert q.correct == "A"
    assert q.type == QuestionType.PHARMACOLOGY
    assert q.difficulty == Difficulty.HARD
    assert q.topic == "Exam Review"
    assert q.subject == "Uploaded"


def test_grading_without_key():
    q = Question(id="q1", choices={"A": "x", "B": "y"})
    assert q.is_multiple_choice_ready()
    assert q.reveal_answer() == NO_ANSWER_KEY
    assert q.is_correct("A") is None
    q.correct = "B"
    assert q.is_correct(" b ") is True
    assert q.is_correct("A") is False


def test_dict_keeps_extra_fields():
    data = {
        "id": "histo_1", "type": "image", "imageQuestion": True, "stem": "Identify",
        "choices": {"A": "Liver"}, "correct": "A", "difficulty": "easy",
        "tissueType": "Epithelial", "filename": "slide.png",
    }
    q = Question.from_dict(data)
    assert q.type == QuestionType.IMAGE
    assert q.extra == {"tissueType": "Epithelial", "filename": "slide.png"}
    out = q.to_dict()
    assert out["tissueType"] == "Epithelial"
    assert out["difficulty"] == "easy"
    assert "questionPageImage" not in out


def test_legacy_type_falls_back():
    assert Question.from_dict({"id": "x", "type": "clinical"}).type == QuestionType.CLINICAL_VIGNETTE
    assert Question.from_dict({"id": "y", "type": "weird", "imageQuestion": True}).type == \
        QuestionType.IMAGE


def test_question_from_llm_ignores_non_string_fields():
    q = question_from_llm({
        "stem": ["not", "text"],
        "choices": {"A": "x", "B": "y"},
        "topic": ["Cardio", "MI"],
        "subtopic": {"name": "ACS"},
        "explanation": 42,
    }, "q1", 1, default_topic="Block 2")
    assert q.stem == ""
    assert q.topic == "Block 2"
    assert q.subtopic is None
    assert q.explanation is None
