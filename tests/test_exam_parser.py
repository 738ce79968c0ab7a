import pytest

from config import ParserThresholds
from conftest import FakeLLM, png_bytes
from core.exam_parser import (
    ExamParser,
    StemDeduplicator,
    chunk_text,
    verify_stems_in_source,
)
from core.pdf_processor import PDFPage
from core.question import Difficulty, QuestionType
from models.llm_manager import LLMResponse, MissingCredentialsError

SMALL_CHUNKS = ParserThresholds(chunk_size=100, chunk_overlap=20)


def raw_question(stem, correct="A", **extra):
    data = {
        "stem": stem,
        "choices": {"A": "Alpha", "B": "Beta", "C": "Gamma", "D": "Delta"},
        "correct": correct,
        "explanation": None,
        "topic": "Renal",
        "difficulty": "hard",
        "type": "pharmacology",
    }
    data.update(extra)
    return data


Q1 = "A 45-year-old man presents with flank pain and hematuria. What is the diagnosis?"
Q2 = "Which drug inhibits the Na-K-2Cl cotransporter in the thick ascending limb?"
Q3 = "A 30-year-old woman has polyuria after lithium therapy. What is the mechanism?"


def test_chunk_text_windows_overlap():
    text = "x" * 250
    chunks = chunk_text(text, 100, 20)
    assert [len(c) for c in chunks] == [100, 100, 90, 10]
    assert "".join(c[:80] for c in chunks[:-1]) + chunks[-1] == text


@pytest.mark.parametrize("size,overlap", [(0, 0), (10, 10), (10, -1)])
def test_chunk_text_rejects_bad_windows(size, overlap):
    with pytest.raises(ValueError):
        chunk_text("abc", size, overlap)


def test_deduplicator_uses_prefix_and_min_length():
    dedup = StemDeduplicator(prefix_length=10, min_length=5)
    assert dedup.accept("0123456789 first")
    assert not dedup.accept("0123456789 second")
    assert not dedup.accept("short")
    assert not dedup.accept(None)
    assert len(dedup) == 1


def test_standard_dedups_across_overlapping_chunks():
    llm = FakeLLM([
        {"questions": [raw_question(Q1), raw_question(Q2)]},
        {"questions": [raw_question(Q2, correct="B"), raw_question(Q3)]},
    ])
    parser = ExamParser(llm, SMALL_CHUNKS)

    questions = parser.parse_standard("y" * 150, exam_title="Renal Block")

    assert len(llm.calls) == 2
    assert [q.stem for q in questions] == [Q1, Q2, Q3]
    assert [q.id for q in questions] == ["q1", "q2", "q3"]
    # First occurrence wins
    assert questions[1].correct == "A"
    assert all(call["temperature"] == 0.1 for call in llm.calls)


def test_standard_skips_unusable_chunks():
    llm = FakeLLM([
        "Sorry, I cannot help with that.",
        LLMResponse(text="", model="fake", success=False, error="timeout"),
        "```json\n" + '{"questions": [' + '{"stem": "%s", "choices": ["x", "y"]}' % Q3 + "]}\n```",
    ])
    parser = ExamParser(llm, ParserThresholds(chunk_size=100, chunk_overlap=0))

    questions = parser.parse_standard("z" * 250)

    assert len(questions) == 1
    assert questions[0].id == "q1"
    assert questions[0].choices == {"A": "x", "B": "y"}
    assert questions[0].topic == "Exam Review"


def test_standard_drops_short_stems():
    llm = FakeLLM([{"questions": [raw_question("Too short?"), raw_question(Q1)]}])
    questions = ExamParser(llm).parse_standard("text")
    assert [q.stem for q in questions] == [Q1]


def test_standard_requires_credentials_before_any_call():
    llm = FakeLLM(has_credentials=False)
    with pytest.raises(MissingCredentialsError):
        ExamParser(llm).parse_standard("anything")
    assert llm.calls == []


def test_llm_fields_are_normalized():
    llm = FakeLLM([{"questions": [
        raw_question(Q1, correct="b"),
        raw_question(Q2, correct="E", type="nonsense", difficulty=None),
    ]}])
    first, second = ExamParser(llm).parse_standard("text", exam_title="Block 3")

    assert first.correct == "B"
    assert first.type == QuestionType.PHARMACOLOGY
    assert first.difficulty == Difficulty.HARD
    assert first.topic == "Renal"

    assert second.correct is None
    assert second.reveal_answer() == "no answer key"
    assert second.type == QuestionType.CLINICAL_VIGNETTE
    assert second.difficulty == Difficulty.MEDIUM


def test_parallel_chunks_keep_document_order():
    def reply(prompt):
        if "AAAA" in prompt:
            return {"questions": [raw_question(Q1), raw_question(Q2)]}
        return {"questions": [raw_question(Q2, correct="C"), raw_question(Q3)]}

    llm = FakeLLM([reply, reply])
    parser = ExamParser(llm, ParserThresholds(chunk_size=100, chunk_overlap=0), max_workers=4)

    questions = parser.parse_standard("A" * 100 + "B" * 100)

    assert [q.stem for q in questions] == [Q1, Q2, Q3]
    assert questions[1].correct == "A"


def test_verify_stems_in_source_flags_fabrications():
    llm = FakeLLM([{"questions": [raw_question(Q1), raw_question(Q3)]}])
    source = "1. A 45-year-old man presents with flank pain\nand hematuria.   What is the diagnosis?"
    questions = ExamParser(llm).parse_standard(source)

    assert verify_stems_in_source(questions, source) == [Q3]


def dense(label):
    return "\n".join(f"{letter}. {label} option {i}" for i in range(2) for letter in "ABCD")


def test_find_grid_groups_pairs_answer_pages():
    pages = [
        PDFPage(1, "Lecture 50: Nutrition"),
        PDFPage(2, dense("q")),
        PDFPage(3, "Answers: 1-B 2-C"),
        PDFPage(4, dense("r")),
        PDFPage(5, "Unrelated closing slide"),
        PDFPage(6, dense("s")),
    ]
    groups = ExamParser(FakeLLM()).find_grid_groups(pages)

    assert [(g.question_page.page_number,
             g.answer_page.page_number if g.answer_page else None) for g in groups] == [
        (2, 3), (4, None), (6, None)
    ]


def test_parse_grid_sends_answer_then_question_image():
    answer_png = png_bytes((0, 255, 0))
    question_png = png_bytes((255, 0, 0))
    pages = [
        PDFPage(1, dense("q"), renderer=lambda scale: question_png),
        PDFPage(2, "Correct answers highlighted", renderer=lambda scale: answer_png),
    ]
    llm = FakeLLM([{"questions": [raw_question(Q1), raw_question(Q1), raw_question(Q2)]}])

    questions = ExamParser(llm).parse_grid(pages, start_num=7)

    assert [q.id for q in questions] == ["q7", "q8"]
    call = llm.calls[0]
    assert call["images"] == [answer_png, question_png]
    assert "ANSWER PAGE:\nCorrect answers highlighted" in call["prompt"]
    assert call["max_tokens"] == 6000


def test_parse_grid_truncates_slide_text():
    pages = [PDFPage(1, dense("q") + "\n" + "x" * 10000)]
    llm = FakeLLM([{"questions": []}])

    ExamParser(llm, ParserThresholds(grid_text_limit=100)).parse_grid(pages)

    prompt = llm.calls[0]["prompt"]
    assert "x" * 200 not in prompt
    assert prompt.endswith(pages[0].text[:100])
