from config import ParserThresholds
from core.format_classifier import (
    ExamFormat,
    classify_format,
    count_choice_markers,
    count_numbered_lines,
    distinct_slide_labels,
)
from core.pdf_processor import PAGE_BREAK, PDFPage


def pages_of(*texts):
    return [PDFPage(page_number=i + 1, text=t) for i, t in enumerate(texts)]


def classify(*texts, thresholds=None):
    pages = pages_of(*texts)
    return classify_format(PAGE_BREAK.join(texts), pages, thresholds)


def test_choice_markers_need_standalone_tokens():
    assert count_choice_markers("A. one\nB. two  C. three D. four") == 4
    # Abbreviations and mid-word letters are not choices
    assert count_choice_markers("Vitamin D.Vit A.B.C") == 0
    assert count_choice_markers("E. five") == 0


def test_distinct_labels_ignore_repeats():
    text = "QUESTION 1\n...\nQuestion 1\n...\nQUESTION 2"
    assert distinct_slide_labels(text) == {1, 2}


def test_slide_deck_needs_more_than_three_distinct_labels():
    four = [f"QUESTION {n}\nstem" for n in range(1, 5)]
    assert classify(*four) == ExamFormat.SLIDE_DECK

    # Three labels, each on a question and an answer slide
    three = [f"QUESTION {n}\nstem" for n in (1, 1, 2, 2, 3, 3)]
    assert classify(*three) != ExamFormat.SLIDE_DECK


def test_slide_deck_wins_over_grid():
    dense = " ".join(f"{l}. x" for l in "ABCD" * 3)
    texts = [f"QUESTION {n}\n{dense}" for n in range(1, 6)]
    assert classify(*texts) == ExamFormat.SLIDE_DECK


def test_grid_when_one_page_is_choice_dense():
    dense = "\n".join(f"{l}. option" for l in "ABCD" * 2)
    assert classify("intro", dense) == ExamFormat.GRID


def test_grid_threshold_is_overridable():
    sparse = "\n".join(f"{l}. option" for l in "ABCD")
    assert classify(sparse) == ExamFormat.STANDARD
    assert classify(sparse, thresholds=ParserThresholds(grid_choice_threshold=4)) == ExamFormat.GRID


def test_numbered_list_is_standard():
    text = "\n".join(f"{n}. A patient presents with..." for n in range(1, 6))
    assert count_numbered_lines(text) == 5
    assert classify(text) == ExamFormat.STANDARD


def test_default_is_standard():
    assert classify("Just some prose.") == ExamFormat.STANDARD
    assert ExamFormat.STANDARD.label == "Standard question bank format"
