import base64

from conftest import FakeLLM, png_bytes
from core.exam_parser import ExamParser
from core.pdf_processor import PDFPage
from core.question import PLACEHOLDER_CHOICE, QuestionType
from core.slide_parser import (
    SlideDeckParser,
    SlideGroup,
    group_slide_pages,
    image_slide_topic,
    parse_answer_text,
    parse_text_slide,
)


def deck_parser(llm=None):
    return SlideDeckParser(ExamParser(llm or FakeLLM()))


def test_inline_choices_and_explanation():
    group = SlideGroup(number=1, pages=[
        PDFPage(1, "QUESTION 1  A. Foo  B. Bar  C. Baz  D. Qux"),
        PDFPage(2, "A. Foo  B. Bar — correct  C. Baz  D. Qux  Explanation: Bar causes X because Y"),
    ])

    question = deck_parser().build_text_question(group)

    assert question.choices["B"] == "Bar"
    assert question.correct == "B"
    assert "Bar causes X because Y" in question.explanation
    assert question.id == "q1"


def test_multiline_slide_with_header_and_wrapped_choice():
    text = parse_text_slide(
        "QUESTION 4\nLecture 12 Cardiac Electrophysiology\n"
        "A 60-year-old man has palpitations.\nWhich channel is blocked?\n"
        "A. Fast sodium\nchannels\nB. L-type calcium\nC. Potassium\nD. Funny current",
        "QUESTION 4\nA. Incorrect, this is class I\nB. Correct! Class IV agents\n"
        "Explanation:\nVerapamil blocks L-type channels.\nSlows AV conduction.\nC. Incorrect",
    )
    assert text.stem == "A 60-year-old man has palpitations. Which channel is blocked?"
    assert text.choices["A"] == "Fast sodium channels"
    assert text.correct == "B"
    assert text.explanation == "Verapamil blocks L-type channels. Slows AV conduction."


def test_incorrect_near_start_is_not_the_answer():
    correct, _ = parse_answer_text("A. Incorrect: not the correct choice\nB. Also wrong")
    assert correct is None


def test_no_answer_slide_leaves_answer_unset():
    group = SlideGroup(number=2, pages=[PDFPage(3, "QUESTION 2\nWhat?\nA. x\nB. y")])
    question = deck_parser().build_text_question(group)
    assert question.correct is None
    assert question.topic == "Review"


def test_lecture_title_becomes_topic():
    group = SlideGroup(number=5, pages=[
        PDFPage(1, "QUESTION 5\nLecture 50: Introduction to Nutrition\nWhich vitamin?\nA. x\nB. y"),
    ])
    assert deck_parser().build_text_question(group).topic == "Lecture 50: Introduction to Nutrition"


def test_group_slide_pages_orders_by_label():
    pages = [
        PDFPage(1, "Title slide"),
        PDFPage(2, "QUESTION 2\nstem"),
        PDFPage(3, "QUESTION 1\nstem"),
        PDFPage(4, "QUESTION 1\nanswer"),
    ]
    groups = group_slide_pages(pages)
    assert [g.number for g in groups] == [1, 2]
    assert [p.page_number for p in groups[0].pages] == [3, 4]
    assert groups[0].answer_page.page_number == 4
    assert groups[1].answer_page is None


def test_image_heavy_group_becomes_image_question():
    png = png_bytes()
    pages = [
        PDFPage(1, "QUESTION 3  Cerebellum  Purkinje layer", embedded_image_count=6,
                renderer=lambda scale: png),
        PDFPage(2, "QUESTION 3 labelled answer", embedded_image_count=6,
                renderer=lambda scale: png),
    ]
    llm = FakeLLM()
    questions = deck_parser(llm).parse(pages)

    assert llm.calls == []
    (question,) = questions
    assert question.type == QuestionType.IMAGE
    assert question.image_question
    assert question.subject == "Histology"
    assert question.topic == "Cerebellum"
    assert question.choices == {letter: PLACEHOLDER_CHOICE for letter in "ABCD"}
    assert base64.b64decode(question.question_page_image) == png
    assert question.answer_page_image is not None
    assert question.reveal_answer() == "no answer key"


def test_image_slide_topic_fallback():
    assert image_slide_topic("QUESTION 9") == "Histology"


def labelled_pages():
    return [
        PDFPage(n, f"QUESTION {label}\nWhich drug is indicated in case {label}?\nA. x\nB. y")
        for n, label in enumerate([1, 2, 3, 10], 1)
    ]


def test_unlabelled_choice_slides_fall_back_to_grid_parser():
    pages = labelled_pages() + [
        PDFPage(5, "Which enzyme is deficient in PKU?\nA. PAH\nB. HGPRT\nC. G6PD\nD. MCAD"),
        PDFPage(6, "Thank you"),
    ]
    llm = FakeLLM([{"questions": [{
        "stem": "Which enzyme is deficient in PKU?",
        "choices": {"A": "PAH", "B": "HGPRT", "C": "G6PD", "D": "MCAD"},
        "correct": "A",
    }]}])

    questions = deck_parser(llm).parse(pages)

    assert [q.id for q in questions] == ["q1", "q2", "q3", "q10", "q11"]
    assert questions[-1].correct == "A"
    assert len(llm.calls) == 1


def test_fallback_is_skipped_without_credentials():
    pages = labelled_pages() + [
        PDFPage(5, "Which enzyme?\nA. PAH\nB. HGPRT\nC. G6PD\nD. MCAD"),
    ]
    questions = deck_parser(FakeLLM(has_credentials=False)).parse(pages)
    assert [q.num for q in questions] == [1, 2, 3, 10]
