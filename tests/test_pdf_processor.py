import base64
import io

import fitz
import pytest
from PIL import Image

from conftest import build_pdf, png_bytes
from core.pdf_processor import (
    PAGE_BREAK,
    DocumentUnreadableError,
    PDFPage,
    PDFProcessor,
    load_text_document,
    resize_image_if_needed,
)


def test_pages_carry_text_lines_and_image_counts():
    data = build_pdf([
        "QUESTION 1\nWhich nerve is injured?",
        {"text": "QUESTION 2", "images": 3},
    ])
    with PDFProcessor().open(data, name="deck.pdf") as document:
        assert document.name == "deck.pdf"
        assert document.total_pages == 2
        first, second = document.pages
        assert first.page_number == 1
        assert first.text.split("\n") == ["QUESTION 1", "Which nerve is injured?"]
        assert first.embedded_image_count == 0
        assert second.embedded_image_count == 3
        assert document.full_text == first.text + PAGE_BREAK + second.text


def test_render_produces_png():
    with PDFProcessor().open(build_pdf(["hello"])) as document:
        page = document.pages[0]
        png = page.render(0.5)
        assert png.startswith(b"\x89PNG")
        assert Image.open(io.BytesIO(png)).size == (306, 396)
        assert base64.b64decode(page.render_b64(0.5)) == png


def test_open_from_path(tmp_path):
    path = tmp_path / "exam.pdf"
    path.write_bytes(build_pdf(["one"]))
    with PDFProcessor().open(path) as document:
        assert document.name == "exam.pdf"
        assert document.fitz_document is not None
    assert document.fitz_document is None


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        PDFProcessor().open("/nonexistent/exam.pdf")


def test_garbage_bytes_are_unreadable():
    with pytest.raises(DocumentUnreadableError):
        PDFProcessor().open(b"this is not a pdf at all", name="junk.pdf")


def test_encrypted_pdf_is_unreadable():
    doc = fitz.open()
    doc.new_page().insert_text((50, 50), "secret")
    data = doc.tobytes(encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="user")
    doc.close()

    with pytest.raises(DocumentUnreadableError):
        PDFProcessor().open(data)


def test_text_document_has_no_renderer(tmp_path):
    path = tmp_path / "bank.txt"
    path.write_text("1. What is the most common cause?\n", encoding="utf-8")
    document = load_text_document(path)
    (page,) = document.pages
    assert page.text == "1. What is the most common cause?"
    assert not page.can_render
    with pytest.raises(ValueError):
        page.render()


def test_resize_image_if_needed():
    small = png_bytes(size=(100, 50))
    assert resize_image_if_needed(small) is small

    big = png_bytes(size=(3000, 1000))
    resized = Image.open(io.BytesIO(resize_image_if_needed(big)))
    assert resized.size == (2048, 682)


def test_page_without_renderer():
    assert not PDFPage(1, "text").can_render
