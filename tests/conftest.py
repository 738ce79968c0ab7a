"""Shared fixtures: a scripted LLM double, PDF builders and a temp store."""

import io
import json
from typing import Any, List, Optional

import fitz
import pytest
from PIL import Image

from config import Config
from models.llm_manager import LLMResponse, MissingCredentialsError


class FakeLLM:
    """Stands in for LLMManager; replies from a queue and records calls.

    Queue items may be a str (returned as text), a dict/list (JSON-encoded),
    an LLMResponse (returned as is) or a callable taking the prompt.
    """

    def __init__(self, responses: Optional[List[Any]] = None, has_credentials: bool = True):
        self.responses = list(responses or [])
        self._has_credentials = has_credentials
        self.calls: List[dict] = []

    @property
    def has_credentials(self) -> bool:
        return self._has_credentials

    def require_credentials(self):
        if not self._has_credentials:
            raise MissingCredentialsError("No API key configured")

    def generate(self, prompt, images=None, model=None, system=None,
                 temperature=0.7, max_tokens=None):
        self.require_credentials()
        self.calls.append({
            "prompt": prompt,
            "system": system,
            "images": list(images or []),
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            return LLMResponse(text="", model="fake", success=False, error="no canned response")

        item = self.responses.pop(0)
        if callable(item):
            item = item(prompt)
        if isinstance(item, LLMResponse):
            return item
        if not isinstance(item, str):
            item = json.dumps(item)
        return LLMResponse(text=item, model="fake", success=True)


def png_bytes(color=(200, 60, 60), size=(16, 16)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def build_pdf(pages) -> bytes:
    """PDF bytes with one page per entry.

    An entry is either page text, or a dict with "text" and an "images"
    count of small distinct images to place on the page.
    """
    doc = fitz.open()
    for entry in pages:
        if isinstance(entry, str):
            entry = {"text": entry}
        page = doc.new_page(width=612, height=792)
        y = 60
        for line in entry.get("text", "").split("\n"):
            if line:
                page.insert_text((50, y), line, fontsize=10)
            y += 14
        for i in range(entry.get("images", 0)):
            x0 = 50 + (i % 4) * 130
            y0 = 450 + (i // 4) * 130
            page.insert_image(fitz.Rect(x0, y0, x0 + 100, y0 + 100),
                              stream=png_bytes((20 * i % 255, 100, 150)))
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def make_pdf(tmp_path):
    """Write a synthesized PDF to tmp_path and return its path."""
    def _make(pages, name="exam.pdf"):
        path = tmp_path / name
        path.write_bytes(build_pdf(pages))
        return path
    return _make


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "rxtutor.db"
    monkeypatch.setattr(Config, "DB_PATH", path)
    monkeypatch.setattr(Config, "DATA_DIR", tmp_path)
    return path
