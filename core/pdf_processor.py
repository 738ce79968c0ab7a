"""
PDF processing for RxTutor.
Extracts per-page text, embedded-image counts and on-demand page renders
from exam and lecture PDFs.
"""

import base64
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import fitz  # PyMuPDF
from PIL import Image

logger = logging.getLogger(__name__)

PAGE_BREAK = "\n\n[PAGE_BREAK]\n\n"


class DocumentUnreadableError(Exception):
    """Raised when a PDF cannot be opened (corrupt data, encryption)."""
    pass


@dataclass
class PDFPage:
    """Represents a single page from a PDF.

    renderer is a capability rather than a value: it re-renders the page at
    the requested scale each time it is called. Plain-text pages have none.
    """

    page_number: int
    text: str
    embedded_image_count: int = 0
    renderer: Optional[Callable[[float], bytes]] = field(default=None, repr=False)

    @property
    def can_render(self) -> bool:
        return self.renderer is not None

    def render(self, scale: float = 1.5) -> bytes:
        """Render this page to PNG bytes at the given scale (1.0 = 72 dpi)."""
        if self.renderer is None:
            raise ValueError(f"Page {self.page_number} has no raster source")
        return self.renderer(scale)

    def render_b64(self, scale: float = 1.5) -> str:
        """Render this page and return the PNG as base64 text."""
        return base64.b64encode(self.render(scale)).decode("utf-8")


@dataclass
class PDFDocument:
    """Open document with extracted pages.

    Pages keep a reference to the underlying document for rendering, so the
    document must stay open while pages are rendered. Use as a context
    manager.
    """

    name: str
    pages: List[PDFPage]
    metadata: Dict[str, Any] = field(default_factory=dict)
    _doc: Any = field(default=None, repr=False)

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    @property
    def full_text(self) -> str:
        """All page texts joined with an explicit page-break marker."""
        return PAGE_BREAK.join(page.text for page in self.pages)

    @property
    def fitz_document(self):
        """Underlying PyMuPDF document (None for plain-text sources)."""
        return self._doc

    def close(self):
        if self._doc is not None:
            self._doc.close()
            self._doc = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class PDFProcessor:
    """Opens PDFs and extracts the page descriptors every parser consumes."""

    def open(self, source: Union[bytes, Path, str], name: Optional[str] = None) -> PDFDocument:
        """Open a PDF and extract all pages.

        Args:
            source: Raw PDF bytes or a path to a PDF file
            name: Display name (defaults to the file name)

        Returns:
            PDFDocument (close it, or use it as a context manager)

        Raises:
            FileNotFoundError: Path does not exist
            DocumentUnreadableError: Corrupt or password-protected PDF
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"PDF not found: {path}")
            name = name or path.name
            data = path.read_bytes()
        else:
            data = source
            name = name or "document.pdf"

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise DocumentUnreadableError(f"Cannot open {name}: {e}") from e

        if doc.needs_pass:
            doc.close()
            raise DocumentUnreadableError(f"Cannot open {name}: document is encrypted")

        try:
            pages = [self._extract_page(doc, index) for index in range(len(doc))]
        except Exception as e:
            doc.close()
            raise DocumentUnreadableError(f"Cannot read pages of {name}: {e}") from e

        logger.info(f"Opened {name}: {len(pages)} page(s)")
        return PDFDocument(name=name, pages=pages, metadata=doc.metadata or {}, _doc=doc)

    def _extract_page(self, doc, index: int) -> PDFPage:
        page = doc[index]
        return PDFPage(
            page_number=index + 1,
            text=extract_page_text(page),
            embedded_image_count=count_embedded_images(page),
            renderer=_make_renderer(doc, index),
        )


def extract_page_text(page) -> str:
    """Concatenate text-layer spans in layout order, one line break per line."""
    pieces: List[str] = []
    layout = page.get_text("dict", sort=True)
    for block in layout.get("blocks", []):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            pieces.append("".join(span.get("text", "") for span in line.get("spans", [])))
    return "\n".join(pieces).strip()


def count_embedded_images(page) -> int:
    """Count image paint operations on the page; 0 if they cannot be listed."""
    try:
        return len(page.get_image_info())
    except Exception as e:
        logger.debug(f"Could not list images on page {page.number + 1}: {e}")
        return 0


def _make_renderer(doc, index: int) -> Callable[[float], bytes]:
    def render(scale: float) -> bytes:
        pix = doc[index].get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return pix.tobytes("png")
    return render


def load_text_document(path: Union[Path, str]) -> PDFDocument:
    """Wrap a plain-text question bank as a single unrenderable page."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    text = path.read_text(encoding="utf-8", errors="replace")
    return PDFDocument(name=path.name, pages=[PDFPage(page_number=1, text=text.strip())])


def resize_image_if_needed(image_bytes: bytes, max_size: int = 2048) -> bytes:
    """Resize image if either dimension exceeds max_size.

    Args:
        image_bytes: Original image bytes
        max_size: Maximum dimension (pixels)

    Returns:
        Resized PNG bytes (or original if no resize needed)
    """
    img = Image.open(io.BytesIO(image_bytes))
    width, height = img.size

    if width <= max_size and height <= max_size:
        return image_bytes

    if width > height:
        new_width = max_size
        new_height = int(height * max_size / width)
    else:
        new_height = max_size
        new_width = int(width * max_size / height)

    img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
