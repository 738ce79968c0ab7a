"""
Configuration for RxTutor.
All settings can be overridden through environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass(frozen=True)
class ParserThresholds:
    """Empirically tuned layout heuristics used during exam ingestion.

    Kept as a value object so a single parse can override one threshold
    without touching the process-wide Config.
    """
    slide_label_min_distinct: int = 3
    grid_choice_threshold: int = 8
    standard_numbered_min: int = 3
    chunk_size: int = 10000
    chunk_overlap: int = 500
    stem_prefix_length: int = 60
    grid_stem_prefix_length: int = 50
    min_stem_length: int = 20
    grid_min_stem_length: int = 10
    grid_text_limit: int = 4000
    answer_page_choice_threshold: int = 4
    slide_fallback_choice_threshold: int = 4
    image_slide_min_images: int = 5
    image_slide_max_text: int = 200


class Config:
    """Process-wide settings."""

    # Paths
    DATA_DIR = Path(os.getenv("RXT_DATA_DIR", str(Path.home() / ".rxtutor")))
    DB_PATH = Path(os.getenv("RXT_DB_PATH", str(DATA_DIR / "rxtutor.db")))

    # LLM provider
    LLM_PROVIDER = os.getenv("RXT_LLM_PROVIDER", "gemini")
    GEMINI_API_KEY = os.getenv("RXT_GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("RXT_GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_BASE_URL = os.getenv(
        "RXT_GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    OLLAMA_BASE_URL = os.getenv("RXT_OLLAMA_BASE_URL", "http://localhost:11434")
    OLLAMA_MODEL = os.getenv("RXT_OLLAMA_MODEL", "llama3.1:8b")
    LLM_TIMEOUT = _env_int("RXT_LLM_TIMEOUT", 120)
    # 1 keeps every parse job strictly sequential
    LLM_MAX_WORKERS = _env_int("RXT_LLM_MAX_WORKERS", 1)

    # Ingestion heuristics
    SLIDE_LABEL_MIN_DISTINCT = _env_int("RXT_SLIDE_LABEL_MIN_DISTINCT", 3)
    GRID_CHOICE_THRESHOLD = _env_int("RXT_GRID_CHOICE_THRESHOLD", 8)
    STANDARD_NUMBERED_MIN = _env_int("RXT_STANDARD_NUMBERED_MIN", 3)
    CHUNK_SIZE = _env_int("RXT_CHUNK_SIZE", 10000)
    CHUNK_OVERLAP = _env_int("RXT_CHUNK_OVERLAP", 500)
    STEM_PREFIX_LENGTH = _env_int("RXT_STEM_PREFIX_LENGTH", 60)
    GRID_STEM_PREFIX_LENGTH = _env_int("RXT_GRID_STEM_PREFIX_LENGTH", 50)
    MIN_STEM_LENGTH = _env_int("RXT_MIN_STEM_LENGTH", 20)
    GRID_MIN_STEM_LENGTH = _env_int("RXT_GRID_MIN_STEM_LENGTH", 10)
    GRID_TEXT_LIMIT = _env_int("RXT_GRID_TEXT_LIMIT", 4000)
    ANSWER_PAGE_CHOICE_THRESHOLD = _env_int("RXT_ANSWER_PAGE_CHOICE_THRESHOLD", 4)
    SLIDE_FALLBACK_CHOICE_THRESHOLD = _env_int("RXT_SLIDE_FALLBACK_CHOICE_THRESHOLD", 4)
    IMAGE_SLIDE_MIN_IMAGES = _env_int("RXT_IMAGE_SLIDE_MIN_IMAGES", 5)
    IMAGE_SLIDE_MAX_TEXT = _env_int("RXT_IMAGE_SLIDE_MAX_TEXT", 200)

    # Rasterisation scales (1.0 = 72 dpi)
    GRID_RENDER_SCALE = _env_float("RXT_GRID_RENDER_SCALE", 1.8)
    SLIDE_RENDER_SCALE = _env_float("RXT_SLIDE_RENDER_SCALE", 1.5)
    HISTO_RENDER_SCALE = _env_float("RXT_HISTO_RENDER_SCALE", 1.6)
    OBJECTIVE_RENDER_SCALE = _env_float("RXT_OBJECTIVE_RENDER_SCALE", 1.2)

    # Learning profile
    SESSION_HISTORY_LIMIT = _env_int("RXT_SESSION_HISTORY_LIMIT", 500)

    @classmethod
    def ensure_dirs(cls):
        """Create data directories if they don't exist."""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)
        cls.DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def thresholds(cls) -> ParserThresholds:
        """Snapshot of the current ingestion thresholds."""
        return ParserThresholds(
            slide_label_min_distinct=cls.SLIDE_LABEL_MIN_DISTINCT,
            grid_choice_threshold=cls.GRID_CHOICE_THRESHOLD,
            standard_numbered_min=cls.STANDARD_NUMBERED_MIN,
            chunk_size=cls.CHUNK_SIZE,
            chunk_overlap=cls.CHUNK_OVERLAP,
            stem_prefix_length=cls.STEM_PREFIX_LENGTH,
            grid_stem_prefix_length=cls.GRID_STEM_PREFIX_LENGTH,
            min_stem_length=cls.MIN_STEM_LENGTH,
            grid_min_stem_length=cls.GRID_MIN_STEM_LENGTH,
            grid_text_limit=cls.GRID_TEXT_LIMIT,
            answer_page_choice_threshold=cls.ANSWER_PAGE_CHOICE_THRESHOLD,
            slide_fallback_choice_threshold=cls.SLIDE_FALLBACK_CHOICE_THRESHOLD,
            image_slide_min_images=cls.IMAGE_SLIDE_MIN_IMAGES,
            image_slide_max_text=cls.IMAGE_SLIDE_MAX_TEXT,
        )
