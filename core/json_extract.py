"""
JSON extraction from free-form LLM output.

Every LLM-facing call site goes through this module. The model is asked for
JSON but routinely wraps it in prose or markdown fences, so the payload is
located by scanning for the first opening bracket of either kind and the last
closing bracket of either kind, and only that span is parsed.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


class JSONExtractionError(Exception):
    """Raised (or carried) when no JSON value can be recovered from text."""
    pass


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of extract_json: either a parsed value or an error."""
    value: Any = None
    error: Optional[JSONExtractionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def locate_json_span(text: str) -> Optional[Tuple[int, int]]:
    """Find the (start, end) slice bounds of the candidate JSON payload.

    start is the first '{' or '[', end is one past the last '}' or ']'.
    Returns None when either side is missing or they are out of order.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    first = min(starts)
    last = max(text.rfind("}"), text.rfind("]"))
    if last == -1 or last < first:
        return None
    return first, last + 1


def extract_json(text: Optional[str]) -> ExtractionResult:
    """Parse the JSON payload embedded in an LLM response.

    Never raises; failures are reported through ExtractionResult.error.
    """
    if not text:
        return ExtractionResult(error=JSONExtractionError("empty response"))

    cleaned = strip_code_fences(text)
    span = locate_json_span(cleaned)
    if span is None:
        return ExtractionResult(error=JSONExtractionError("no JSON brackets found"))

    start, end = span
    try:
        return ExtractionResult(value=json.loads(cleaned[start:end]))
    except json.JSONDecodeError as e:
        return ExtractionResult(error=JSONExtractionError(f"invalid JSON: {e}"))


def safe_json_object(text: Optional[str]) -> dict:
    """Parsed JSON object, or {} when the response holds no usable object."""
    result = extract_json(text)
    if result.ok and isinstance(result.value, dict):
        return result.value
    return {}


def safe_json_array(text: Optional[str]) -> list:
    """Parsed JSON array, or [] when the response holds no usable array."""
    result = extract_json(text)
    if result.ok and isinstance(result.value, list):
        return result.value
    return []
