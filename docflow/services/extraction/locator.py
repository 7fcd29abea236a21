"""
Best-effort location search for extracted values in OCR word boxes.

The result only drives a highlight in the review UI, so a miss is never an
error: callers get ``(None, None)`` back.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence, Tuple

from ..models import BBox, OcrPage, OcrWord

MIN_SEARCHABLE_LENGTH = 2
MIN_PARTIAL_MATCH_LENGTH = 6
MIN_CONTAINED_MATCH_LENGTH_SHORT = 4
MIN_CONTAINED_MATCH_LENGTH_LONG = 8
LONG_PHRASE_THRESHOLD = 15
MIN_SPAN_WORDS = 10
MAX_SPAN_WORDS = 20

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")

Location = Tuple[Optional[int], Optional[BBox]]
NO_LOCATION: Location = (None, None)


def normalize_text(text: str) -> str:
    return _NON_ALNUM_RE.sub("", text.lower())


def _search_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        return str(value[0]) if value else None
    return None


def _union(words: Sequence[OcrWord]) -> BBox:
    min_x = min(w.bbox[0] for w in words)
    min_y = min(w.bbox[1] for w in words)
    max_x = max(w.bbox[0] + w.bbox[2] for w in words)
    max_y = max(w.bbox[1] + w.bbox[3] for w in words)
    return (min_x, min_y, max_x - min_x, max_y - min_y)


def _match_span(words: Sequence[OcrWord], start: int, search_text: str, normalized: str, max_span: int) -> Optional[BBox]:
    compact_search = _WHITESPACE_RE.sub("", normalized)
    min_contained = (
        MIN_CONTAINED_MATCH_LENGTH_LONG
        if len(search_text) > LONG_PHRASE_THRESHOLD
        else MIN_CONTAINED_MATCH_LENGTH_SHORT
    )

    parts = [words[start].text]
    for end in range(start + 1, min(start + max_span, len(words))):
        parts.append(words[end].text)
        combined = normalize_text(" ".join(parts))
        if (
            combined == normalized
            or _WHITESPACE_RE.sub("", combined) == compact_search
            or (normalized in combined and len(normalized) > min_contained)
        ):
            return _union(words[start:end + 1])
    return None


def _search_page(page: OcrPage, search_text: str, normalized: str) -> Optional[BBox]:
    words = page.words
    word_count = len(search_text.split())
    max_span = min(max(word_count + 3, MIN_SPAN_WORDS), MAX_SPAN_WORDS)

    for i, word in enumerate(words):
        if normalize_text(word.text) == normalized:
            return word.bbox
        bbox = _match_span(words, i, search_text, normalized, max_span)
        if bbox is not None:
            return bbox

    if len(normalized) > MIN_PARTIAL_MATCH_LENGTH:
        for word in words:
            if normalized in normalize_text(word.text):
                return word.bbox
    return None


def find_field_location(value: Any, ocr_pages: Optional[List[OcrPage]]) -> Location:
    """
    Locate an extracted value among OCR words.

    Pages are scanned in order and the first hit wins. On each page a word
    that equals the value is tried first, then spans starting at that word
    (exact, exact ignoring spaces, containment), then a page-wide substring
    fallback for longer values. Lists are searched by their first element.

    Returns:
        (page_number, bbox) with bbox as (x, y, width, height), or (None, None)
    """
    if not ocr_pages or value is None:
        return NO_LOCATION

    search_text = _search_text(value)
    if search_text is None:
        return NO_LOCATION

    normalized = normalize_text(search_text)
    if len(normalized.strip()) < MIN_SEARCHABLE_LENGTH:
        return NO_LOCATION

    for page in ocr_pages:
        if not page.words:
            continue
        bbox = _search_page(page, search_text, normalized)
        if bbox is not None:
            return page.page, bbox

    return NO_LOCATION
