"""
Read access to gold corrections.

A gold example is never stored as such: it is the join of a human correction
flagged ``is_gold`` with the document it corrected, read on demand.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..models import GoldExample

logger = logging.getLogger(__name__)

OCR_EXCERPT_LENGTH = 500
DEFAULT_EXAMPLE_LIMIT = 1
DEFAULT_MULTIPLE_EXAMPLES_LIMIT = 5


@dataclass
class ExampleQuery:
    doc_type: str
    keywords: Sequence[str] = field(default_factory=tuple)
    limit: Optional[int] = None


def _load_json(raw: Any, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def ocr_excerpt(ocr_text: Any, limit: int = OCR_EXCERPT_LENGTH) -> str:
    """
    Plain-text excerpt of stored OCR output.

    OCR is usually stored as a JSON list of pages; their texts are joined
    with newlines. Plain strings are used as they are.
    """
    if isinstance(ocr_text, str):
        parsed = _load_json(ocr_text, ocr_text)
        if isinstance(parsed, list):
            ocr_text = parsed
    if isinstance(ocr_text, list):
        texts = [
            str(page.get("text", "")) if isinstance(page, dict) else str(page)
            for page in ocr_text
        ]
        return "\n".join(texts)[:limit]
    if ocr_text is None:
        return ""
    return str(ocr_text)[:limit]


def _row_to_example(row: Dict[str, Any]) -> GoldExample:
    extraction = _load_json(row.get("extraction"), {})
    return GoldExample(
        doc_id=int(row["doc_id"]),
        doc_type=row["doc_type"],
        ocr_text=_load_json(row.get("ocr_json"), ""),
        extraction=extraction if isinstance(extraction, dict) else {},
        corrected_value=row["corrected_value"],
        field_name=row.get("field_name"),
        created_at=row.get("created_at"),
    )


class ExampleStore:
    def __init__(self, store: Any) -> None:
        self.store = store

    async def get_gold_example(self, query: ExampleQuery) -> Optional[GoldExample]:
        """Uniformly random gold example for the type, or None."""
        rows = await self.store.fetch_gold_corrections(
            query.doc_type,
            keywords=list(query.keywords),
            limit=query.limit or DEFAULT_EXAMPLE_LIMIT,
        )
        return _row_to_example(rows[0]) if rows else None

    async def get_gold_examples(self, query: ExampleQuery) -> List[GoldExample]:
        rows = await self.store.fetch_gold_corrections(
            query.doc_type,
            keywords=list(query.keywords),
            limit=query.limit or DEFAULT_MULTIPLE_EXAMPLES_LIMIT,
        )
        return [_row_to_example(row) for row in rows]

    async def get_gold_example_counts(self) -> Dict[str, int]:
        return await self.store.count_gold_corrections_by_type()

    async def mark_as_gold(self, correction_id: int, is_gold: bool) -> bool:
        """Flip the gold flag; False when no such correction exists."""
        updated = await self.store.set_correction_gold(correction_id, is_gold)
        if updated:
            logger.info(f"Correction {correction_id} gold flag set to {is_gold}")
        return updated
