"""
Per-document-type approval thresholds.

A prediction whose final confidence falls below its type's threshold is
routed to human review. Thresholds live in the ``settings`` table under
fixed keys and are read fresh on every call.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from .errors import ThresholdRangeError, UnknownDocumentTypeError
from .models import DocumentType

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
MIN_THRESHOLD = 0.5
MAX_THRESHOLD = 1.0

THRESHOLD_KEYS: Dict[DocumentType, str] = {
    DocumentType.BANK_STATEMENT: "threshold_bank_statement",
    DocumentType.GOVERNMENT_ID: "threshold_government_id",
    DocumentType.W9: "threshold_w9",
    DocumentType.CERTIFICATE_OF_INSURANCE: "threshold_coi",
    DocumentType.ARTICLES_OF_INCORPORATION: "threshold_articles",
    DocumentType.UNKNOWN: "threshold_unknown",
}


def threshold_key(document_type: DocumentType) -> str:
    return THRESHOLD_KEYS[document_type]


def _resolve_type(document_type: Any) -> DocumentType:
    doc_type = DocumentType.parse(document_type)
    if doc_type is None:
        raise UnknownDocumentTypeError(str(document_type), DocumentType.values())
    return doc_type


class ThresholdStore:
    def __init__(self, store: Any, default_threshold: float = DEFAULT_THRESHOLD) -> None:
        self.store = store
        self.default_threshold = default_threshold

    async def get_threshold(self, document_type: Any) -> float:
        """Stored threshold for the type, or the default when unset or unreadable."""
        doc_type = _resolve_type(document_type)
        try:
            raw = await self.store.get_setting(threshold_key(doc_type))
        except Exception as e:
            logger.warning(f"Failed to read threshold for {doc_type.value}: {e}")
            return self.default_threshold

        if raw is None:
            return self.default_threshold
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed threshold {raw!r} for {doc_type.value}")
            return self.default_threshold

    async def set_threshold(self, document_type: Any, value: float) -> float:
        doc_type = _resolve_type(document_type)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ThresholdRangeError(f"Threshold must be a number, got {value!r}")
        if not MIN_THRESHOLD <= value <= MAX_THRESHOLD:
            raise ThresholdRangeError(
                f"Threshold for {doc_type.value} must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}, got {value}"
            )

        await self.store.set_setting(threshold_key(doc_type), str(float(value)))
        logger.info(f"Threshold for {doc_type.value} set to {value}")
        return float(value)

    async def list_thresholds(self) -> Dict[str, float]:
        return {doc_type.value: await self.get_threshold(doc_type) for doc_type in DocumentType}
