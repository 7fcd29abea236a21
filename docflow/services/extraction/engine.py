"""
Schema-driven field extraction.

Uses the LLM in JSON mode to read one record per document, then coerces,
validates, scores and locates every schema field.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..classification.confidence import ConfidenceCalculator
from ..errors import SchemaNotFoundError
from ..learning.service import LearningContext, LearningService
from ..models import (
    ConfidenceBreakdown,
    DocumentType,
    ExtractionResult,
    Field,
    GoldExample,
    OcrPage,
)
from .coercion import TypeCoercionService
from .locator import find_field_location
from .schemas import ExtractionSchema, SchemaStore
from .validation import ValidationService

logger = logging.getLogger(__name__)

LEARNING_EXAMPLE_GATE_CONFIDENCE = 0.5
DEFAULT_MAX_TEXT_CHARS = 4000

LLM_CONFIDENCE_MISSING = 0.0
LLM_CONFIDENCE_EMPTY_STRING = 0.1
LLM_CONFIDENCE_SHORT_STRING = 0.3
LLM_CONFIDENCE_MEDIUM_STRING = 0.6
LLM_CONFIDENCE_LONG_STRING = 0.85
LLM_CONFIDENCE_NUMBER = 0.9
LLM_CONFIDENCE_BOOLEAN = 0.95
LLM_CONFIDENCE_EMPTY_ARRAY = 0.2
LLM_CONFIDENCE_FILLED_ARRAY = 0.8
LLM_CONFIDENCE_DEFAULT = 0.7

CLARITY_CONFIDENCE_DEFAULT = 0.5
CLARITY_CONFIDENCE_NO_KEYWORDS = 0.3
CLARITY_CONFIDENCE_FEW_KEYWORDS = 0.5
CLARITY_CONFIDENCE_SOME_KEYWORDS = 0.7
CLARITY_CONFIDENCE_MOST_KEYWORDS = 0.95

EXTRACTION_SYSTEM_PROMPT = (
    "You are a document extraction assistant. Extract structured data from OCR text "
    "and return valid JSON only. Do not include any explanations or markdown."
)


def build_extraction_prompt(
    schema: ExtractionSchema,
    ocr_text: str,
    learning_fragment: Optional[str] = None,
    max_text_chars: int = DEFAULT_MAX_TEXT_CHARS,
) -> Tuple[str, str]:
    """
    Build system and user prompts for JSON extraction.

    Args:
        schema: The extraction schema
        ocr_text: Full OCR text of the document
        learning_fragment: Rendered gold example, if one was retrieved
        max_text_chars: Max characters to include from the document

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    prompt = f"""Extract the following fields from this {schema.document_type.value} document:

{schema.get_field_descriptions()}

Return a JSON object with these exact field names as keys. If a field is not found, use null.

"""
    if learning_fragment:
        prompt += f"{learning_fragment}\n\nNow extract from this document:\n\n"

    prompt += f"""OCR Text:
{ocr_text[:max_text_chars]}

Return only valid JSON, no explanations."""

    return EXTRACTION_SYSTEM_PROMPT, prompt


def shape_llm_confidence(value: Any) -> float:
    """Heuristic model confidence from the shape of a value; no token probabilities are available."""
    if value is None:
        return LLM_CONFIDENCE_MISSING
    if isinstance(value, bool):
        return LLM_CONFIDENCE_BOOLEAN
    if isinstance(value, str):
        length = len(value.strip())
        if length == 0:
            return LLM_CONFIDENCE_EMPTY_STRING
        if length < 2:
            return LLM_CONFIDENCE_SHORT_STRING
        if length < 5:
            return LLM_CONFIDENCE_MEDIUM_STRING
        return LLM_CONFIDENCE_LONG_STRING
    if isinstance(value, (int, float)):
        return LLM_CONFIDENCE_NUMBER
    if isinstance(value, list):
        return LLM_CONFIDENCE_FILLED_ARRAY if value else LLM_CONFIDENCE_EMPTY_ARRAY
    return LLM_CONFIDENCE_DEFAULT


def field_clarity_confidence(text: str, keywords: Sequence[str]) -> float:
    if not keywords:
        return CLARITY_CONFIDENCE_DEFAULT

    lower = text.lower()
    matched = sum(1 for keyword in keywords if keyword.lower() in lower)
    rate = matched / len(keywords)

    if rate == 0:
        return CLARITY_CONFIDENCE_NO_KEYWORDS
    if rate < 0.3:
        return CLARITY_CONFIDENCE_FEW_KEYWORDS
    if rate < 0.6:
        return CLARITY_CONFIDENCE_SOME_KEYWORDS
    return CLARITY_CONFIDENCE_MOST_KEYWORDS


def _mean(values: Iterable[float]) -> float:
    items = list(values)
    return sum(items) / len(items) if items else 0.0


def _utc_timestamp() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class ExtractionService:
    def __init__(
        self,
        llm: Any,
        schema_store: SchemaStore,
        coercion: TypeCoercionService,
        validation: ValidationService,
        confidence: ConfidenceCalculator,
        learning: LearningService,
        thresholds: Any,
        max_text_chars: int = DEFAULT_MAX_TEXT_CHARS,
    ) -> None:
        self.llm = llm
        self.schema_store = schema_store
        self.coercion = coercion
        self.validation = validation
        self.confidence = confidence
        self.learning = learning
        self.thresholds = thresholds
        self.max_text_chars = max_text_chars

    async def extract(
        self,
        ocr_text: str,
        document_type: Any,
        document_id: int,
        ocr_pages: Optional[List[OcrPage]] = None,
    ) -> ExtractionResult:
        logger.info(f"Starting extraction for document {document_id}, type: {document_type}")

        schema = self.schema_store.get_schema(document_type)
        if schema is None:
            raise SchemaNotFoundError(f"No schema found for document type: {document_type}")
        doc_type = schema.document_type

        threshold = await self.thresholds.get_threshold(doc_type)

        learning_result = await self.learning.retrieve_learning_example(LearningContext(
            doc_type=doc_type.value,
            confidence=LEARNING_EXAMPLE_GATE_CONFIDENCE,
            use_tool_calling=False,
        ))
        example: Optional[GoldExample] = learning_result.example if learning_result.example_found else None
        fragment = self.learning.prepare_learning_prompt(example) if example else None

        system_prompt, user_prompt = build_extraction_prompt(
            schema, ocr_text, fragment, max_text_chars=self.max_text_chars
        )

        start = time.perf_counter()
        extracted = await self.llm.complete_json([
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ])
        logger.info(
            f"LLM extraction completed in {time.perf_counter() - start:.2f}s "
            f"(learning example: {example is not None})"
        )

        extracted = self.coercion.coerce_all_fields(doc_type, extracted)
        field_keywords = self.schema_store.get_field_keywords(doc_type) or {}

        fields = [
            self._score_field(doc_type, name, extracted.get(name), ocr_text, field_keywords.get(name, []), threshold, ocr_pages)
            for name in schema.field_names()
        ]

        overall = _mean(f.final_confidence for f in fields)
        summary = ConfidenceBreakdown(
            llm_confidence=_mean(f.llm_confidence for f in fields),
            validation_confidence=_mean(f.validation_confidence for f in fields),
            clarity_confidence=_mean(f.clarity_confidence for f in fields),
            final_confidence=overall,
        )
        reasons = self.confidence.low_confidence_reasons(summary, threshold)

        return ExtractionResult(
            document_id=document_id,
            schema_type=doc_type,
            fields=fields,
            overall_confidence=overall,
            extraction_timestamp=_utc_timestamp(),
            reasons=reasons or None,
            used_learning_example=example is not None,
        )

    def _score_field(
        self,
        doc_type: DocumentType,
        name: str,
        value: Any,
        ocr_text: str,
        keywords: Sequence[str],
        threshold: float,
        ocr_pages: Optional[List[OcrPage]],
    ) -> Field:
        result = self.validation.validate_field(doc_type, name, value)
        breakdown = self.confidence.final_confidence(
            shape_llm_confidence(value),
            result.confidence,
            field_clarity_confidence(ocr_text, keywords),
        )
        reasons = self.confidence.low_confidence_reasons(breakdown, threshold)

        try:
            page_number, bbox = find_field_location(value, ocr_pages)
        except Exception as e:
            logger.warning(f"Location search failed for {name}: {e}")
            page_number, bbox = None, None

        return Field(
            name=name,
            value=value,
            llm_confidence=breakdown.llm_confidence,
            validation_confidence=breakdown.validation_confidence,
            clarity_confidence=breakdown.clarity_confidence,
            final_confidence=breakdown.final_confidence,
            validation_status=self.validation.get_validation_status(result),
            page_number=page_number,
            bbox=bbox,
            validation_error=result.error,
            reasons=reasons or None,
        )

    async def re_extract(
        self,
        document_id: int,
        new_type: Any,
        ocr_text: str,
        ocr_pages: Optional[List[OcrPage]] = None,
    ) -> ExtractionResult:
        logger.info(f"Re-extracting document {document_id} with new type: {new_type}")
        return await self.extract(ocr_text, new_type, document_id, ocr_pages)

    async def validate(self, document_type: Any, fields: Sequence[Any]) -> Dict[str, Any]:
        """Validate already-extracted fields (Field objects or name/value mappings)."""
        values: Dict[str, Any] = {}
        for f in fields:
            if isinstance(f, dict):
                values[f["name"]] = f.get("value")
            else:
                values[f.name] = f.value
        result = self.validation.validate_document(document_type, values)
        return {"valid": result.valid, "errors": result.errors}
