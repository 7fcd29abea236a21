"""
Document type classification.

Flow for one call:
1. Request: the model sees the OCR text and may call get_gold_example
2. Resolve: the answer's type is checked against DocumentType, with a fixed
   remap table for common near-misses (capped confidence)
3. Score: multiplicative confidence with the type's identifying keywords
4. Retry (at most once): a shaky first answer that did not use the tool is
   re-asked with a gold example embedded; the retry wins only if it scores higher
5. Decide: requires_review = final < threshold of the chosen type
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import LLMError, UnknownDocumentTypeError
from ..extraction.schemas import SchemaStore
from ..learning.service import LearningContext, LearningService
from ..llm.client import parse_json_reply
from ..llm.tools import ToolRegistry
from ..models import ClassificationResult, ConfidenceBreakdown, DocumentType
from .confidence import ConfidenceCalculator

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.7
MAPPED_TYPE_CONFIDENCE_CAP = 0.6
DEFAULT_MAPPED_CONFIDENCE = 0.5
DEFAULT_MAX_TEXT_CHARS = 2000

# Near-miss labels the model produces instead of a real type.
TYPE_REMAP: Dict[str, DocumentType] = {
    "conditional sales contract": DocumentType.CERTIFICATE_OF_INSURANCE,
    "sales contract": DocumentType.CERTIFICATE_OF_INSURANCE,
    "contract": DocumentType.CERTIFICATE_OF_INSURANCE,
    "driver license": DocumentType.GOVERNMENT_ID,
    "drivers license": DocumentType.GOVERNMENT_ID,
    "passport": DocumentType.GOVERNMENT_ID,
    "tax form": DocumentType.W9,
    "w9": DocumentType.W9,
}

CLASSIFICATION_SYSTEM_PROMPT = """You are a document classification expert. Your task is to classify documents into EXACTLY ONE of these types:

1. Bank Statement
2. Government ID
3. W-9
4. Certificate of Insurance
5. Articles of Incorporation
6. Unknown

CRITICAL: You MUST choose one of the six types above. Do NOT create new types or variations.

If you are uncertain which type it is, use the get_gold_example tool to retrieve a corrected example document for comparison.

Use "Unknown" ONLY when the document clearly does not match any of the five known types. If you have ANY indicators that suggest one of the known types, choose that type even with lower confidence rather than "Unknown".

You MUST respond with a valid JSON object in EXACTLY this format:
{
  "document_type": "Bank Statement",
  "confidence": 0.95,
  "evidence": ["Found 'account balance'", "Contains transaction history", "Bank letterhead present"]
}

The "document_type" field MUST be one of: "Bank Statement", "Government ID", "W-9", "Certificate of Insurance", "Articles of Incorporation", or "Unknown"."""


@dataclass
class TypeResolution:
    """The model's answer after checking its type label."""
    document_type: DocumentType
    confidence: Any
    evidence: List[str]
    remapped: bool = False


@dataclass
class _Attempt:
    resolution: TypeResolution
    breakdown: ConfidenceBreakdown
    threshold: float
    tool_used: bool


def _as_evidence(raw: Any) -> List[str]:
    if isinstance(raw, list):
        return [str(item) for item in raw]
    if isinstance(raw, str) and raw:
        return [raw]
    return []


def resolve_document_type(answer: Dict[str, Any]) -> TypeResolution:
    """
    Validate ``answer["document_type"]``; fall back to TYPE_REMAP.

    A remapped answer keeps at most MAPPED_TYPE_CONFIDENCE_CAP of the model's
    confidence (DEFAULT_MAPPED_CONFIDENCE when it gave none).

    Raises:
        UnknownDocumentTypeError: the label is neither a type nor a known near-miss
    """
    raw_type = answer.get("document_type")
    confidence = answer.get("confidence")
    evidence = _as_evidence(answer.get("evidence"))

    doc_type = DocumentType.parse(raw_type)
    if doc_type is not None:
        return TypeResolution(document_type=doc_type, confidence=confidence, evidence=evidence)

    logger.warning(f"LLM returned invalid document type: {raw_type!r}")
    mapped = TYPE_REMAP.get(str(raw_type).strip().lower()) if isinstance(raw_type, str) else None
    if mapped is None:
        raise UnknownDocumentTypeError(str(raw_type), DocumentType.values())

    usable = isinstance(confidence, (int, float)) and not isinstance(confidence, bool) and confidence
    capped = min(confidence if usable else DEFAULT_MAPPED_CONFIDENCE, MAPPED_TYPE_CONFIDENCE_CAP)
    logger.info(f"Mapped {raw_type!r} to {mapped.value!r}")
    return TypeResolution(document_type=mapped, confidence=capped, evidence=evidence, remapped=True)


def build_user_prompt(ocr_text: str, max_text_chars: int = DEFAULT_MAX_TEXT_CHARS) -> str:
    return f"Classify this document:\n\n{ocr_text[:max_text_chars]}"


def build_learning_user_prompt(
    learning_fragment: str,
    ocr_text: str,
    max_text_chars: int = DEFAULT_MAX_TEXT_CHARS,
) -> str:
    return f"{learning_fragment}\n\nNow classify this document:\n\n{ocr_text[:max_text_chars]}"


class ClassificationService:
    def __init__(
        self,
        llm: Any,
        tools: ToolRegistry,
        confidence: ConfidenceCalculator,
        learning: LearningService,
        schema_store: SchemaStore,
        thresholds: Any,
        max_text_chars: int = DEFAULT_MAX_TEXT_CHARS,
    ) -> None:
        self.llm = llm
        self.tools = tools
        self.confidence = confidence
        self.learning = learning
        self.schema_store = schema_store
        self.thresholds = thresholds
        self.max_text_chars = max_text_chars

    async def _ask(self, user_prompt: str, document_id: int) -> tuple[TypeResolution, bool]:
        loop = await self.llm.chat_with_tools(
            [
                {"role": "system", "content": CLASSIFICATION_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            self.tools.get_tools(),
            self.tools.create_tool_handler(),
            json_mode=True,
            document_id=document_id,
        )
        answer = parse_json_reply(loop.content)
        return resolve_document_type(answer), loop.tool_used

    async def _score(self, resolution: TypeResolution, ocr_text: str, tool_used: bool) -> _Attempt:
        threshold = await self.thresholds.get_threshold(resolution.document_type)
        breakdown = self.confidence.classification_confidence(
            {"confidence": resolution.confidence},
            ocr_text,
            self.schema_store.get_type_keywords(resolution.document_type),
            threshold,
        )
        return _Attempt(resolution=resolution, breakdown=breakdown, threshold=threshold, tool_used=tool_used)

    async def _retry_with_example(self, first: _Attempt, ocr_text: str, document_id: int) -> Optional[_Attempt]:
        learning_result = await self.learning.retrieve_learning_example(LearningContext(
            doc_type=first.resolution.document_type.value,
            confidence=first.breakdown.final_confidence,
            use_tool_calling=True,
        ))
        if not learning_result.example_found or learning_result.example is None:
            return None

        fragment = self.learning.prepare_learning_prompt(learning_result.example)
        try:
            resolution, tool_used = await self._ask(
                build_learning_user_prompt(fragment, ocr_text, self.max_text_chars),
                document_id,
            )
        except (LLMError, UnknownDocumentTypeError) as e:
            logger.warning(f"Learning retry failed for document {document_id}: {e}")
            return None
        return await self._score(resolution, ocr_text, tool_used)

    async def classify(self, ocr_text: str, document_id: int) -> ClassificationResult:
        resolution, tool_used = await self._ask(build_user_prompt(ocr_text, self.max_text_chars), document_id)
        chosen = await self._score(resolution, ocr_text, tool_used)

        if chosen.breakdown.final_confidence < LOW_CONFIDENCE_THRESHOLD and not chosen.tool_used:
            logger.info(f"Low confidence for document {document_id}, attempting learning loop")
            retry = await self._retry_with_example(chosen, ocr_text, document_id)
            if retry is not None and retry.breakdown.final_confidence > chosen.breakdown.final_confidence:
                logger.info(
                    f"Learning loop improved confidence: "
                    f"{chosen.breakdown.final_confidence:.3f} -> {retry.breakdown.final_confidence:.3f}"
                )
                retry.tool_used = True
                chosen = retry
            elif retry is not None:
                logger.info("Learning loop did not improve confidence; keeping first answer")
                chosen.tool_used = chosen.tool_used or retry.tool_used

        breakdown = chosen.breakdown
        result = ClassificationResult(
            predicted_type=chosen.resolution.document_type,
            confidence=breakdown.final_confidence,
            threshold=chosen.threshold,
            requires_review=breakdown.final_confidence < chosen.threshold,
            evidence=chosen.resolution.evidence,
            tool_used=chosen.tool_used,
            llm_confidence=breakdown.llm_confidence,
            validation_confidence=breakdown.validation_confidence,
            clarity_confidence=breakdown.clarity_confidence,
            final_confidence=breakdown.final_confidence,
            reasons=breakdown.reasons,
            remapped=chosen.resolution.remapped,
        )
        logger.info(
            f"Classification result for document {document_id}: {result.predicted_type.value} "
            f"(confidence={result.final_confidence:.3f}, requires_review={result.requires_review}, "
            f"tool_used={result.tool_used})"
        )
        return result

    async def get_threshold(self, document_type: Any) -> float:
        return await self.thresholds.get_threshold(document_type)

    async def set_threshold(self, document_type: Any, value: float) -> float:
        return await self.thresholds.set_threshold(document_type, value)
