"""
Domain types shared by classification, extraction and the learning loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

BBox = Tuple[float, float, float, float]


class DocumentType(str, Enum):
    BANK_STATEMENT = "Bank Statement"
    GOVERNMENT_ID = "Government ID"
    W9 = "W-9"
    CERTIFICATE_OF_INSURANCE = "Certificate of Insurance"
    ARTICLES_OF_INCORPORATION = "Articles of Incorporation"
    UNKNOWN = "Unknown"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def known(cls) -> List["DocumentType"]:
        """Every type except the ``Unknown`` fallback."""
        return [member for member in cls if member is not cls.UNKNOWN]

    @classmethod
    def parse(cls, value: Any) -> Optional["DocumentType"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class ValidationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class OcrWord:
    text: str
    bbox: BBox
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OcrWord":
        x, y, w, h = data.get("bbox") or (0, 0, 0, 0)
        return cls(
            text=str(data.get("text", "")),
            bbox=(float(x), float(y), float(w), float(h)),
            confidence=float(data.get("confidence", 1.0)),
        )


@dataclass(frozen=True)
class OcrPage:
    page: int
    text: str
    words: Tuple[OcrWord, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OcrPage":
        return cls(
            page=int(data.get("page", 1)),
            text=str(data.get("text", "")),
            words=tuple(OcrWord.from_dict(w) for w in data.get("words") or []),
        )


@dataclass
class ConfidenceBreakdown:
    llm_confidence: float
    validation_confidence: float
    clarity_confidence: float
    final_confidence: float
    reasons: Optional[List[str]] = None


@dataclass
class ClassificationResult:
    predicted_type: DocumentType
    confidence: float
    threshold: float
    requires_review: bool
    evidence: List[str]
    tool_used: bool
    llm_confidence: float
    validation_confidence: float
    clarity_confidence: float
    final_confidence: float
    reasons: Optional[List[str]] = None
    remapped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predicted_type": self.predicted_type.value,
            "confidence": self.confidence,
            "threshold": self.threshold,
            "requires_review": self.requires_review,
            "evidence": list(self.evidence),
            "tool_used": self.tool_used,
            "llm_confidence": self.llm_confidence,
            "validation_confidence": self.validation_confidence,
            "clarity_confidence": self.clarity_confidence,
            "final_confidence": self.final_confidence,
            "reasons": self.reasons,
            "remapped": self.remapped,
        }


@dataclass
class Field:
    name: str
    value: Any
    llm_confidence: float
    validation_confidence: float
    clarity_confidence: float
    final_confidence: float
    validation_status: ValidationStatus
    page_number: Optional[int] = None
    bbox: Optional[BBox] = None
    validation_error: Optional[str] = None
    reasons: Optional[List[str]] = None
    # Set only by the human review flow.
    corrected: Optional[bool] = None
    approved: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "llm_confidence": self.llm_confidence,
            "validation_confidence": self.validation_confidence,
            "clarity_confidence": self.clarity_confidence,
            "final_confidence": self.final_confidence,
            "page_number": self.page_number,
            "bbox": list(self.bbox) if self.bbox is not None else None,
            "validation_status": self.validation_status.value,
            "validation_error": self.validation_error,
            "reasons": self.reasons,
            "corrected": self.corrected,
            "approved": self.approved,
        }


@dataclass
class ExtractionResult:
    document_id: int
    schema_type: DocumentType
    fields: List[Field]
    overall_confidence: float
    extraction_timestamp: str
    reasons: Optional[List[str]] = None
    used_learning_example: bool = False

    def values(self) -> Dict[str, Any]:
        return {f.name: f.value for f in self.fields}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "schema_type": self.schema_type.value,
            "fields": [f.to_dict() for f in self.fields],
            "overall_confidence": self.overall_confidence,
            "extraction_timestamp": self.extraction_timestamp,
            "reasons": self.reasons,
            "used_learning_example": self.used_learning_example,
        }


@dataclass(frozen=True)
class GoldExample:
    """A human-approved correction, read from the correction log on demand."""
    doc_id: int
    doc_type: str
    ocr_text: Any
    extraction: Dict[str, Any]
    corrected_value: str
    field_name: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class ToolCallRecord:
    """One executed tool call, as appended to the per-document usage log."""
    document_id: int
    tool_name: str
    tool_args: Dict[str, Any]
    tool_result: str
    success: bool
    duration_ms: int
