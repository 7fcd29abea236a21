from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .services.models import OcrPage


class OcrWordIn(BaseModel):
    text: str
    bbox: List[float] = Field(..., min_length=4, max_length=4)
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class OcrPageIn(BaseModel):
    page: int = Field(..., ge=1)
    text: str = ""
    words: List[OcrWordIn] = Field(default_factory=list)

    def to_domain(self) -> OcrPage:
        return OcrPage.from_dict(self.model_dump())


class ClassifyRequest(BaseModel):
    ocr_text: str
    document_id: int


class ClassifyResponse(BaseModel):
    predicted_type: str
    confidence: float
    threshold: float
    requires_review: bool
    evidence: List[str] = Field(default_factory=list)
    tool_used: bool
    llm_confidence: float
    validation_confidence: float
    clarity_confidence: float
    final_confidence: float
    reasons: Optional[List[str]] = Field(default=None)
    remapped: bool = False


class ExtractRequest(BaseModel):
    ocr_text: str
    document_type: str
    document_id: int
    ocr_pages: Optional[List[OcrPageIn]] = Field(default=None)


class ReExtractRequest(BaseModel):
    ocr_text: str
    document_type: str
    ocr_pages: Optional[List[OcrPageIn]] = Field(default=None)


class FieldOut(BaseModel):
    name: str
    value: Any = None
    llm_confidence: float
    validation_confidence: float
    clarity_confidence: float
    final_confidence: float
    page_number: Optional[int] = None
    bbox: Optional[List[float]] = None
    validation_status: str
    validation_error: Optional[str] = None
    reasons: Optional[List[str]] = None
    corrected: Optional[bool] = None
    approved: Optional[bool] = None


class ExtractResponse(BaseModel):
    document_id: int
    schema_type: str
    fields: List[FieldOut]
    overall_confidence: float
    extraction_timestamp: str
    reasons: Optional[List[str]] = Field(default=None)
    used_learning_example: bool = False


class FieldValueIn(BaseModel):
    name: str
    value: Any = None


class ValidateRequest(BaseModel):
    document_type: str
    fields: List[FieldValueIn]


class ValidateResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class ThresholdUpdate(BaseModel):
    threshold: float


class ThresholdResponse(BaseModel):
    document_type: str
    threshold: float


class ThresholdsResponse(BaseModel):
    thresholds: Dict[str, float]


class ToolUsageEntry(BaseModel):
    id: int
    document_id: int
    tool_name: str
    tool_args: str
    tool_result: str
    success: bool
    duration_ms: Optional[int] = None
    timestamp: str


class LearningImpactResponse(BaseModel):
    total_gold_examples: int
    examples_by_type: Dict[str, int] = Field(default_factory=dict)


class ToolUsageStats(BaseModel):
    tool_name: str
    total_calls: int
    success_rate: float
    average_duration_ms: float = 0


class ToolUsageCleanupResponse(BaseModel):
    deleted: int
    days_to_keep: int


class GoldExampleOut(BaseModel):
    doc_id: int
    doc_type: str
    ocr_excerpt: str
    extraction: Dict[str, Any] = Field(default_factory=dict)
    corrected_value: str
    field_name: Optional[str] = None
    created_at: Optional[str] = None


class GoldFlagRequest(BaseModel):
    is_gold: bool


class GoldFlagResponse(BaseModel):
    correction_id: int
    is_gold: bool
