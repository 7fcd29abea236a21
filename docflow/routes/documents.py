"""
API routes for the decision pipeline.

Provides endpoints to:
- Classify OCR text into a document type
- Extract (or re-extract) the type's fields
- Validate already-extracted field values
- Read the tool calls the model made, per document or overall, and prune old ones
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import Services, get_services
from ..schemas import (
    ClassifyRequest,
    ClassifyResponse,
    ExtractRequest,
    ExtractResponse,
    OcrPageIn,
    ReExtractRequest,
    ToolUsageCleanupResponse,
    ToolUsageEntry,
    ToolUsageStats,
    ValidateRequest,
    ValidateResponse,
)
from ..services.errors import DocflowError
from ..services.llm.usage import DEFAULT_DAYS_TO_KEEP, DEFAULT_RECENT_LIMIT
from ..services.models import ExtractionResult, OcrPage
from .helpers import http_error, require_document_type

logger = logging.getLogger(__name__)
router = APIRouter(tags=["documents"])


def _pages(pages: Optional[List[OcrPageIn]]) -> Optional[List[OcrPage]]:
    return [p.to_domain() for p in pages] if pages else None


async def _record_extraction(services: Services, result: ExtractionResult) -> None:
    """Store the extraction on the document row when the document is known."""
    if await services.store.get_document(result.document_id) is None:
        return
    await services.store.update_extraction(
        result.document_id,
        result.values(),
        doc_type=result.schema_type.value,
    )


@router.post("/classify", response_model=ClassifyResponse)
async def classify_document(payload: ClassifyRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        result = await services.classification.classify(payload.ocr_text, payload.document_id)
    except DocflowError as exc:
        raise http_error(exc) from exc

    if await services.store.get_document(payload.document_id) is not None:
        await services.store.update_classification(
            payload.document_id,
            result.predicted_type.value,
            result.final_confidence,
        )
    return result.to_dict()


@router.post("/extract", response_model=ExtractResponse)
async def extract_document(payload: ExtractRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    doc_type = require_document_type(payload.document_type)
    try:
        result = await services.extraction.extract(
            payload.ocr_text,
            doc_type,
            payload.document_id,
            _pages(payload.ocr_pages),
        )
    except DocflowError as exc:
        raise http_error(exc) from exc

    await _record_extraction(services, result)
    return result.to_dict()


@router.post("/documents/{document_id}/re-extract", response_model=ExtractResponse)
async def re_extract_document(
    document_id: int,
    payload: ReExtractRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    doc_type = require_document_type(payload.document_type)
    try:
        result = await services.extraction.re_extract(
            document_id,
            doc_type,
            payload.ocr_text,
            _pages(payload.ocr_pages),
        )
    except DocflowError as exc:
        raise http_error(exc) from exc

    await _record_extraction(services, result)
    return result.to_dict()


@router.post("/validate", response_model=ValidateResponse)
async def validate_fields(payload: ValidateRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    doc_type = require_document_type(payload.document_type)
    fields = [{"name": f.name, "value": f.value} for f in payload.fields]
    return await services.extraction.validate(doc_type, fields)


@router.get("/documents/{document_id}/tool-usage", response_model=List[ToolUsageEntry])
async def document_tool_usage(document_id: int, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return await services.usage_logger.get_logs_for_document(document_id)


@router.get("/tool-usage/recent", response_model=List[ToolUsageEntry])
async def recent_tool_usage(
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=500),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.usage_logger.get_recent(limit=limit)


@router.get("/tool-usage/stats", response_model=List[ToolUsageStats])
async def tool_usage_stats(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return await services.usage_logger.get_stats()


@router.delete("/tool-usage", response_model=ToolUsageCleanupResponse)
async def clear_tool_usage(
    days_to_keep: int = Query(DEFAULT_DAYS_TO_KEEP, ge=0),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    deleted = await services.usage_logger.clear_old_logs(days_to_keep=days_to_keep)
    return {"deleted": deleted, "days_to_keep": days_to_keep}
