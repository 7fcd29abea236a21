from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import Services, get_services
from ..schemas import GoldExampleOut, GoldFlagRequest, GoldFlagResponse, LearningImpactResponse
from ..services.learning import ExampleQuery
from ..services.learning.examples import DEFAULT_MULTIPLE_EXAMPLES_LIMIT, ocr_excerpt
from .helpers import require_document_type

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    llm_ok = await services.llm.health_check()
    try:
        store_ok = await services.store.ping()
    except Exception as exc:
        logger.warning(f"Store health check failed: {exc}")
        store_ok = False
    return {
        "status": "ok" if llm_ok and store_ok else "degraded",
        "llm": {
            "reachable": llm_ok,
            "base_url": services.settings.llm_base_url,
            "model": services.settings.llm_model,
        },
        "store": {
            "reachable": store_ok,
            "path": str(services.settings.doc_store_path),
        },
    }


@router.get("/learning/impact", response_model=LearningImpactResponse)
async def learning_impact(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.learning.learning_impact()


@router.get("/learning/examples/{document_type}", response_model=List[GoldExampleOut])
async def gold_examples(
    document_type: str,
    limit: int = Query(DEFAULT_MULTIPLE_EXAMPLES_LIMIT, ge=1, le=50),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    doc_type = require_document_type(document_type, status_code=404)
    examples = await services.learning.example_store.get_gold_examples(
        ExampleQuery(doc_type=doc_type.value, limit=limit)
    )
    return [
        {
            "doc_id": ex.doc_id,
            "doc_type": ex.doc_type,
            "ocr_excerpt": ocr_excerpt(ex.ocr_text),
            "extraction": ex.extraction,
            "corrected_value": ex.corrected_value,
            "field_name": ex.field_name,
            "created_at": ex.created_at,
        }
        for ex in examples
    ]


@router.put("/corrections/{correction_id}/gold", response_model=GoldFlagResponse)
async def set_gold_flag(
    correction_id: int,
    req: GoldFlagRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    updated = await services.learning.example_store.mark_as_gold(correction_id, req.is_gold)
    if not updated:
        raise HTTPException(status_code=404, detail=f"Correction {correction_id} not found")
    return {"correction_id": correction_id, "is_gold": req.is_gold}
