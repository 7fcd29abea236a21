from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends

from ..dependencies import Services, get_services
from ..schemas import ThresholdResponse, ThresholdsResponse, ThresholdUpdate
from ..services.errors import DocflowError
from .helpers import http_error, require_document_type

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/thresholds", response_model=ThresholdsResponse)
async def list_thresholds(services: Services = Depends(get_services)) -> Dict[str, Dict[str, float]]:
    return {"thresholds": await services.thresholds.list_thresholds()}


@router.get("/thresholds/{document_type}", response_model=ThresholdResponse)
async def get_threshold(document_type: str, services: Services = Depends(get_services)) -> Dict[str, object]:
    doc_type = require_document_type(document_type, status_code=404)
    threshold = await services.classification.get_threshold(doc_type)
    return {"document_type": doc_type.value, "threshold": threshold}


@router.put("/thresholds/{document_type}", response_model=ThresholdResponse)
async def set_threshold(
    document_type: str,
    payload: ThresholdUpdate,
    services: Services = Depends(get_services),
) -> Dict[str, object]:
    doc_type = require_document_type(document_type, status_code=404)
    try:
        threshold = await services.classification.set_threshold(doc_type, payload.threshold)
    except DocflowError as exc:
        raise http_error(exc) from exc
    return {"document_type": doc_type.value, "threshold": threshold}
