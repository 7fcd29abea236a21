from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException

from ..services.errors import (
    DocflowError,
    LLMConnectionError,
    LLMError,
    LLMTimeoutError,
    SchemaNotFoundError,
    ThresholdRangeError,
    UnknownDocumentTypeError,
)
from ..services.models import DocumentType

logger = logging.getLogger(__name__)


def http_error(exc: DocflowError) -> HTTPException:
    """Translate a pipeline error into the HTTP status the client should see."""
    if isinstance(exc, SchemaNotFoundError):
        status = 404
    elif isinstance(exc, ThresholdRangeError):
        status = 422
    elif isinstance(exc, LLMConnectionError):
        status = 503
    elif isinstance(exc, LLMTimeoutError):
        status = 504
    elif isinstance(exc, (LLMError, UnknownDocumentTypeError)):
        status = 502
    else:
        status = 500
    if status >= 500:
        logger.warning(f"Request failed with {status}: {exc}")
    return HTTPException(status_code=status, detail=str(exc))


def require_document_type(value: str, *, status_code: int = 422) -> DocumentType:
    doc_type: Optional[DocumentType] = DocumentType.parse(value)
    if doc_type is None:
        raise HTTPException(
            status_code=status_code,
            detail=f"Invalid document type: {value}. Must be one of: {', '.join(DocumentType.values())}",
        )
    return doc_type
