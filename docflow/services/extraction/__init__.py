"""
Schema-driven field extraction.

This module provides:
- ExtractionSchema registry describing the fields of each document type
- Type coercion of raw LLM values to the declared field kinds
- Validation with per-field validation confidence
- OCR word-box location search for extracted values
- ExtractionService, the per-document extraction orchestrator
"""

from .schemas import EXTRACTION_SCHEMAS, ExtractionSchema, FieldKind, FieldSpec, SchemaStore
from .coercion import TypeCoercionService
from .validation import ValidationService
from .locator import find_field_location
from .engine import ExtractionService

__all__ = [
    "EXTRACTION_SCHEMAS",
    "ExtractionSchema",
    "FieldKind",
    "FieldSpec",
    "SchemaStore",
    "TypeCoercionService",
    "ValidationService",
    "find_field_location",
    "ExtractionService",
]
