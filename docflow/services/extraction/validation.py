"""
Schema validation and validation-confidence heuristics for extracted fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from ..models import ValidationStatus
from .schemas import FieldKind, FieldSpec, SchemaStore

VALIDATION_CONFIDENCE_ZERO = 0.0
VALIDATION_CONFIDENCE_MODERATE = 0.5
VALIDATION_CONFIDENCE_GOOD = 0.7
VALIDATION_CONFIDENCE_STRING = 0.8
VALIDATION_CONFIDENCE_NUMBER = 0.9
VALIDATION_CONFIDENCE_PERFECT = 1.0

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
US_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
SSN_RE = re.compile(r"^\d{3}-\d{2}-\d{4}$")
EIN_RE = re.compile(r"^\d{2}-\d{7}$")
NINE_DIGITS_RE = re.compile(r"^\d{9}$")
MASKED_ACCOUNT_RE = re.compile(r"^\*{4,}\d{4}$")
PLAIN_ACCOUNT_RE = re.compile(r"^\d{8,17}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\d{10,11}$")

ABA_WEIGHTS = (3, 7, 1)


@dataclass
class ValidationResult:
    passed: bool
    confidence: float
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class DocumentValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    field_results: Dict[str, ValidationResult] = field(default_factory=dict)


def is_valid_routing_number(value: Any) -> bool:
    """ABA routing number check: weights 3, 7, 1 over nine digits, sum divisible by 10."""
    if not isinstance(value, str):
        return False
    cleaned = re.sub(r"[\s-]", "", value)
    if not NINE_DIGITS_RE.match(cleaned):
        return False
    checksum = sum(int(d) * ABA_WEIGHTS[i % 3] for i, d in enumerate(cleaned))
    return checksum % 10 == 0


def is_valid_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        if ISO_DATE_RE.match(value):
            datetime.strptime(value, "%Y-%m-%d")
        elif US_DATE_RE.match(value):
            datetime.strptime(value, "%m/%d/%Y")
        else:
            date_parser.parse(value)
    except (ValueError, OverflowError):
        return False
    return True


def is_valid_tax_id(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(SSN_RE.match(value) or EIN_RE.match(value) or NINE_DIGITS_RE.match(value))


def is_valid_account_number(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    cleaned = re.sub(r"[\s-]", "", value)
    return bool(MASKED_ACCOUNT_RE.match(cleaned) or PLAIN_ACCOUNT_RE.match(cleaned))


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_RE.match(value) is not None


def is_valid_phone(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return PHONE_RE.match(re.sub(r"[\s().-]", "", value)) is not None


def _check_kind(spec: FieldSpec, value: Any) -> Optional[str]:
    if spec.kind is FieldKind.STRING and not isinstance(value, str):
        return f"Expected string, received {type(value).__name__}"
    if spec.kind is FieldKind.NUMBER and (isinstance(value, bool) or not isinstance(value, (int, float))):
        return f"Expected number, received {type(value).__name__}"
    if spec.kind is FieldKind.BOOLEAN and not isinstance(value, bool):
        return f"Expected boolean, received {type(value).__name__}"
    if spec.kind is FieldKind.ARRAY:
        if not isinstance(value, list):
            return f"Expected array, received {type(value).__name__}"
        if not all(isinstance(item, str) for item in value):
            return "Expected array of strings"
    return None


def _schema_error(spec: FieldSpec, value: Any) -> Optional[str]:
    if value is None:
        return None if not spec.required else "Required"
    kind_error = _check_kind(spec, value)
    if kind_error:
        return kind_error
    if isinstance(value, str):
        if spec.choices and value not in spec.choices:
            return f"Invalid enum value. Expected {' | '.join(spec.choices)}, received '{value}'"
        if not spec.matches_pattern(value):
            return "Invalid"
    return None


class ValidationService:
    def __init__(self, schema_store: SchemaStore) -> None:
        self.schema_store = schema_store

    def validate_field(self, document_type: Any, field_name: str, value: Any) -> ValidationResult:
        schema = self.schema_store.get_schema(document_type)
        if schema is None:
            return ValidationResult(
                passed=False,
                confidence=VALIDATION_CONFIDENCE_ZERO,
                error=f"Unknown document type: {document_type}",
            )

        spec = schema.get_field(field_name)
        if spec is None:
            return ValidationResult(
                passed=False,
                confidence=VALIDATION_CONFIDENCE_ZERO,
                error=f"Unknown field: {field_name}",
            )

        error = _schema_error(spec, value)
        if error:
            return ValidationResult(passed=False, confidence=VALIDATION_CONFIDENCE_ZERO, error=error)

        return ValidationResult(
            passed=True,
            confidence=self.calculate_validation_confidence(field_name, value),
            skipped=value is None,
        )

    def validate_document(self, document_type: Any, values: Dict[str, Any]) -> DocumentValidation:
        if self.schema_store.get_schema(document_type) is None:
            return DocumentValidation(valid=False, errors=[f"Unknown document type: {document_type}"])

        errors: List[str] = []
        field_results: Dict[str, ValidationResult] = {}
        for name, value in values.items():
            result = self.validate_field(document_type, name, value)
            field_results[name] = result
            if not result.passed:
                errors.append(f"{name}: {result.error}")

        return DocumentValidation(valid=not errors, errors=errors, field_results=field_results)

    def calculate_validation_confidence(self, field_name: str, value: Any) -> float:
        if value is None or value == "":
            return VALIDATION_CONFIDENCE_ZERO

        if "date" in field_name:
            return VALIDATION_CONFIDENCE_PERFECT if is_valid_date(value) else VALIDATION_CONFIDENCE_MODERATE
        if "ssn" in field_name or "ein" in field_name:
            return VALIDATION_CONFIDENCE_PERFECT if is_valid_tax_id(value) else VALIDATION_CONFIDENCE_MODERATE
        if "account_number" in field_name:
            return VALIDATION_CONFIDENCE_PERFECT if is_valid_account_number(value) else VALIDATION_CONFIDENCE_GOOD
        if "routing_number" in field_name:
            return VALIDATION_CONFIDENCE_PERFECT if is_valid_routing_number(value) else VALIDATION_CONFIDENCE_MODERATE
        if "email" in field_name:
            return VALIDATION_CONFIDENCE_PERFECT if is_valid_email(value) else VALIDATION_CONFIDENCE_MODERATE
        if "phone" in field_name:
            return VALIDATION_CONFIDENCE_PERFECT if is_valid_phone(value) else VALIDATION_CONFIDENCE_MODERATE

        if isinstance(value, str):
            return VALIDATION_CONFIDENCE_STRING
        if isinstance(value, (bool, int, float)):
            return VALIDATION_CONFIDENCE_NUMBER
        return VALIDATION_CONFIDENCE_MODERATE

    @staticmethod
    def get_validation_status(result: ValidationResult) -> ValidationStatus:
        if not result.passed:
            return ValidationStatus.FAILED
        if result.skipped:
            return ValidationStatus.SKIPPED
        return ValidationStatus.PASSED
