"""
Type coercion for raw LLM field values.

The model answers with whatever string it reads off the page ("$1,234.56",
"Yes", "GL, Auto, Umbrella"). Before validation every value is normalized to
the FieldKind its schema declares.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from .schemas import FieldKind, SchemaStore

logger = logging.getLogger(__name__)

MAX_DECIMAL_DIGITS = 2
THOUSANDS_GROUP_DIGITS = 3

CURRENCY_AND_SPACE_RE = re.compile(r"[$€£¥\s]")
LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TRUE_STRINGS = {"true", "yes", "1"}
FALSE_STRINGS = {"false", "no", "0"}
ARRAY_SEPARATORS = (",", ";", "|", "\n")
DATE_FIELD_HINTS = ("date", "time", "timestamp", "deadline", "created", "updated", "start", "end", "due")


def is_date_field(field_name: str) -> bool:
    lower = field_name.lower()
    return any(hint in lower for hint in DATE_FIELD_HINTS)


def _normalize_separators(cleaned: str) -> str:
    has_comma = "," in cleaned
    has_period = "." in cleaned

    if has_comma and has_period:
        if cleaned.rfind(",") > cleaned.rfind("."):
            # 1.234,56
            cleaned = cleaned.replace(".", "")
            head, _, tail = cleaned.rpartition(",")
            return head.replace(",", "") + "." + tail
        return cleaned.replace(",", "")

    if has_comma:
        head, _, tail = cleaned.rpartition(",")
        if len(tail) <= MAX_DECIMAL_DIGITS:
            return head.replace(",", "") + "." + tail
        return cleaned.replace(",", "")

    if cleaned.count(".") > 1:
        parts = cleaned.split(".")
        first, rest, last = parts[0], parts[1:], parts[-1]
        if all(len(p) == THOUSANDS_GROUP_DIGITS for p in rest) and 1 <= len(first) <= THOUSANDS_GROUP_DIGITS:
            return cleaned.replace(".", "")
        if 1 <= len(last) <= THOUSANDS_GROUP_DIGITS:
            head, _, tail = cleaned.rpartition(".")
            return head.replace(".", "") + "." + tail
        return cleaned.replace(".", "")

    return cleaned


def coerce_to_number(value: Any) -> Optional[float]:
    """
    Parse a locale-formatted amount.

    Both separators present: the later one is the decimal point. Only commas:
    decimal when at most two digits follow the last one. Several periods:
    thousands groups when every group after the first has three digits,
    otherwise the last period is the decimal point ("5.3620.787" -> 53620.787).
    A leading "-" or surrounding parentheses make the result negative.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if not isinstance(value, str):
        return None

    cleaned = value.strip()
    if not cleaned:
        return None

    cleaned = CURRENCY_AND_SPACE_RE.sub("", cleaned)

    # Sign markers come off before separators are read.
    negative = False
    if cleaned.startswith("("):
        negative = True
        cleaned = cleaned[1:-1] if cleaned.endswith(")") else cleaned[1:]
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]

    cleaned = _normalize_separators(cleaned)

    match = LEADING_NUMBER_RE.match(cleaned)
    if not match:
        return None
    try:
        parsed = float(match.group(0))
    except ValueError:
        return None
    return -parsed if negative else parsed


def coerce_to_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in TRUE_STRINGS:
            return True
        if lower in FALSE_STRINGS:
            return False
        return None
    if isinstance(value, (int, float)):
        return value != 0
    return None


def coerce_to_array(value: Any) -> Optional[List[Any]]:
    if isinstance(value, list):
        return value
    if not isinstance(value, str):
        return None

    cleaned = value.strip()
    if not cleaned:
        return []

    if cleaned.startswith("["):
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return parsed

    for sep in ARRAY_SEPARATORS:
        if sep in cleaned:
            return [part.strip() for part in cleaned.split(sep) if part.strip()]

    return [cleaned]


def coerce_to_date(value: Any) -> Any:
    """Reformat a parseable date to YYYY-MM-DD; anything else comes back unchanged."""
    if not isinstance(value, str):
        return value

    trimmed = value.strip()
    if ISO_DATE_RE.match(trimmed):
        return trimmed

    # Missing month or day falls back to the first, never to today.
    try:
        parsed = date_parser.parse(trimmed, default=datetime(datetime.now().year, 1, 1))
    except (ValueError, OverflowError):
        return value
    return parsed.strftime("%Y-%m-%d")


class TypeCoercionService:
    def __init__(self, schema_store: SchemaStore) -> None:
        self.schema_store = schema_store

    def coerce_field_value(self, document_type: Any, field_name: str, value: Any) -> Any:
        if value is None:
            return None

        spec = self.schema_store.get_field_spec(document_type, field_name)
        if spec is None:
            return value

        if spec.kind is FieldKind.NUMBER:
            return coerce_to_number(value)
        if spec.kind is FieldKind.BOOLEAN:
            return coerce_to_boolean(value)
        if spec.kind is FieldKind.ARRAY:
            return coerce_to_array(value)
        if is_date_field(field_name):
            return coerce_to_date(value)
        return value

    def coerce_all_fields(self, document_type: Any, extracted: Dict[str, Any]) -> Dict[str, Any]:
        coerced = {
            name: self.coerce_field_value(document_type, name, value)
            for name, value in extracted.items()
        }
        changed = [name for name in extracted if coerced[name] != extracted[name]]
        if changed:
            logger.debug(f"Coerced fields for {document_type}: {', '.join(changed)}")
        return coerced
