"""
Extraction schema registry.

Defines the "shape" of the record extracted from each document type.
Each schema serves three purposes:
1. Prompt Generation: telling the LLM which keys to return
2. Coercion/Validation: the declared FieldKind and constraints per field
3. Clarity Scoring: keyword hints per field and per document type
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..models import DocumentType

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
LETTERS_PATTERN = r"^[A-Za-z\s]{2,}$"


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


@dataclass(frozen=True)
class FieldSpec:
    """Specification for a single extraction field."""
    name: str
    kind: FieldKind = FieldKind.STRING
    description: str = ""
    required: bool = True
    pattern: Optional[str] = None
    choices: Optional[Tuple[str, ...]] = None
    keywords: Tuple[str, ...] = ()

    def matches_pattern(self, value: str) -> bool:
        if self.pattern is None:
            return True
        return re.fullmatch(self.pattern, value) is not None


@dataclass(frozen=True)
class ExtractionSchema:
    """
    Schema definition for one document type.

    Attributes:
        document_type: The type this schema extracts
        description: Short description used in the extraction prompt
        fields: Ordered field specifications
        type_keywords: Identifying words used to score classification clarity
    """
    document_type: DocumentType
    description: str
    fields: Tuple[FieldSpec, ...]
    type_keywords: Tuple[str, ...] = field(default=())

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def get_field_descriptions(self) -> str:
        """Generate field descriptions for the LLM prompt."""
        lines = []
        for f in self.fields:
            hint = f" ({f.kind.value})"
            if f.choices:
                hint = f" (one of: {', '.join(f.choices)})"
            desc = f": {f.description}" if f.description else ""
            lines.append(f"  - {f.name}{hint}{desc}")
        return "\n".join(lines)


# =============================================================================
# SCHEMA REGISTRY
# =============================================================================

BANK_STATEMENT_SCHEMA = ExtractionSchema(
    document_type=DocumentType.BANK_STATEMENT,
    description="Periodic statement of a bank account",
    type_keywords=("account", "balance", "statement", "bank", "transaction"),
    fields=(
        FieldSpec(
            name="account_holder_name",
            description="Name of the account holder",
            pattern=LETTERS_PATTERN,
            keywords=("account holder", "name", "customer", "account name"),
        ),
        FieldSpec(
            name="account_number_masked",
            description="Account number masked to the last four digits, e.g. ****1234",
            pattern=r"^\*{4,}\d{4}$",
            keywords=("account number", "account #", "acct", "account no"),
        ),
        FieldSpec(
            name="statement_start_date",
            description="First day of the statement period (YYYY-MM-DD)",
            pattern=ISO_DATE_PATTERN,
            keywords=("period", "from", "beginning", "start date", "statement period"),
        ),
        FieldSpec(
            name="statement_end_date",
            description="Last day of the statement period (YYYY-MM-DD)",
            pattern=ISO_DATE_PATTERN,
            keywords=("period", "to", "ending", "end date", "through"),
        ),
        FieldSpec(
            name="starting_balance",
            kind=FieldKind.NUMBER,
            description="Opening balance (numeric value only)",
            keywords=("opening", "previous balance", "beginning balance", "prior balance"),
        ),
        FieldSpec(
            name="ending_balance",
            kind=FieldKind.NUMBER,
            description="Closing balance (numeric value only)",
            keywords=("closing", "current balance", "ending balance", "total", "final balance"),
        ),
    ),
)

GOVERNMENT_ID_SCHEMA = ExtractionSchema(
    document_type=DocumentType.GOVERNMENT_ID,
    description="Driver license, passport or state identification card",
    type_keywords=("license", "identification", "id", "expires", "date of birth", "dob"),
    fields=(
        FieldSpec(
            name="full_name",
            pattern=LETTERS_PATTERN,
            keywords=("name", "full name", "given name", "legal name"),
        ),
        FieldSpec(
            name="date_of_birth",
            description="YYYY-MM-DD",
            pattern=ISO_DATE_PATTERN,
            keywords=("date of birth", "dob", "birth date", "born", "birthdate"),
        ),
        FieldSpec(
            name="id_number",
            keywords=("number", "id number", "license number", "passport number", "document number"),
        ),
        FieldSpec(
            name="address",
            keywords=("address", "residence", "street", "home address", "residential"),
        ),
        FieldSpec(
            name="expiration_date",
            description="YYYY-MM-DD",
            pattern=ISO_DATE_PATTERN,
            keywords=("expiration", "expires", "exp", "valid until", "expiry date"),
        ),
    ),
)

W9_SCHEMA = ExtractionSchema(
    document_type=DocumentType.W9,
    description="IRS Form W-9, Request for Taxpayer Identification Number",
    type_keywords=("w-9", "tax", "ein", "ssn", "irs", "taxpayer"),
    fields=(
        FieldSpec(
            name="legal_name",
            keywords=("name", "taxpayer name", "business name", "legal name"),
        ),
        FieldSpec(
            name="ein_or_ssn",
            description="EIN as NN-NNNNNNN or SSN as NNN-NN-NNNN",
            pattern=r"^\d{2}-\d{7}$|^\d{3}-\d{2}-\d{4}$",
            keywords=("ssn", "ein", "taxpayer identification", "tin", "tax id", "social security"),
        ),
        FieldSpec(
            name="business_address",
            keywords=("address", "street", "business address", "mailing address"),
        ),
        FieldSpec(
            name="tax_classification",
            choices=("Individual", "C-Corp", "S-Corp", "Partnership", "LLC"),
            keywords=("classification", "entity type", "individual", "corporation", "llc", "partnership"),
        ),
        FieldSpec(
            name="signature_present",
            kind=FieldKind.BOOLEAN,
            keywords=("signature", "signed", "sign here", "taxpayer signature"),
        ),
    ),
)

CERTIFICATE_OF_INSURANCE_SCHEMA = ExtractionSchema(
    document_type=DocumentType.CERTIFICATE_OF_INSURANCE,
    description="Certificate of liability insurance",
    type_keywords=("insurance", "policy", "certificate", "coverage", "insured"),
    fields=(
        FieldSpec(
            name="insured_name",
            keywords=("insured", "name of insured", "policyholder", "named insured"),
        ),
        FieldSpec(
            name="policy_number",
            keywords=("policy", "policy number", "certificate number", "policy #"),
        ),
        FieldSpec(
            name="policy_effective_date",
            description="YYYY-MM-DD",
            pattern=ISO_DATE_PATTERN,
            keywords=("effective", "effective date", "from", "start date", "eff"),
        ),
        FieldSpec(
            name="policy_expiration_date",
            description="YYYY-MM-DD",
            pattern=ISO_DATE_PATTERN,
            keywords=("expiration", "expires", "expiry", "to", "end date", "exp"),
        ),
        FieldSpec(
            name="coverage_types",
            kind=FieldKind.ARRAY,
            description="List of coverage lines",
            keywords=("coverage", "type", "liability", "insurance type", "coverages"),
        ),
    ),
)

ARTICLES_OF_INCORPORATION_SCHEMA = ExtractionSchema(
    document_type=DocumentType.ARTICLES_OF_INCORPORATION,
    description="Articles of incorporation filed with a state",
    type_keywords=("articles", "incorporation", "state", "corporation", "entity", "filed"),
    fields=(
        FieldSpec(
            name="entity_legal_name",
            keywords=("corporation", "company name", "name", "entity name", "legal name"),
        ),
        FieldSpec(
            name="state",
            description="Two-letter state code",
            pattern=r"^[A-Z]{2}$",
            keywords=("state", "jurisdiction", "incorporated in", "state of incorporation"),
        ),
        FieldSpec(
            name="file_number",
            keywords=("filing", "document number", "file number", "certificate number", "file #"),
        ),
        FieldSpec(
            name="filing_date",
            description="YYYY-MM-DD",
            pattern=ISO_DATE_PATTERN,
            keywords=("date", "filed", "filing date", "effective date", "date filed"),
        ),
    ),
)

UNKNOWN_SCHEMA = ExtractionSchema(
    document_type=DocumentType.UNKNOWN,
    description="Document that matches none of the known types",
    fields=(
        FieldSpec(
            name="notes",
            required=False,
            keywords=("notes", "comments", "remarks", "description"),
        ),
    ),
)


EXTRACTION_SCHEMAS: Dict[DocumentType, ExtractionSchema] = {
    schema.document_type: schema
    for schema in (
        BANK_STATEMENT_SCHEMA,
        GOVERNMENT_ID_SCHEMA,
        W9_SCHEMA,
        CERTIFICATE_OF_INSURANCE_SCHEMA,
        ARTICLES_OF_INCORPORATION_SCHEMA,
        UNKNOWN_SCHEMA,
    )
}


class SchemaStore:
    """Read-only lookup over the schema registry."""

    def __init__(self, schemas: Optional[Dict[DocumentType, ExtractionSchema]] = None) -> None:
        self._schemas = dict(schemas if schemas is not None else EXTRACTION_SCHEMAS)

    def get_schema(self, document_type: Any) -> Optional[ExtractionSchema]:
        doc_type = DocumentType.parse(document_type)
        if doc_type is None:
            return None
        return self._schemas.get(doc_type)

    def get_field_spec(self, document_type: Any, field_name: str) -> Optional[FieldSpec]:
        schema = self.get_schema(document_type)
        return schema.get_field(field_name) if schema else None

    def get_field_names(self, document_type: Any) -> List[str]:
        schema = self.get_schema(document_type)
        return schema.field_names() if schema else []

    def get_field_keywords(self, document_type: Any) -> Optional[Dict[str, List[str]]]:
        schema = self.get_schema(document_type)
        if not schema:
            return None
        return {f.name: list(f.keywords) for f in schema.fields}

    def get_type_keywords(self, document_type: Any) -> List[str]:
        schema = self.get_schema(document_type)
        return list(schema.type_keywords) if schema else []

    def has_field(self, document_type: Any, field_name: str) -> bool:
        return field_name in self.get_field_names(document_type)

    def get_supported_types(self) -> List[DocumentType]:
        return list(self._schemas.keys())

    def list_schemas(self) -> List[Dict[str, Any]]:
        """List all schemas in a JSON-friendly form."""
        return [
            {
                "document_type": s.document_type.value,
                "description": s.description,
                "field_count": len(s.fields),
                "fields": [
                    {
                        "name": f.name,
                        "kind": f.kind.value,
                        "required": f.required,
                        "choices": list(f.choices) if f.choices else None,
                    }
                    for f in s.fields
                ],
            }
            for s in self._schemas.values()
        ]
