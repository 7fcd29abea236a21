import asyncio

import pytest

from conftest import FakeExampleStore, ScriptedLLM, make_extractor
from docflow.services.errors import LLMResponseError, SchemaNotFoundError
from docflow.services.extraction.engine import (
    build_extraction_prompt,
    field_clarity_confidence,
    shape_llm_confidence,
)
from docflow.services.extraction.schemas import W9_SCHEMA
from docflow.services.models import DocumentType, OcrPage, OcrWord, ValidationStatus

BANK_OCR = """First National Bank
Account holder: Jane Doe   Account number ****1234
Statement period from 2024-01-01 to 2024-01-31
Opening balance $1,000.00   Final balance $1,234.56
"""

BANK_ANSWER = {
    "account_holder_name": "Jane Doe",
    "account_number_masked": "****1234",
    "statement_start_date": "January 1, 2024",
    "statement_end_date": "2024-01-31",
    "starting_balance": "$1,000.00",
    "ending_balance": "1,234.56",
}


def _fields(result):
    return {f.name: f for f in result.fields}


def test_shape_llm_confidence():
    assert shape_llm_confidence(None) == 0.0
    assert shape_llm_confidence("") == 0.1
    assert shape_llm_confidence("A") == 0.3
    assert shape_llm_confidence("NY") == 0.6
    assert shape_llm_confidence("Jane Doe") == 0.85
    assert shape_llm_confidence(12.5) == 0.9
    assert shape_llm_confidence(False) == 0.95
    assert shape_llm_confidence([]) == 0.2
    assert shape_llm_confidence(["GL"]) == 0.8
    assert shape_llm_confidence({"a": 1}) == 0.7


def test_field_clarity_buckets():
    keywords = ["opening", "previous balance", "beginning balance", "prior balance"]
    assert field_clarity_confidence("nothing here", keywords) == 0.3
    assert field_clarity_confidence("opening", keywords) == 0.5
    assert field_clarity_confidence("opening, previous balance", keywords) == 0.7
    assert field_clarity_confidence("opening previous balance prior balance", keywords) == 0.95
    assert field_clarity_confidence("anything", []) == 0.5


def test_prompt_lists_schema_fields_and_learning_example():
    system, user = build_extraction_prompt(W9_SCHEMA, "x" * 50, "EXAMPLE BLOCK", max_text_chars=10)
    assert "valid JSON" in system
    assert "Extract the following fields from this W-9 document" in user
    assert "  - tax_classification (one of: Individual, C-Corp, S-Corp, Partnership, LLC)" in user
    assert "EXAMPLE BLOCK\n\nNow extract from this document:" in user
    assert "x" * 10 + "\n" in user
    assert "x" * 11 not in user


def test_extract_bank_statement(schema_store, confidence, thresholds):
    llm = ScriptedLLM(json_replies=[dict(BANK_ANSWER)])
    service = make_extractor(llm, schema_store, confidence, thresholds)
    page = OcrPage(page=1, text=BANK_OCR, words=(
        OcrWord(text="Final", bbox=(10, 300, 40, 12)),
        OcrWord(text="balance", bbox=(55, 300, 60, 12)),
        OcrWord(text="$1,234.56", bbox=(120, 300, 70, 12)),
    ))

    result = asyncio.run(service.extract(BANK_OCR, "Bank Statement", 21, [page]))
    fields = _fields(result)

    assert result.document_id == 21
    assert result.schema_type is DocumentType.BANK_STATEMENT
    assert list(fields) == [
        "account_holder_name",
        "account_number_masked",
        "statement_start_date",
        "statement_end_date",
        "starting_balance",
        "ending_balance",
    ]
    assert fields["statement_start_date"].value == "2024-01-01"
    assert fields["starting_balance"].value == 1000.0
    assert fields["ending_balance"].value == 1234.56
    assert all(f.validation_status is ValidationStatus.PASSED for f in result.fields)
    assert fields["ending_balance"].page_number == 1
    assert fields["ending_balance"].bbox == (10, 300, 180, 12)
    assert fields["account_holder_name"].bbox is None
    assert result.overall_confidence == pytest.approx(
        sum(f.final_confidence for f in result.fields) / len(result.fields)
    )
    assert not result.used_learning_example

    ending = fields["ending_balance"]
    assert ending.final_confidence == pytest.approx(
        ending.llm_confidence * ending.validation_confidence * ending.clarity_confidence
    )


def test_missing_and_invalid_fields_fail_validation(schema_store, confidence, thresholds):
    llm = ScriptedLLM(json_replies=[{
        "entity_legal_name": "Acme Widgets Inc",
        "state": "Delaware",
        "file_number": None,
    }])
    service = make_extractor(llm, schema_store, confidence, thresholds)

    result = asyncio.run(service.extract("Articles of Incorporation of Acme", DocumentType.ARTICLES_OF_INCORPORATION, 2))
    fields = _fields(result)

    assert fields["state"].validation_status is ValidationStatus.FAILED
    assert fields["state"].validation_error == "Invalid"
    assert fields["state"].final_confidence == 0.0
    assert fields["filing_date"].value is None
    assert fields["filing_date"].validation_error == "Required"
    assert result.reasons is not None


def test_gold_example_is_embedded(schema_store, confidence, thresholds, bank_example):
    llm = ScriptedLLM(json_replies=[dict(BANK_ANSWER)])
    service = make_extractor(llm, schema_store, confidence, thresholds, FakeExampleStore(bank_example))

    result = asyncio.run(service.extract(BANK_OCR, DocumentType.BANK_STATEMENT, 3))

    assert result.used_learning_example
    assert "Here is a corrected example of a Bank Statement" in llm.json_calls[0][1]["content"]


def test_unknown_schema_and_bad_json(schema_store, confidence, thresholds):
    service = make_extractor(ScriptedLLM(), schema_store, confidence, thresholds)
    with pytest.raises(SchemaNotFoundError):
        asyncio.run(service.extract("text", "Lease", 1))

    llm = ScriptedLLM(json_replies=[LLMResponseError("Invalid JSON response from LLM")])
    service = make_extractor(llm, schema_store, confidence, thresholds)
    with pytest.raises(LLMResponseError):
        asyncio.run(service.extract("text", DocumentType.W9, 1))


def test_re_extract_uses_new_type(schema_store, confidence, thresholds):
    llm = ScriptedLLM(json_replies=[{"notes": "handwritten memo"}])
    service = make_extractor(llm, schema_store, confidence, thresholds)

    result = asyncio.run(service.re_extract(4, DocumentType.UNKNOWN, "handwritten memo"))

    assert result.schema_type is DocumentType.UNKNOWN
    assert [f.name for f in result.fields] == ["notes"]


def test_validate_accepts_dicts_and_fields(schema_store, confidence, thresholds):
    service = make_extractor(ScriptedLLM(), schema_store, confidence, thresholds)
    outcome = asyncio.run(service.validate(DocumentType.W9, [
        {"name": "ein_or_ssn", "value": "12-3456789"},
        {"name": "tax_classification", "value": "LLC"},
        {"name": "signature_present", "value": "yes"},
    ]))
    assert outcome == {"valid": False, "errors": ["signature_present: Expected boolean, received str"]}
