import asyncio
import json

import pytest

from docflow.services.errors import ThresholdRangeError, UnknownDocumentTypeError
from docflow.services.learning import ExampleQuery, ExampleStore
from docflow.services.llm import ToolUsageLogger
from docflow.services.models import DocumentType, ToolCallRecord
from docflow.services.thresholds import ThresholdStore

OCR_PAGES = [{"page": 1, "text": "First National Bank statement", "words": []}]


def test_documents_and_corrections(review_store):
    async def scenario():
        doc_id = await review_store.insert_document(filename="stmt.pdf", ocr_pages=OCR_PAGES, page_count=1)
        await review_store.update_classification(doc_id, "Bank Statement", 0.93)
        await review_store.update_extraction(doc_id, {"ending_balance": 1234.56})
        await review_store.insert_correction(
            doc_id=doc_id,
            correction_type="field",
            field_name="ending_balance",
            original_value="1234.56",
            corrected_value="1243.56",
        )
        return doc_id, await review_store.get_document(doc_id)

    doc_id, doc = asyncio.run(scenario())
    assert doc["type"] == "Bank Statement"
    assert doc["confidence"] == pytest.approx(0.93)
    assert json.loads(doc["extraction"]) == {"ending_balance": 1234.56}
    assert doc["processing_status"] == "extracted"
    assert doc["corrected"] == 1
    assert asyncio.run(review_store.get_document(doc_id + 100)) is None


def test_gold_examples_round_trip(review_store):
    examples = ExampleStore(review_store)

    async def scenario():
        bank = await review_store.insert_document(
            filename="a.pdf", ocr_pages=OCR_PAGES, doc_type="Bank Statement", extraction={"ending_balance": 10.0}
        )
        w9 = await review_store.insert_document(filename="b.pdf", ocr_pages="Form W-9 taxpayer", doc_type="W-9")
        await review_store.insert_correction(doc_id=bank, correction_type="type", corrected_value="Bank Statement")
        rejected = await review_store.insert_correction(doc_id=w9, correction_type="type", corrected_value="W-9")
        await examples.mark_as_gold(rejected, False)

        return (
            await examples.get_gold_example(ExampleQuery(doc_type="Bank Statement")),
            await examples.get_gold_example(ExampleQuery(doc_type="Bank Statement", keywords=["passport"])),
            await examples.get_gold_examples(ExampleQuery(doc_type="W-9")),
            await examples.get_gold_example_counts(),
        )

    example, filtered, w9_examples, counts = asyncio.run(scenario())
    assert example.doc_type == "Bank Statement"
    assert example.extraction == {"ending_balance": 10.0}
    assert example.ocr_text == OCR_PAGES
    assert example.corrected_value == "Bank Statement"
    assert filtered is None
    assert w9_examples == []
    assert counts == {"Bank Statement": 1}


def test_thresholds_persist_and_validate(review_store):
    thresholds = ThresholdStore(review_store)

    async def scenario():
        before = await thresholds.get_threshold(DocumentType.W9)
        await thresholds.set_threshold("W-9", 0.9)
        await review_store.set_setting("threshold_coi", "not a number")
        return before, await thresholds.list_thresholds(), await review_store.list_settings("threshold_")

    before, listed, raw = asyncio.run(scenario())
    assert before == 0.7
    assert listed["W-9"] == 0.9
    assert listed["Certificate of Insurance"] == 0.7
    assert set(listed) == set(DocumentType.values())
    assert raw["threshold_w9"] == "0.9"

    for bad in (0.49, 1.01, "0.8", True):
        with pytest.raises(ThresholdRangeError):
            asyncio.run(thresholds.set_threshold(DocumentType.W9, bad))
    with pytest.raises(UnknownDocumentTypeError):
        asyncio.run(thresholds.get_threshold("Lease"))


def test_threshold_store_falls_back_when_store_fails():
    class BrokenSettings:
        async def get_setting(self, key):
            raise RuntimeError("disk I/O error")

    assert asyncio.run(ThresholdStore(BrokenSettings(), 0.75).get_threshold(DocumentType.UNKNOWN)) == 0.75


def test_tool_usage_log(review_store):
    usage = ToolUsageLogger(review_store)

    async def scenario():
        for doc_id, success in ((1, True), (1, False), (2, True)):
            await usage.log(ToolCallRecord(
                document_id=doc_id,
                tool_name="get_gold_example",
                tool_args={"doc_type": "W-9"},
                tool_result='{"found": false}',
                success=success,
                duration_ms=12,
            ))
        return (
            await usage.get_logs_for_document(1),
            await usage.get_recent(limit=2),
            await usage.get_stats(),
            await usage.clear_old_logs(days_to_keep=30),
            await review_store.ping(),
        )

    logs, recent, stats, deleted, alive = asyncio.run(scenario())
    assert len(logs) == 2
    assert {entry["success"] for entry in logs} == {True, False}
    assert json.loads(logs[0]["tool_args"]) == {"doc_type": "W-9"}
    assert logs[0]["duration_ms"] == 12
    assert len(recent) == 2
    assert stats == [{
        "tool_name": "get_gold_example",
        "total_calls": 3,
        "success_rate": pytest.approx(2 / 3),
        "average_duration_ms": 12,
    }]
    assert deleted == 0
    assert alive


def test_mark_as_gold_reports_missing_correction(review_store):
    examples = ExampleStore(review_store)
    assert asyncio.run(examples.mark_as_gold(404, True)) is False
