import asyncio
import json

import pytest

from conftest import FakeExampleStore
from docflow.services.errors import ToolNotFoundError
from docflow.services.llm.tools import GOLD_EXAMPLE_TOOL, ToolDefinition, ToolRegistry, sanitize_keywords


class ExplodingExampleStore:
    async def get_gold_example(self, query):
        raise RuntimeError("no such table: corrections")


def test_gold_example_tool_is_registered(bank_example):
    registry = ToolRegistry(FakeExampleStore(bank_example))
    tools = registry.get_tools()

    assert registry.has_tool(GOLD_EXAMPLE_TOOL)
    assert len(tools) == 1
    params = tools[0]["function"]["parameters"]
    assert params["required"] == ["doc_type"]
    assert "Unknown" not in params["properties"]["doc_type"]["enum"]
    assert len(params["properties"]["doc_type"]["enum"]) == 5


def test_registry_without_store_offers_nothing():
    assert ToolRegistry().get_tools() == []


def test_found_envelope(bank_example):
    registry = ToolRegistry(FakeExampleStore(bank_example))
    payload = json.loads(asyncio.run(registry.execute_tool(GOLD_EXAMPLE_TOOL, {"doc_type": "Bank Statement"})))

    assert payload["found"] is True
    assert payload["document_type"] == "Bank Statement"
    assert payload["ocr_text_excerpt"].startswith("First Bank statement")
    assert payload["corrected_extraction"]["account_holder_name"] == "Jane Doe"
    assert payload["corrected_field"] is None


def test_not_found_and_error_envelopes(bank_example):
    registry = ToolRegistry(FakeExampleStore(bank_example))
    payload = json.loads(asyncio.run(registry.execute_tool(GOLD_EXAMPLE_TOOL, {"doc_type": "W-9"})))
    assert payload == {"found": False, "message": "No gold examples found for document type: W-9"}

    registry = ToolRegistry(ExplodingExampleStore())
    payload = json.loads(asyncio.run(registry.execute_tool(GOLD_EXAMPLE_TOOL, {"doc_type": "W-9"})))
    assert payload == {"found": False, "error": "Failed to retrieve example"}


def test_keywords_are_forwarded(bank_example):
    store = FakeExampleStore(bank_example)
    registry = ToolRegistry(store)
    handler = registry.create_tool_handler()
    asyncio.run(handler(GOLD_EXAMPLE_TOOL, {"doc_type": "Bank Statement", "keywords": '["bank", "balance"]'}))
    assert list(store.queries[0].keywords) == ["bank", "balance"]


def test_unknown_tool_raises():
    with pytest.raises(ToolNotFoundError):
        asyncio.run(ToolRegistry().execute_tool("delete_everything", {}))


def test_custom_tool_registration():
    async def echo(args):
        return json.dumps(args)

    registry = ToolRegistry()
    registry.register(ToolDefinition(tool={"type": "function", "function": {"name": "echo"}}, handler=echo))
    assert asyncio.run(registry.execute_tool("echo", {"x": 1})) == '{"x": 1}'


def test_sanitize_keywords():
    assert sanitize_keywords(["a", 2]) == ["a", "2"]
    assert sanitize_keywords('["a"]') == ["a"]
    assert sanitize_keywords("bank statement") == []
    assert sanitize_keywords(None) == []
