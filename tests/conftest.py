from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from docflow.persistence import ReviewStore
from docflow.services.classification import ClassificationService, ConfidenceCalculator
from docflow.services.extraction import (
    ExtractionService,
    SchemaStore,
    TypeCoercionService,
    ValidationService,
)
from docflow.services.learning import LearningService
from docflow.services.llm import ToolRegistry
from docflow.services.llm.client import ToolLoopResult
from docflow.services.models import GoldExample
from docflow.services.thresholds import ThresholdStore


class MemorySettings:
    """Settings table kept in a dict."""

    def __init__(self, values: Optional[Dict[str, str]] = None) -> None:
        self.values = dict(values or {})

    async def get_setting(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.values[key] = value


class FakeExampleStore:
    def __init__(self, example: Optional[GoldExample] = None, counts: Optional[Dict[str, int]] = None) -> None:
        self.example = example
        self.counts = counts if counts is not None else ({example.doc_type: 1} if example else {})
        self.queries: List[Any] = []

    async def get_gold_example(self, query: Any) -> Optional[GoldExample]:
        self.queries.append(query)
        if self.example is None or self.example.doc_type != query.doc_type:
            return None
        return self.example

    async def get_gold_examples(self, query: Any) -> List[GoldExample]:
        example = await self.get_gold_example(query)
        return [example] if example else []

    async def get_gold_example_counts(self) -> Dict[str, int]:
        return dict(self.counts)


class ScriptedLLM:
    """Replays canned answers for chat_with_tools and complete_json."""

    def __init__(self, tool_replies: Optional[List[Any]] = None, json_replies: Optional[List[Any]] = None) -> None:
        self.tool_replies = list(tool_replies or [])
        self.json_replies = list(json_replies or [])
        self.tool_calls: List[Dict[str, Any]] = []
        self.json_calls: List[List[Dict[str, Any]]] = []

    async def chat_with_tools(self, messages, tools, tool_handler, *, json_mode=False, document_id=None, max_iterations=None):
        self.tool_calls.append({"messages": messages, "tools": tools, "document_id": document_id})
        reply = self.tool_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ToolLoopResult):
            return reply
        return ToolLoopResult(content=json.dumps(reply), tool_used=False, iterations=1)

    async def complete_json(self, messages):
        self.json_calls.append(messages)
        reply = self.json_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def health_check(self) -> bool:
        return True


def tool_loop_answer(answer: Dict[str, Any], tool_used: bool = False) -> ToolLoopResult:
    return ToolLoopResult(content=json.dumps(answer), tool_used=tool_used, iterations=2 if tool_used else 1)


def fake_openai(replies: List[Any]) -> SimpleNamespace:
    """An AsyncOpenAI stand-in whose completions.create pops scripted messages."""
    requests: List[Dict[str, Any]] = []

    async def create(**kwargs):
        requests.append(kwargs)
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=reply)])

    async def list_models():
        return SimpleNamespace(data=[SimpleNamespace(id="llama3.2:3b")])

    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
        models=SimpleNamespace(list=list_models),
        requests=requests,
    )


def assistant_message(content: str = "", tool_calls: Optional[List[Any]] = None) -> SimpleNamespace:
    return SimpleNamespace(content=content, tool_calls=tool_calls)


def tool_call(call_id: str, name: str, arguments: Any) -> SimpleNamespace:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


@pytest.fixture
def bank_example() -> GoldExample:
    return GoldExample(
        doc_id=7,
        doc_type="Bank Statement",
        ocr_text=json.dumps([{"page": 1, "text": "First Bank statement\nEnding balance 1,234.56"}]),
        extraction={"account_holder_name": "Jane Doe", "ending_balance": 1234.56},
        corrected_value="Bank Statement",
    )


@pytest.fixture
def schema_store() -> SchemaStore:
    return SchemaStore()


@pytest.fixture
def confidence() -> ConfidenceCalculator:
    return ConfidenceCalculator()


@pytest.fixture
def settings_table() -> MemorySettings:
    return MemorySettings()


@pytest.fixture
def thresholds(settings_table) -> ThresholdStore:
    return ThresholdStore(settings_table)


def make_classifier(llm, schema_store, confidence, thresholds, example_store=None) -> ClassificationService:
    example_store = example_store or FakeExampleStore()
    return ClassificationService(
        llm=llm,
        tools=ToolRegistry(example_store),
        confidence=confidence,
        learning=LearningService(example_store),
        schema_store=schema_store,
        thresholds=thresholds,
    )


def make_extractor(llm, schema_store, confidence, thresholds, example_store=None) -> ExtractionService:
    example_store = example_store or FakeExampleStore()
    return ExtractionService(
        llm=llm,
        schema_store=schema_store,
        coercion=TypeCoercionService(schema_store),
        validation=ValidationService(schema_store),
        confidence=confidence,
        learning=LearningService(example_store),
        thresholds=thresholds,
    )


@pytest.fixture
def review_store(tmp_path) -> ReviewStore:
    return ReviewStore(tmp_path / "docflow.db")
