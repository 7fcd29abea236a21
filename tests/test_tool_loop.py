import asyncio
import json

import httpx
import openai
import pytest

from conftest import assistant_message, fake_openai, tool_call
from docflow.services.errors import (
    LLMConnectionError,
    LLMResponseError,
    LLMTimeoutError,
    ToolIterationLimitError,
)
from docflow.services.llm.client import LLMClient, LoopState, extract_json, parse_json_reply

FINAL_ANSWER = '{"document_type": "Bank Statement", "confidence": 0.9, "evidence": []}'


class RecordingUsageLogger:
    def __init__(self, fail=False):
        self.records = []
        self.fail = fail

    async def log(self, record):
        if self.fail:
            raise RuntimeError("database is locked")
        self.records.append(record)
        return len(self.records)


async def not_found_handler(name, args):
    return json.dumps({"found": False, "message": f"No gold examples found for document type: {args['doc_type']}"})


def test_loop_terminates_when_tool_never_finds_anything():
    client = fake_openai([
        assistant_message(tool_calls=[tool_call("c1", "get_gold_example", {"doc_type": "Bank Statement"})]),
        assistant_message(tool_calls=[tool_call("c2", "get_gold_example", {"doc_type": "W-9"})]),
        assistant_message(FINAL_ANSWER),
    ])
    llm = LLMClient(client, "llama3.2:3b")

    result = asyncio.run(llm.chat_with_tools(
        [{"role": "user", "content": "classify"}], [], not_found_handler, json_mode=True
    ))

    assert result.state is LoopState.FINAL
    assert result.content == FINAL_ANSWER
    assert result.tool_used
    assert result.iterations == 3
    assert [r.tool_name for r in result.tool_calls] == ["get_gold_example", "get_gold_example"]
    assert len(client.requests) == 3
    assert client.requests[0]["response_format"] == {"type": "json_object"}


def test_tool_results_are_fed_back_in_order():
    client = fake_openai([
        assistant_message(tool_calls=[
            tool_call("a", "get_gold_example", {"doc_type": "W-9"}),
            tool_call("b", "get_gold_example", {"doc_type": "Government ID"}),
        ]),
        assistant_message(FINAL_ANSWER),
    ])
    llm = LLMClient(client, "llama3.2:3b")
    asyncio.run(llm.chat_with_tools([{"role": "user", "content": "classify"}], [], not_found_handler))

    second = client.requests[1]["messages"]
    assert [m["role"] for m in second] == ["user", "assistant", "tool", "tool"]
    assert [m["tool_call_id"] for m in second[2:]] == ["a", "b"]
    assert "Government ID" in second[3]["content"]
    assert second[1]["tool_calls"][0]["function"]["name"] == "get_gold_example"


def test_answer_without_tools_is_final_immediately():
    client = fake_openai([assistant_message(FINAL_ANSWER)])
    result = asyncio.run(LLMClient(client, "m").chat_with_tools([], [], not_found_handler))
    assert not result.tool_used
    assert result.iterations == 1


def test_iteration_cap_raises():
    calls = [
        assistant_message(tool_calls=[tool_call(f"c{i}", "get_gold_example", {"doc_type": "W-9"})])
        for i in range(3)
    ]
    client = fake_openai(calls)
    llm = LLMClient(client, "m", max_tool_iterations=3)

    with pytest.raises(ToolIterationLimitError):
        asyncio.run(llm.chat_with_tools([], [], not_found_handler))
    assert len(client.requests) == 3


def test_handler_failure_becomes_error_envelope_and_is_logged():
    async def broken(name, args):
        raise RuntimeError("boom")

    client = fake_openai([
        assistant_message(tool_calls=[tool_call("c1", "get_gold_example", {"doc_type": "W-9"})]),
        assistant_message(FINAL_ANSWER),
    ])
    usage = RecordingUsageLogger()
    llm = LLMClient(client, "m", usage_logger=usage)

    result = asyncio.run(llm.chat_with_tools([], [], broken, document_id=12))

    record = result.tool_calls[0]
    assert not record.success
    assert json.loads(record.tool_result) == {"error": "boom"}
    assert usage.records == [record]
    assert record.document_id == 12
    assert record.tool_args == {"doc_type": "W-9"}


def test_bad_tool_arguments_are_reported_to_the_model():
    client = fake_openai([
        assistant_message(tool_calls=[tool_call("c1", "get_gold_example", "{not json")]),
        assistant_message(FINAL_ANSWER),
    ])
    result = asyncio.run(LLMClient(client, "m").chat_with_tools([], [], not_found_handler))
    assert not result.tool_calls[0].success
    assert "error" in json.loads(result.tool_calls[0].tool_result)


def test_usage_logger_failure_does_not_break_the_loop():
    client = fake_openai([
        assistant_message(tool_calls=[tool_call("c1", "get_gold_example", {"doc_type": "W-9"})]),
        assistant_message(FINAL_ANSWER),
    ])
    llm = LLMClient(client, "m", usage_logger=RecordingUsageLogger(fail=True))
    result = asyncio.run(llm.chat_with_tools([], [], not_found_handler, document_id=1))
    assert result.tool_calls[0].success


def test_transport_errors_are_mapped():
    request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
    llm = LLMClient(fake_openai([openai.APITimeoutError(request=request)]), "m")
    with pytest.raises(LLMTimeoutError):
        asyncio.run(llm.chat([]))

    llm = LLMClient(fake_openai([openai.APIConnectionError(request=request)]), "m")
    with pytest.raises(LLMConnectionError):
        asyncio.run(llm.chat([]))


def test_complete_json_rejects_non_json():
    llm = LLMClient(fake_openai([assistant_message("I think it is a bank statement")]), "m")
    with pytest.raises(LLMResponseError):
        asyncio.run(llm.complete_json([]))


def test_extract_json_variants():
    assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json('Sure! {"a": 2} hope that helps') == {"a": 2}
    assert extract_json("[1, 2]") is None
    assert parse_json_reply('{"b": true}') == {"b": True}


def test_health_check_and_models():
    llm = LLMClient(fake_openai([]), "m")
    assert asyncio.run(llm.health_check())
    assert asyncio.run(llm.list_models()) == ["llama3.2:3b"]
