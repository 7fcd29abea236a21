"""
OpenAI-compatible chat client (Ollama's /v1 endpoint by default).

Implements:
- chat: one completion, optionally in JSON mode and with tools offered
- chat_with_tools: the bounded tool-calling loop
- health_check / list_models: endpoint probes

Transport failures are mapped onto the LLMError hierarchy so callers can tell
a stopped server from a slow model or a missing one.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from ..errors import (
    LLMConnectionError,
    LLMError,
    LLMModelNotFoundError,
    LLMResponseError,
    LLMTimeoutError,
    ToolIterationLimitError,
)
from ..models import ToolCallRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 3
DEFAULT_TEMPERATURE = 0.1
CONNECT_TIMEOUT_SEC = 10.0
LARGE_PROMPT_THRESHOLD = 10000

ToolHandler = Callable[[str, Dict[str, Any]], Awaitable[str]]


class LoopState(str, Enum):
    REQUESTING = "requesting"
    TOOL_EXEC = "tool_exec"
    FINAL = "final"
    ITERATION_EXCEEDED = "iteration_exceeded"


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Any


@dataclass
class ChatReply:
    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)


@dataclass
class ToolLoopResult:
    """Outcome of chat_with_tools."""
    content: str
    tool_used: bool
    iterations: int
    state: LoopState = LoopState.FINAL
    tool_calls: List[ToolCallRecord] = field(default_factory=list)


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Extract a JSON object from LLM response text."""
    if not text:
        return None

    # Try to find JSON in code blocks
    json_match = re.search(r"```(?:json)?\s*\n?(.*?)```", text, re.DOTALL | re.IGNORECASE)
    if json_match:
        try:
            parsed = json.loads(json_match.group(1).strip())
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    try:
        parsed = json.loads(text.strip())
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    brace_match = re.search(r"\{.*\}", text, re.DOTALL)
    if brace_match:
        try:
            parsed = json.loads(brace_match.group(0))
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    return None


def parse_json_reply(content: str) -> Dict[str, Any]:
    data = extract_json(content)
    if data is None:
        logger.error(f"Failed to parse LLM response: {content[:500]!r}")
        raise LLMResponseError("Invalid JSON response from LLM", raw_response=content)
    return data


def _parse_tool_arguments(arguments: Any) -> Dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    if arguments is None or arguments == "":
        return {}
    parsed = json.loads(arguments)
    if not isinstance(parsed, dict):
        raise ValueError(f"Tool arguments must be an object, got {type(parsed).__name__}")
    return parsed


def _to_reply(message: Any) -> ChatReply:
    calls = []
    for raw_call in getattr(message, "tool_calls", None) or []:
        function = raw_call.function
        calls.append(ToolCall(id=raw_call.id, name=function.name, arguments=function.arguments))
    return ChatReply(content=getattr(message, "content", None) or "", tool_calls=calls)


def _assistant_turn(reply: ChatReply) -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": reply.content,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.name,
                    "arguments": call.arguments if isinstance(call.arguments, str) else json.dumps(call.arguments),
                },
            }
            for call in reply.tool_calls
        ],
    }


class LLMClient:
    def __init__(
        self,
        client: Any,
        model: str,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        top_p: Optional[float] = None,
        max_tool_iterations: int = DEFAULT_MAX_ITERATIONS,
        usage_logger: Any = None,
        base_url: str = "",
    ) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_tool_iterations = max_tool_iterations
        self.usage_logger = usage_logger
        self.base_url = base_url

    @classmethod
    def from_settings(cls, settings: Any, usage_logger: Any = None) -> "LLMClient":
        timeout = httpx.Timeout(settings.llm_request_timeout, connect=CONNECT_TIMEOUT_SEC)
        client = AsyncOpenAI(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            timeout=timeout,
            max_retries=0,
        )
        return cls(
            client,
            settings.llm_model,
            temperature=settings.llm_temperature,
            top_p=settings.llm_top_p,
            max_tool_iterations=settings.llm_max_tool_iterations,
            usage_logger=usage_logger,
            base_url=settings.llm_base_url,
        )

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        json_mode: bool = False,
        temperature: Optional[float] = None,
    ) -> ChatReply:
        prompt_size = sum(len(str(m.get("content") or "")) for m in messages)
        if prompt_size > LARGE_PROMPT_THRESHOLD:
            logger.warning(f"Large prompt size ({prompt_size} chars); inference may be slow")

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if self.top_p is not None:
            kwargs["top_p"] = self.top_p
        if tools:
            kwargs["tools"] = tools
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as exc:
            raise LLMTimeoutError(
                f"LLM request to {self.base_url or 'endpoint'} timed out. The model may be overloaded or stuck."
            ) from exc
        except openai.APIConnectionError as exc:
            raise LLMConnectionError(
                f"Cannot connect to LLM at {self.base_url or 'endpoint'}. Ensure the server is running."
            ) from exc
        except openai.NotFoundError as exc:
            raise LLMModelNotFoundError(
                f"Model '{self.model}' not found. Run: ollama pull {self.model}"
            ) from exc
        except openai.APIStatusError as exc:
            raise LLMError(f"LLM API error: {exc.status_code} {exc.message}") from exc

        if not response.choices:
            raise LLMResponseError("LLM returned no choices")
        return _to_reply(response.choices[0].message)

    async def complete_json(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """JSON-mode completion without tools; raises LLMResponseError on unparseable output."""
        reply = await self.chat(messages, json_mode=True)
        return parse_json_reply(reply.content)

    async def chat_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_handler: ToolHandler,
        *,
        json_mode: bool = False,
        document_id: Optional[int] = None,
        max_iterations: Optional[int] = None,
    ) -> ToolLoopResult:
        """
        Let the model call tools until it answers without one.

        REQUESTING -> TOOL_EXEC -> REQUESTING ... -> FINAL | ITERATION_EXCEEDED.
        Each iteration is one model request. Tool failures are reported back
        to the model as ``{"error": ...}`` and never raised.

        Raises:
            ToolIterationLimitError: the model still wanted tools after the last iteration
        """
        limit = max_iterations if max_iterations is not None else self.max_tool_iterations
        conversation = list(messages)
        records: List[ToolCallRecord] = []
        tool_used = False
        iterations = 0
        state = LoopState.REQUESTING

        while state is LoopState.REQUESTING:
            if iterations >= limit:
                state = LoopState.ITERATION_EXCEEDED
                break
            iterations += 1

            reply = await self.chat(conversation, tools=tools, json_mode=json_mode)
            if not reply.tool_calls:
                state = LoopState.FINAL
                return ToolLoopResult(
                    content=reply.content,
                    tool_used=tool_used,
                    iterations=iterations,
                    state=state,
                    tool_calls=records,
                )

            state = LoopState.TOOL_EXEC
            tool_used = True
            conversation.append(_assistant_turn(reply))
            for call in reply.tool_calls:
                record = await self._execute_call(call, tool_handler, document_id)
                records.append(record)
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": record.tool_result,
                })
            state = LoopState.REQUESTING

        logger.warning(f"Tool loop stopped after {iterations} iterations without a final answer")
        raise ToolIterationLimitError(limit)

    async def _execute_call(
        self,
        call: ToolCall,
        tool_handler: ToolHandler,
        document_id: Optional[int],
    ) -> ToolCallRecord:
        start = time.perf_counter()
        args: Dict[str, Any] = {}
        success = True
        try:
            args = _parse_tool_arguments(call.arguments)
            logger.info(f"LLM called tool: {call.name} {args}")
            result = await tool_handler(call.name, args)
        except Exception as exc:
            success = False
            result = json.dumps({"error": str(exc)})
            logger.warning(f"Tool {call.name} failed: {exc}")
        duration_ms = int((time.perf_counter() - start) * 1000)

        record = ToolCallRecord(
            document_id=document_id or 0,
            tool_name=call.name,
            tool_args=args,
            tool_result=result,
            success=success,
            duration_ms=duration_ms,
        )
        if document_id is not None and self.usage_logger is not None:
            try:
                await self.usage_logger.log(record)
            except Exception as exc:
                logger.warning(f"Failed to log tool usage for document {document_id}: {exc}")
        return record

    async def health_check(self) -> bool:
        try:
            await self.client.models.list()
        except openai.APIError as exc:
            logger.warning(f"LLM health check failed: {exc}")
            return False
        return True

    async def list_models(self) -> List[str]:
        try:
            page = await self.client.models.list()
        except openai.APIConnectionError as exc:
            raise LLMConnectionError(f"Cannot connect to LLM at {self.base_url or 'endpoint'}") from exc
        except openai.APIStatusError as exc:
            raise LLMError(f"LLM API error: {exc.status_code} {exc.message}") from exc
        return [model.id for model in page.data]
