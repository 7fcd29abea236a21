"""
Tools the model may call during classification.

Implements:
- get_gold_example: fetch one human-corrected document of a given type

Handlers always answer with a JSON string; the tool description tells the
model to expect exactly the envelope keys built here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import ToolNotFoundError
from ..learning.examples import ExampleQuery, ExampleStore, ocr_excerpt
from ..models import DocumentType, GoldExample

logger = logging.getLogger(__name__)

GOLD_EXAMPLE_TOOL = "get_gold_example"
GOLD_EXAMPLE_NOTE = "This is a corrected example. Use it to improve your extraction accuracy."

ToolHandler = Callable[[Dict[str, Any]], Awaitable[str]]


@dataclass
class ToolDefinition:
    """An OpenAI-style function tool plus the coroutine that serves it."""
    tool: Dict[str, Any]
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.tool["function"]["name"]


def sanitize_keywords(keywords: Any) -> List[str]:
    """Accept a list, a JSON-encoded list, or anything else (ignored)."""
    if not keywords:
        return []
    if isinstance(keywords, list):
        return [str(k) for k in keywords]
    if isinstance(keywords, str):
        try:
            parsed = json.loads(keywords)
        except json.JSONDecodeError:
            logger.warning(f"Invalid keywords format, ignoring: {keywords!r}")
            return []
        if isinstance(parsed, list):
            return [str(k) for k in parsed]
    return []


def gold_example_envelope(example: GoldExample) -> str:
    corrected_field = None
    if example.field_name:
        corrected_field = {
            "field_name": example.field_name,
            "corrected_value": example.corrected_value,
        }
    return json.dumps({
        "found": True,
        "document_type": example.doc_type,
        "ocr_text_excerpt": ocr_excerpt(example.ocr_text),
        "corrected_extraction": example.extraction,
        "corrected_field": corrected_field,
        "note": GOLD_EXAMPLE_NOTE,
    })


def no_example_envelope(doc_type: Any) -> str:
    return json.dumps({
        "found": False,
        "message": f"No gold examples found for document type: {doc_type}",
    })


def error_envelope() -> str:
    return json.dumps({
        "found": False,
        "error": "Failed to retrieve example",
    })


def gold_example_tool() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": GOLD_EXAMPLE_TOOL,
            "description": (
                "Retrieve a corrected example document for few-shot learning. "
                "Use this when confidence is low or the document type is ambiguous."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "doc_type": {
                        "type": "string",
                        "enum": [t.value for t in DocumentType.known()],
                        "description": "The document type to retrieve an example for",
                    },
                    "keywords": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": 'Optional keywords to find similar documents (e.g., ["bank", "statement"])',
                    },
                },
                "required": ["doc_type"],
            },
        },
    }


class ToolRegistry:
    def __init__(self, example_store: Optional[ExampleStore] = None) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        self.example_store = example_store
        if example_store is not None:
            self.register(ToolDefinition(tool=gold_example_tool(), handler=self._handle_get_gold_example))

    def register(self, definition: ToolDefinition) -> None:
        self._tools[definition.name] = definition
        logger.info(f"Registered tool: {definition.name}")

    def get_tools(self) -> List[Dict[str, Any]]:
        return [d.tool for d in self._tools.values()]

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tools

    async def execute_tool(self, tool_name: str, args: Dict[str, Any]) -> str:
        definition = self._tools.get(tool_name)
        if definition is None:
            raise ToolNotFoundError(f"Tool not found: {tool_name}")
        return await definition.handler(args)

    def create_tool_handler(self) -> Callable[[str, Dict[str, Any]], Awaitable[str]]:
        async def handler(tool_name: str, args: Dict[str, Any]) -> str:
            return await self.execute_tool(tool_name, args)

        return handler

    async def _handle_get_gold_example(self, args: Dict[str, Any]) -> str:
        doc_type = args.get("doc_type")
        try:
            example = await self.example_store.get_gold_example(
                ExampleQuery(doc_type=doc_type, keywords=sanitize_keywords(args.get("keywords")))
            )
        except Exception:
            logger.exception(f"{GOLD_EXAMPLE_TOOL} failed for {doc_type}")
            return error_envelope()

        if example is None:
            return no_example_envelope(doc_type)
        return gold_example_envelope(example)
