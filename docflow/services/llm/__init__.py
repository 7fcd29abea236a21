"""
LLM access for the decision pipeline.

Components:
- client: OpenAI-compatible chat client and the bounded tool-calling loop
- tools: tool registry exposing get_gold_example to the model
- usage: per-document tool call log
"""

from .client import LLMClient, LoopState, ToolLoopResult
from .tools import ToolRegistry
from .usage import ToolUsageLogger

__all__ = [
    "LLMClient",
    "LoopState",
    "ToolLoopResult",
    "ToolRegistry",
    "ToolUsageLogger",
]
