"""
Exceptions raised by the decision pipeline.

Fatal conditions propagate to the caller as one of these types; the HTTP
layer maps them to status codes. Recoverable conditions (tool handler
failures, location search misses, learning lookups) never surface here.
"""

from __future__ import annotations


class DocflowError(Exception):
    """Base class for all pipeline errors."""


class LLMError(DocflowError):
    """The language model call failed."""


class LLMConnectionError(LLMError):
    """The LLM endpoint refused or dropped the connection."""


class LLMTimeoutError(LLMError):
    """The LLM request exceeded the configured timeout."""


class LLMModelNotFoundError(LLMError):
    """The configured model is not available on the LLM endpoint."""


class LLMResponseError(LLMError):
    """The model answered, but not with the JSON shape that was requested."""

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response


class ToolIterationLimitError(LLMError):
    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Max tool iterations ({max_iterations}) exceeded")
        self.max_iterations = max_iterations


class ToolNotFoundError(DocflowError):
    pass


class UnknownDocumentTypeError(DocflowError):
    def __init__(self, value: str, allowed: list[str]) -> None:
        super().__init__(f"Invalid document type: {value}. Must be one of: {', '.join(allowed)}")
        self.value = value


class SchemaNotFoundError(DocflowError):
    pass


class ThresholdRangeError(DocflowError, ValueError):
    pass
