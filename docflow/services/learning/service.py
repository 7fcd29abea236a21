"""
Few-shot learning from human corrections.

No model is retrained. When a prediction is shaky and the correction log
holds at least one gold example for the document type, one example is
picked at random and embedded in the prompt as a worked example.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import GoldExample
from .examples import ExampleQuery, ExampleStore, ocr_excerpt

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7

LEARNING_PROMPT_TEMPLATE = """
Here is a corrected example of a {doc_type}:

OCR Text Excerpt:
{ocr_text}

Corrected Extraction:
{extraction}

Use this example as a reference to improve your extraction accuracy.
"""


@dataclass
class LearningContext:
    doc_type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    confidence: float = 0.0
    use_tool_calling: bool = True


@dataclass
class LearningResult:
    example_found: bool
    tool_used: bool = False
    example: Optional[GoldExample] = None
    improvement_suggestion: Optional[str] = None


def _improvement_suggestion(example: GoldExample) -> str:
    if example.field_name:
        return (
            f"Field '{example.field_name}' was corrected to '{example.corrected_value}'. "
            "Use this as a reference for similar extractions."
        )
    return f"Document type was corrected to '{example.doc_type}'. Use the extraction pattern from this example."


class LearningService:
    def __init__(self, example_store: ExampleStore) -> None:
        self.example_store = example_store

    async def should_use_learning(
        self,
        confidence: float,
        doc_type: str,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> bool:
        if confidence >= threshold:
            return False
        counts = await self.example_store.get_gold_example_counts()
        return counts.get(doc_type, 0) > 0

    async def retrieve_learning_example(self, context: LearningContext) -> LearningResult:
        """
        Fetch one gold example when the learning gate opens.

        Lookup failures are logged and reported as "no example found"; they
        never abort the prediction that asked for help.
        """
        if not context.doc_type:
            return LearningResult(example_found=False)

        try:
            if not await self.should_use_learning(context.confidence, context.doc_type):
                return LearningResult(example_found=False)

            example = await self.example_store.get_gold_example(
                ExampleQuery(doc_type=context.doc_type, keywords=context.keywords)
            )
        except Exception as e:
            logger.warning(f"Learning example lookup failed for {context.doc_type}: {e}")
            return LearningResult(example_found=False, tool_used=context.use_tool_calling)

        if example is None:
            return LearningResult(example_found=False, tool_used=context.use_tool_calling)

        return LearningResult(
            example_found=True,
            example=example,
            tool_used=context.use_tool_calling,
            improvement_suggestion=_improvement_suggestion(example),
        )

    def prepare_learning_prompt(self, example: GoldExample) -> str:
        return LEARNING_PROMPT_TEMPLATE.format(
            doc_type=example.doc_type,
            ocr_text=ocr_excerpt(example.ocr_text),
            extraction=json.dumps(example.extraction, indent=2),
        )

    async def learning_impact(self) -> Dict[str, Any]:
        try:
            counts = await self.example_store.get_gold_example_counts()
        except Exception as e:
            logger.warning(f"Failed to count gold examples: {e}")
            counts = {}
        return {
            "total_gold_examples": sum(counts.values()),
            "examples_by_type": counts,
        }
