from __future__ import annotations

from .examples import ExampleQuery, ExampleStore
from .service import LearningContext, LearningResult, LearningService

__all__ = [
    "ExampleQuery",
    "ExampleStore",
    "LearningContext",
    "LearningResult",
    "LearningService",
]
