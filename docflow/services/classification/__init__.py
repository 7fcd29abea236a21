"""
Document type classification with a multiplicative confidence model.

Components:
- confidence: llm x validation x clarity scoring and low-confidence reasons
- service: the classify state machine with a single learning retry
"""

from .confidence import ConfidenceCalculator
from .service import ClassificationService

__all__ = [
    "ConfidenceCalculator",
    "ClassificationService",
]
