"""
Multiplicative confidence model.

Every prediction carries three sub-scores in [0, 1]:
- llm: how sure the model claims to be
- validation: whether the output passed deterministic checks
- clarity: whether the source text contains the expected identifying words

final = clamp(llm * validation * clarity). When final falls under the
approval threshold, human-readable reasons say which factor dragged it down.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from ..models import ConfidenceBreakdown

CONFIDENCE_MIN = 0.0
CONFIDENCE_MAX = 1.0
DEFAULT_LLM_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE_THRESHOLD = 0.7

VALIDATION_CONFIDENCE_PASS = 1.0
VALIDATION_CONFIDENCE_FAIL = 0.3

CLARITY_CONFIDENCE_NO_TEXT = 0.4
CLARITY_CONFIDENCE_NO_KEYWORDS = 1.0
CLARITY_CONFIDENCE_ALL_KEYWORDS = 1.0
CLARITY_CONFIDENCE_MOST_KEYWORDS = 0.7
CLARITY_CONFIDENCE_FEW_KEYWORDS = 0.4
KEYWORD_MATCH_RATIO_FULL = 1.0
KEYWORD_MATCH_RATIO_PARTIAL = 0.5

LLM_CONFIDENCE_LOW_THRESHOLD = 0.7
CLARITY_CONFIDENCE_LOW_THRESHOLD = 0.7
VALIDATION_CONFIDENCE_CRITICAL_THRESHOLD = 0.3
CLARITY_CONFIDENCE_POOR_THRESHOLD = 0.4

FIELD_CLARITY_CONFIDENCE = 0.8
CLASSIFICATION_VALIDATION_CONFIDENCE = 1.0

REASON_MODEL_UNCERTAINTY = "Model uncertainty: The AI model was not confident in its prediction ({pct}%)"
REASON_VALIDATION_FAILED = "Validation failed: Extracted data does not match expected format or contains errors"
REASON_PARTIAL_VALIDATION = "Partial validation: Some extracted fields have format issues"
REASON_POOR_QUALITY = (
    "Poor document quality: Document may be unclear, missing expected text, or heavily degraded"
)
REASON_MISSING_KEYWORDS = "Missing keywords: Document does not contain all expected identifying information"
REASON_COMBINED = "Combined factors: Multiple confidence components are slightly below optimal levels"


def clamp_confidence(value: float) -> float:
    return max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, value))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def keyword_match_ratio(text: str, keywords: Sequence[str]) -> float:
    lower = text.lower()
    found = sum(1 for keyword in keywords if keyword.lower() in lower)
    return found / len(keywords)


class ConfidenceCalculator:
    def llm_confidence(self, model_output: Any) -> float:
        """Clamp a bare number or a ``confidence`` entry; anything else is moderate."""
        if _is_number(model_output):
            return clamp_confidence(float(model_output))

        if isinstance(model_output, Mapping):
            candidate = model_output.get("confidence")
        else:
            candidate = getattr(model_output, "confidence", None)
        if _is_number(candidate):
            return clamp_confidence(float(candidate))

        return DEFAULT_LLM_CONFIDENCE

    def validation_confidence(self, is_valid: bool) -> float:
        return VALIDATION_CONFIDENCE_PASS if is_valid else VALIDATION_CONFIDENCE_FAIL

    def clarity_confidence(self, text: Optional[str], keywords: Sequence[str]) -> float:
        if not text or not text.strip():
            return CLARITY_CONFIDENCE_NO_TEXT
        if not keywords:
            return CLARITY_CONFIDENCE_NO_KEYWORDS

        ratio = keyword_match_ratio(text, keywords)
        if ratio >= KEYWORD_MATCH_RATIO_FULL:
            return CLARITY_CONFIDENCE_ALL_KEYWORDS
        if ratio >= KEYWORD_MATCH_RATIO_PARTIAL:
            return CLARITY_CONFIDENCE_MOST_KEYWORDS
        return CLARITY_CONFIDENCE_FEW_KEYWORDS

    def final_confidence(self, llm: float, validation: float, clarity: float) -> ConfidenceBreakdown:
        llm = clamp_confidence(llm)
        validation = clamp_confidence(validation)
        clarity = clamp_confidence(clarity)
        return ConfidenceBreakdown(
            llm_confidence=llm,
            validation_confidence=validation,
            clarity_confidence=clarity,
            final_confidence=clamp_confidence(llm * validation * clarity),
        )

    def low_confidence_reasons(
        self,
        breakdown: ConfidenceBreakdown,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> List[str]:
        """
        Explain a below-threshold score.

        Each sub-score is checked on its own against fixed cut points, so a
        document can get several reasons. Returns an empty list when the final
        score meets the threshold.
        """
        if breakdown.final_confidence >= threshold:
            return []

        reasons: List[str] = []
        if breakdown.llm_confidence < LLM_CONFIDENCE_LOW_THRESHOLD:
            pct = round(breakdown.llm_confidence * 100)
            reasons.append(REASON_MODEL_UNCERTAINTY.format(pct=pct))

        if breakdown.validation_confidence < VALIDATION_CONFIDENCE_PASS:
            if breakdown.validation_confidence <= VALIDATION_CONFIDENCE_CRITICAL_THRESHOLD:
                reasons.append(REASON_VALIDATION_FAILED)
            else:
                reasons.append(REASON_PARTIAL_VALIDATION)

        if breakdown.clarity_confidence < CLARITY_CONFIDENCE_LOW_THRESHOLD:
            if breakdown.clarity_confidence <= CLARITY_CONFIDENCE_POOR_THRESHOLD:
                reasons.append(REASON_POOR_QUALITY)
            else:
                reasons.append(REASON_MISSING_KEYWORDS)

        if not reasons:
            reasons.append(REASON_COMBINED)
        return reasons

    def _with_reasons(self, breakdown: ConfidenceBreakdown, threshold: float) -> ConfidenceBreakdown:
        reasons = self.low_confidence_reasons(breakdown, threshold)
        breakdown.reasons = reasons or None
        return breakdown

    def classification_confidence(
        self,
        model_output: Any,
        ocr_text: str,
        keywords: Sequence[str],
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> ConfidenceBreakdown:
        breakdown = self.final_confidence(
            self.llm_confidence(model_output),
            CLASSIFICATION_VALIDATION_CONFIDENCE,
            self.clarity_confidence(ocr_text, keywords),
        )
        return self._with_reasons(breakdown, threshold)

    def field_confidence(
        self,
        model_output: Any,
        is_valid: bool,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> ConfidenceBreakdown:
        breakdown = self.final_confidence(
            self.llm_confidence(model_output),
            self.validation_confidence(is_valid),
            FIELD_CLARITY_CONFIDENCE,
        )
        return self._with_reasons(breakdown, threshold)
