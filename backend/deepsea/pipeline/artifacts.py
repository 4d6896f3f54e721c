"""
Plan and review artifacts with parse-or-default semantics.

`parse_plan` and `parse_review` never raise: malformed model output yields the
canonical fallback artifact, flagged with `is_fallback=True`.
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

TIME_SENSITIVE = "time_sensitive"

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return [str(value)]


class PlanResult(BaseModel):
    task_type: str = "explanation"
    complexity_level: str = "medium"
    required_elements: List[str] = Field(default_factory=list)
    answer_outline: List[str] = Field(default_factory=list)
    risk_areas: List[str] = Field(default_factory=list)
    missing_information: List[str] = Field(default_factory=list)
    is_fallback: bool = Field(default=False, exclude=True)

    model_config = ConfigDict(extra="ignore")

    @field_validator("task_type", "complexity_level", mode="before")
    @classmethod
    def _normalize_label(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return cls.model_fields[info.field_name].default
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("required_elements", "answer_outline", "risk_areas", "missing_information", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> List[str]:
        return _as_str_list(v)

    @property
    def is_time_sensitive(self) -> bool:
        if self.task_type == TIME_SENSITIVE:
            return True
        return any(TIME_SENSITIVE in area.lower().replace("-", "_").replace(" ", "_") for area in self.risk_areas)


def _clamp_score(v: Any) -> float:
    try:
        score = float(v)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return max(0.0, min(1.0, score))


class ReviewResult(BaseModel):
    consistency_score: float = 0.8
    correctness_score: float = 0.8
    factual_reliability_score: float = 0.8
    completeness_score: float = 0.8
    confidence_score: float = 0.8
    risk_flags: List[str] = Field(default_factory=list)
    needs_fallback: bool = False
    fallback_reason: Optional[str] = None
    is_fallback: bool = Field(default=False, exclude=True)

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "consistency_score",
        "correctness_score",
        "factual_reliability_score",
        "completeness_score",
        "confidence_score",
        mode="before",
    )
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return _clamp_score(v)

    @field_validator("risk_flags", mode="before")
    @classmethod
    def _normalize_flags(cls, v: Any) -> List[str]:
        return [flag.strip().lower().replace("-", "_").replace(" ", "_") for flag in _as_str_list(v)]

    @field_validator("needs_fallback", mode="before")
    @classmethod
    def _coerce_bool(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    @field_validator("fallback_reason", mode="before")
    @classmethod
    def _coerce_reason(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


FALLBACK_PLAN = PlanResult(
    task_type="explanation",
    complexity_level="medium",
    required_elements=["Direct answer to the user's question"],
    answer_outline=["Conclusion", "Explanation", "Limitations"],
    risk_areas=[],
    missing_information=[],
    is_fallback=True,
)

FALLBACK_REVIEW = ReviewResult(is_fallback=True)


def extract_json_object(text: Optional[str]) -> Optional[dict]:
    """Return the first JSON object embedded in model output, or None."""
    if not text:
        return None
    cleaned = _FENCE_PATTERN.sub("", text.strip())
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_plan(text: Optional[str]) -> PlanResult:
    data = extract_json_object(text)
    if data is None:
        return FALLBACK_PLAN.model_copy()
    try:
        return PlanResult.model_validate({k: v for k, v in data.items() if k != "is_fallback"})
    except ValidationError:
        return FALLBACK_PLAN.model_copy()


def parse_review(text: Optional[str]) -> ReviewResult:
    data = extract_json_object(text)
    if data is None:
        return FALLBACK_REVIEW.model_copy()
    try:
        return ReviewResult.model_validate({k: v for k, v in data.items() if k != "is_fallback"})
    except ValidationError:
        return FALLBACK_REVIEW.model_copy()


__all__ = [
    "FALLBACK_PLAN",
    "FALLBACK_REVIEW",
    "PlanResult",
    "ReviewResult",
    "extract_json_object",
    "parse_plan",
    "parse_review",
]
