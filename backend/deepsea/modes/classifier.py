"""
Auto-mode classifier.

Maps the latest user text to an effective mode with layered heuristics:
1. short definitional question -> lite
2. weighted escalation score at or above threshold -> hardcore (when allowed)
3. otherwise -> standard

Pure and total: no I/O, never raises, any string (including "") is accepted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from backend.deepsea.chat_contract import Mode

LITE_MAX_CHARS = 30
LITE_KEYWORDS = ("뭐야", "무엇", "정의", "의미", "what is", "define", "meaning of")

STRONG_KEYWORDS = (
    "분석", "비교", "설계", "전략", "최적화", "아키텍처",
    "architecture", "strategy", "trade-off", "analyze", "compare", "optimize", "design",
)
WEAK_KEYWORDS = ("왜", "구조", "구조적", "비판", "why", "critique")

STRONG_WEIGHT = 2.0
WEAK_WEIGHT = 1.0
LONG_INPUT_CHARS = 150
LONG_INPUT_WEIGHT = 2.0
MEDIUM_INPUT_CHARS = 80
MEDIUM_INPUT_WEIGHT = 1.0
MULTI_QUESTION_WEIGHT = 1.0
ESCALATION_THRESHOLD = 2.0


@dataclass(frozen=True)
class ModeDecision:
    mode: Mode
    score: float = 0.0
    signals: List[str] = field(default_factory=list)


def _matches(lowered: str, keywords) -> List[str]:
    return [kw for kw in keywords if kw in lowered]


def escalation_score(text: str) -> tuple[float, List[str]]:
    lowered = text.lower()
    score = 0.0
    signals: List[str] = []

    strong = _matches(lowered, STRONG_KEYWORDS)
    if strong:
        score += STRONG_WEIGHT
        signals.append("strong_keyword:" + ",".join(strong))

    weak = _matches(lowered, WEAK_KEYWORDS)
    if weak:
        score += WEAK_WEIGHT
        signals.append("weak_keyword:" + ",".join(weak))

    if len(text) >= LONG_INPUT_CHARS:
        score += LONG_INPUT_WEIGHT
        signals.append("long_input")
    elif len(text) >= MEDIUM_INPUT_CHARS:
        score += MEDIUM_INPUT_WEIGHT
        signals.append("medium_input")

    if text.count("?") + text.count("？") >= 2:
        score += MULTI_QUESTION_WEIGHT
        signals.append("multi_question")

    return score, signals


def classify_mode(text: Optional[str], allow_hardcore: bool = True) -> ModeDecision:
    text = text or ""
    lowered = text.lower()

    if len(text) < LITE_MAX_CHARS:
        definitional = _matches(lowered, LITE_KEYWORDS)
        if definitional:
            return ModeDecision(Mode.LITE, 0.0, ["definition:" + ",".join(definitional)])

    score, signals = escalation_score(text)
    if score >= ESCALATION_THRESHOLD:
        if allow_hardcore:
            return ModeDecision(Mode.HARDCORE, score, signals)
        return ModeDecision(Mode.STANDARD, score, signals + ["hardcore_not_allowed"])
    return ModeDecision(Mode.STANDARD, score, signals)


def resolve_mode(
    text: Optional[str],
    requested: Union[Mode, str, None] = Mode.AUTO,
    allow_hardcore: bool = True,
) -> Mode:
    """Explicit selection wins; `auto` is always resolved to lite/standard/hardcore."""
    try:
        requested_mode = Mode(requested) if requested is not None else Mode.AUTO
    except ValueError:
        requested_mode = Mode.AUTO
    if requested_mode is not Mode.AUTO:
        return requested_mode
    return classify_mode(text, allow_hardcore=allow_hardcore).mode


__all__ = [
    "ESCALATION_THRESHOLD",
    "ModeDecision",
    "classify_mode",
    "escalation_score",
    "resolve_mode",
]
