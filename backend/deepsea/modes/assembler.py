"""Builds the upstream message list for a mode or a pipeline step."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from backend.deepsea.chat_contract import ChatMessage, Mode

from .profiles import ModeTable
from .prompts import TASK_HINT_LINE

Message = Dict[str, str]
HistoryItem = Union[ChatMessage, Mapping[str, Any]]

TASK_HINT_KEYWORDS = (
    (
        "engineering",
        (
            "code", "코드", "bug", "버그", "api", "server", "서버", "database", "데이터베이스",
            "python", "architecture", "아키텍처", "system", "시스템", "implement", "구현",
            "deploy", "배포", "algorithm", "알고리즘",
        ),
    ),
    (
        "planning",
        (
            "plan", "계획", "schedule", "일정", "roadmap", "로드맵", "strategy", "전략",
            "goal", "목표", "milestone", "단계",
        ),
    ),
    (
        "writing",
        (
            "write", "작성", "essay", "에세이", "email", "이메일", "letter", "편지",
            "summarize", "요약", "translate", "번역", "문장", "글",
        ),
    ),
)


def task_hint(text: Optional[str]) -> str:
    lowered = (text or "").lower()
    for hint, keywords in TASK_HINT_KEYWORDS:
        if any(kw in lowered for kw in keywords):
            return hint
    return "general"


def _as_message(item: HistoryItem) -> Message:
    if isinstance(item, ChatMessage):
        return item.as_upstream()
    return {"role": str(item.get("role", "user")), "content": str(item.get("content") or "")}


def compact_history(history: Sequence[HistoryItem], max_messages: int, max_chars: int) -> List[Message]:
    """Keep the most recent messages and truncate each one. Lossy."""
    messages = [_as_message(m) for m in history]
    if max_messages > 0:
        messages = messages[-max_messages:]
    if max_chars > 0:
        messages = [{"role": m["role"], "content": m["content"][:max_chars]} for m in messages]
    return messages


def latest_user_text(history: Sequence[HistoryItem]) -> str:
    for item in reversed(history):
        message = _as_message(item)
        if message["role"] == "user":
            return message["content"]
    return ""


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, ensure_ascii=False, indent=2)


def render_template(template: str, **values: Any) -> str:
    rendered = template
    for name, value in values.items():
        rendered = rendered.replace("{" + name + "}", _serialize(value))
    return rendered


def system_prompt(mode: Mode, table: ModeTable, user_text: str) -> str:
    base = table.profile(mode).system_template
    return base + "\n\n" + TASK_HINT_LINE.format(hint=task_hint(user_text))


def build_messages(
    mode: Mode,
    history: Sequence[HistoryItem],
    table: ModeTable,
    step_prompt: Optional[str] = None,
) -> List[Message]:
    """Return the message list sent upstream, led by exactly one system message.

    When `step_prompt` is given (a rendered pipeline template) it takes the place
    of the latest user message.
    """
    messages = [_as_message(m) for m in history]
    user_text = latest_user_text(messages)

    if step_prompt is not None:
        last_user = max((i for i, m in enumerate(messages) if m["role"] == "user"), default=len(messages))
        messages = messages[:last_user] + [{"role": "user", "content": step_prompt}]

    policy = table.system_message_policy
    leading_system: Optional[Message] = None
    if policy == "preserve" and messages and messages[0]["role"] == "system":
        leading_system = compact_history(messages[:1], 1, table.history_max_chars)[0]
        messages = messages[1:]

    tail = compact_history(messages, table.history_max_messages, table.history_max_chars)
    if step_prompt is not None and tail and tail[-1]["role"] == "user":
        # step prompts embed artifacts; they are never truncated
        tail[-1] = {"role": "user", "content": step_prompt}

    if policy == "replace":
        tail = [m for m in tail if m["role"] != "system"]
    # the head is the only system message at the front
    while tail and tail[0]["role"] == "system":
        tail.pop(0)

    head = leading_system or {"role": "system", "content": system_prompt(mode, table, user_text)}
    return [head] + tail


__all__ = [
    "build_messages",
    "compact_history",
    "latest_user_text",
    "render_template",
    "system_prompt",
    "task_hint",
]
