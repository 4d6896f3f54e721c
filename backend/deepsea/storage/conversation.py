"""
Markdown conversation export / import.

    ---
    mode: standard
    date: 2024-05-01T10:00:00+00:00
    ---

    ## User

    question

    ## Assistant

    answer

Content lines that look like a section heading are written with one extra
leading backslash and restored on import, so export followed by import gives
back the same messages.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from backend.deepsea.chat_contract import ChatMessage, Mode

FRONT_MATTER = "---"
ROLE_HEADINGS = {"user": "## User", "assistant": "## Assistant", "system": "## System"}
HEADING_ROLES = {heading: role for role, heading in ROLE_HEADINGS.items()}

_HEADING_LIKE = re.compile(r"^(\s*)(\\*)(## (?:User|Assistant|System)\s*)$")


@dataclass
class ConversationData:
    messages: List[Dict[str, str]] = field(default_factory=list)
    mode: Mode = Mode.STANDARD
    date: str = ""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_line(line: str) -> str:
    match = _HEADING_LIKE.match(line)
    if not match:
        return line
    return match.group(1) + "\\" + match.group(2) + match.group(3)


def _unescape_line(line: str) -> str:
    match = _HEADING_LIKE.match(line)
    if not match or not match.group(2):
        return line
    return match.group(1) + match.group(2)[1:] + match.group(3)


def _as_pair(message: Union[ChatMessage, Mapping[str, Any]]) -> Dict[str, str]:
    if isinstance(message, ChatMessage):
        return message.as_upstream()
    return {"role": str(message.get("role", "user")), "content": str(message.get("content") or "")}


def serialize_conversation(
    messages: Sequence[Union[ChatMessage, Mapping[str, Any]]],
    mode: Union[Mode, str],
    date: Optional[str] = None,
) -> str:
    mode_value = mode.value if isinstance(mode, Mode) else str(mode)
    header = f"{FRONT_MATTER}\nmode: {mode_value}\ndate: {date or _now_iso()}\n{FRONT_MATTER}\n\n"
    sections = []
    for message in messages:
        pair = _as_pair(message)
        heading = ROLE_HEADINGS.get(pair["role"], ROLE_HEADINGS["system"])
        body = "\n".join(_escape_line(line) for line in pair["content"].split("\n"))
        sections.append(f"{heading}\n\n{body}\n")
    return header + "\n".join(sections)


def _parse_mode(value: str) -> Mode:
    try:
        return Mode(value.strip().lower())
    except ValueError:
        return Mode.STANDARD


def _section_content(block: List[str]) -> str:
    # A section is written as "", <content lines>, ""
    if len(block) >= 2 and block[0] == "" and block[-1] == "":
        block = block[1:-1]
    else:
        return "\n".join(_unescape_line(line) for line in block).strip()
    return "\n".join(_unescape_line(line) for line in block)


def deserialize_conversation(text: str) -> ConversationData:
    lines = (text or "").split("\n")
    data = ConversationData(date=_now_iso())

    i = 0
    if lines and lines[0].strip() == FRONT_MATTER:
        i = 1
        while i < len(lines) and lines[i].strip() != FRONT_MATTER:
            key, _, value = lines[i].partition(":")
            if key.strip() == "mode":
                data.mode = _parse_mode(value)
            elif key.strip() == "date" and value.strip():
                data.date = value.strip()
            i += 1
        i += 1

    role: Optional[str] = None
    block: List[str] = []
    for line in lines[i:]:
        heading_role = HEADING_ROLES.get(line.strip())
        if heading_role is not None:
            if role is not None:
                data.messages.append({"role": role, "content": _section_content(block)})
            role, block = heading_role, []
        elif role is not None:
            block.append(line)
    if role is not None:
        data.messages.append({"role": role, "content": _section_content(block)})

    return data


__all__ = ["ConversationData", "deserialize_conversation", "serialize_conversation"]
