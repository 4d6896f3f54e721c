from __future__ import annotations

import re
from typing import Any, Dict

_SECRET_KEYS = {"authorization", "api_key", "token", "secret", "set-cookie", "cookie", "messages", "content", "prompt"}
_API_KEY_PATTERN = re.compile(r"(sk-[A-Za-z0-9]{8,})", re.IGNORECASE)
_BEARER_PATTERN = re.compile(r"(Bearer\s+)[^\s\"']+", re.IGNORECASE)


def redact_secrets(s: str) -> str:
    if not s:
        return s
    redacted = _API_KEY_PATTERN.sub("[redacted]", s)
    return _BEARER_PATTERN.sub(r"\1[redacted]", redacted)


def safe_error_detail(exc: Exception, limit: int = 200) -> str:
    return redact_secrets(str(exc))[:limit]


def safe_dict(d: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(d, dict):
        return {}
    return {k: v for k, v in d.items() if str(k).lower() not in _SECRET_KEYS}


__all__ = ["redact_secrets", "safe_error_detail", "safe_dict"]
