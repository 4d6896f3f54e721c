from __future__ import annotations

import re
import uuid
from typing import Optional

from fastapi import Request

# hex/uuid-ish, max 64 chars
SAFE_REQUEST_ID_PATTERN = re.compile(r"^[a-fA-F0-9\-]{1,64}$")


def resolve_request_id(candidate: Optional[str]) -> str:
    """Reuse a caller-supplied id only when it matches the safe pattern."""
    if candidate:
        value = candidate.strip()
        if SAFE_REQUEST_ID_PATTERN.match(value):
            return value
    return str(uuid.uuid4())


def get_request_id(request: Optional[Request]) -> str:
    if request is None:
        return str(uuid.uuid4())
    rid = getattr(request.state, "request_id", None)
    if isinstance(rid, str) and rid:
        return rid
    return resolve_request_id(request.headers.get("x-request-id"))


__all__ = ["SAFE_REQUEST_ID_PATTERN", "get_request_id", "resolve_request_id"]
