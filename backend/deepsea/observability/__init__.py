from __future__ import annotations

from .logging import safe_redact, structured_log
from .request_id import get_request_id, resolve_request_id

__all__ = [
    "get_request_id",
    "resolve_request_id",
    "safe_redact",
    "structured_log",
]
