from __future__ import annotations

import json
import logging
from typing import Any, Dict

from backend.deepsea.config.redaction import redact_secrets, safe_dict

logger = logging.getLogger(__name__)


def safe_redact(event: Dict[str, Any]) -> Dict[str, Any]:
    # Drop conversation text and credentials, scrub key-shaped strings
    redacted = safe_dict(event)
    for key in ("user_text", "payload", "raw_payload", "body", "draft", "plan", "review"):
        redacted.pop(key, None)
    for key, value in list(redacted.items()):
        if isinstance(value, str):
            redacted[key] = redact_secrets(value)
    return redacted


def structured_log(event: Dict[str, Any]) -> None:
    try:
        safe_event = safe_redact(event)
        logger.info(json.dumps(safe_event, separators=(",", ":"), ensure_ascii=False, default=str))
    except Exception:
        # logging must never break the request path
        return


__all__ = ["structured_log", "safe_redact"]
