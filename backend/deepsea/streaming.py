r"""
Caller-facing event stream.

Every path (direct pass-through, synthesized pipeline answer, error) produces
the same frames:

    data: {"choices": [{"delta": {"content": "..."}}]}\n\n
    ...
    data: [DONE]\n\n
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

from fastapi.responses import StreamingResponse

from backend.deepsea.errors import user_message
from backend.deepsea.providers.errors import ProviderError

logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n\n"
EVENT_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

Outcome = Union[str, AsyncIterator[str]]


def encode_frame(content: str) -> str:
    payload = {"choices": [{"delta": {"content": content}}]}
    return "data: " + json.dumps(payload, ensure_ascii=False) + "\n\n"


async def stream_text(text: str) -> AsyncIterator[str]:
    yield encode_frame(text)
    yield DONE_FRAME


async def stream_tokens(tokens: AsyncIterator[str], request_id: Optional[str] = None) -> AsyncIterator[str]:
    """Re-frame upstream deltas; an upstream failure mid-stream becomes one error frame."""
    try:
        async for token in tokens:
            yield encode_frame(token)
    except ProviderError as exc:
        logger.warning("[CHAT] upstream stream failed", extra={"error_kind": exc.kind, "request_id": request_id})
        yield encode_frame(user_message(exc.kind))
    finally:
        aclose = getattr(tokens, "aclose", None)
        if aclose is not None:
            await aclose()
    yield DONE_FRAME


async def wait_for_disconnect(receive: Callable[[], Awaitable[Dict[str, Any]]]) -> None:
    """Return once the client sends http.disconnect. The request body must already be read."""
    while True:
        message = await receive()
        if message.get("type") == "http.disconnect":
            return


def to_event_stream(outcome: Outcome, request_id: Optional[str] = None) -> AsyncIterator[str]:
    if isinstance(outcome, str):
        return stream_text(outcome)
    return stream_tokens(outcome, request_id=request_id)


def event_stream_response(
    outcome: Outcome,
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> StreamingResponse:
    return StreamingResponse(
        to_event_stream(outcome, request_id=request_id),
        media_type="text/event-stream",
        headers={**EVENT_STREAM_HEADERS, **(headers or {})},
    )


__all__ = [
    "DONE_FRAME",
    "encode_frame",
    "event_stream_response",
    "stream_text",
    "stream_tokens",
    "to_event_stream",
    "wait_for_disconnect",
]
