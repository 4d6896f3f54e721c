"""
Request ID middleware.

Every response carries X-Request-ID: the caller's value when it is safe,
otherwise a fresh uuid4. One access line is logged per request, never the body.
"""

import logging
import time
from typing import Optional

from backend.deepsea.observability.request_id import resolve_request_id

logger = logging.getLogger(__name__)


class RequestIdMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.monotonic()
        request_id = resolve_request_id(self._incoming_request_id(scope))

        # Exposed to handlers as request.state.request_id
        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id

        method = scope.get("method", "?")
        path = scope.get("path", "?")
        status_code: Optional[int] = None

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                headers = [h for h in message.get("headers", []) if h[0].lower() != b"x-request-id"]
                headers.append((b"x-request-id", request_id.encode("utf-8")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "[HTTP] request",
                extra={
                    "method": method,
                    "path": path,
                    "status": status_code,
                    "duration_ms": int((time.monotonic() - start_time) * 1000),
                    "request_id": request_id,
                },
            )

    @staticmethod
    def _incoming_request_id(scope) -> Optional[str]:
        for name, value in scope.get("headers", []):
            if isinstance(name, bytes) and name.lower() == b"x-request-id" and isinstance(value, bytes):
                return value.decode("utf-8", errors="replace")
        return None
