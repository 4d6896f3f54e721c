from __future__ import annotations

from typing import Any, Dict

TIMEOUT_MESSAGE = "The request took too long to answer. Please shorten your request or split it into smaller questions."
UPSTREAM_MESSAGE = "The model provider failed to generate a response. Please try again."
CONFIGURATION_MESSAGE = "The model provider is not configured."
INTERNAL_MESSAGE = "Failed to generate response."

USER_MESSAGES = {
    "upstream_timeout": TIMEOUT_MESSAGE,
    "upstream_error": UPSTREAM_MESSAGE,
    "configuration_error": CONFIGURATION_MESSAGE,
}


def user_message(kind: str) -> str:
    return USER_MESSAGES.get(kind, INTERNAL_MESSAGE)


class GatewayError(Exception):
    """Terminal request failure rendered as a JSON error body."""

    def __init__(self, status_code: int, error_code: str, message: str) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        super().__init__(message)

    def to_body(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error_code": self.error_code,
            "message": self.message,
        }


class UnauthorizedError(GatewayError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(401, "unauthorized", message)


class ChatValidationError(GatewayError):
    def __init__(self, message: str) -> None:
        super().__init__(400, "invalid_request", message)


class ClientDisconnectedError(GatewayError):
    def __init__(self, message: str = "Client closed request") -> None:
        super().__init__(499, "client_closed_request", message)


__all__ = [
    "ChatValidationError",
    "ClientDisconnectedError",
    "GatewayError",
    "TIMEOUT_MESSAGE",
    "UnauthorizedError",
    "user_message",
]
