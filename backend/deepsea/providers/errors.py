from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """Base class for upstream provider failures."""

    kind = "upstream_error"

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderMisconfiguredError(ProviderError):
    """Raised when a provider credential is missing; detected before any network call."""

    kind = "configuration_error"


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call does not complete within its timeout."""

    kind = "upstream_timeout"


class ProviderUpstreamError(ProviderError):
    """Raised for transport failures and non-success provider responses."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code
        self.detail = detail


__all__ = [
    "ProviderError",
    "ProviderMisconfiguredError",
    "ProviderTimeoutError",
    "ProviderUpstreamError",
]
