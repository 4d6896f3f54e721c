from .base import FALLBACK_PROVIDER, PRIMARY_PROVIDER, LLMProvider, LLMRequest, LLMResponse, ProviderName
from .client import UpstreamClient
from .errors import (
    ProviderError,
    ProviderMisconfiguredError,
    ProviderTimeoutError,
    ProviderUpstreamError,
)
from .factory import create_provider

__all__ = [
    "FALLBACK_PROVIDER",
    "LLMProvider",
    "LLMRequest",
    "LLMResponse",
    "PRIMARY_PROVIDER",
    "ProviderError",
    "ProviderMisconfiguredError",
    "ProviderName",
    "ProviderTimeoutError",
    "ProviderUpstreamError",
    "UpstreamClient",
    "create_provider",
]
