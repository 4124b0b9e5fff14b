from vidstudy.services.llm.base import LLMMessage, LLMProvider
from vidstudy.services.llm.errors import (
    AuthError,
    ErrorKind,
    InvalidResponse,
    NetworkError,
    NotFound,
    PermissionDenied,
    ProviderError,
    ProviderTimeout,
    RateLimited,
    ServerError,
    UnknownProviderError,
    classify_error,
)
from vidstudy.services.llm.gateway import ProviderGateway, create_provider, gateway_from_settings
from vidstudy.services.llm.streaming import CancelToken, ChatChunk

__all__ = [
    "AuthError",
    "CancelToken",
    "ChatChunk",
    "ErrorKind",
    "InvalidResponse",
    "LLMMessage",
    "LLMProvider",
    "NetworkError",
    "NotFound",
    "PermissionDenied",
    "ProviderError",
    "ProviderGateway",
    "ProviderTimeout",
    "RateLimited",
    "ServerError",
    "UnknownProviderError",
    "classify_error",
    "create_provider",
    "gateway_from_settings",
]
