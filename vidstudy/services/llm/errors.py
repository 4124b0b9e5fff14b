"""
Normalization of backend failures.

The OpenAI SDK and the Gemini REST API fail in incompatible ways (SDK
exception classes, HTTP status codes, JSON error envelopes, bare strings).
`classify_error` is the one place that turns any of them into a
`ProviderError` carrying an `ErrorKind` and a short user-facing message.
"""
from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any

import httpx
import openai


class ErrorKind(str, Enum):
    AUTH = "AuthError"
    RATE_LIMITED = "RateLimited"
    PERMISSION_DENIED = "PermissionDenied"
    NOT_FOUND = "NotFound"
    SERVER = "ServerError"
    TIMEOUT = "Timeout"
    NETWORK = "NetworkError"
    INVALID_RESPONSE = "InvalidResponse"
    UNKNOWN = "Unknown"


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH: "Invalid API key. Check the key in Settings and try again.",
    ErrorKind.RATE_LIMITED: "Rate limit or quota exceeded. Wait a moment and try again.",
    ErrorKind.PERMISSION_DENIED: "This API key does not have access to the selected model.",
    ErrorKind.NOT_FOUND: "The selected model was not found. Pick another model in Settings.",
    ErrorKind.SERVER: "The AI provider is having problems right now. Try again later.",
    ErrorKind.TIMEOUT: "The AI provider took too long to respond. Try again.",
    ErrorKind.NETWORK: "Could not reach the AI provider. Check your internet connection.",
    ErrorKind.INVALID_RESPONSE: "The AI returned a response that could not be read. Try again.",
    ErrorKind.UNKNOWN: "Something went wrong while talking to the AI provider.",
}


class ProviderError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or USER_MESSAGES[self.kind]
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class AuthError(ProviderError):
    kind = ErrorKind.AUTH


class RateLimited(ProviderError):
    kind = ErrorKind.RATE_LIMITED


class PermissionDenied(ProviderError):
    kind = ErrorKind.PERMISSION_DENIED


class NotFound(ProviderError):
    kind = ErrorKind.NOT_FOUND


class ServerError(ProviderError):
    kind = ErrorKind.SERVER


class ProviderTimeout(ProviderError):
    kind = ErrorKind.TIMEOUT


class NetworkError(ProviderError):
    kind = ErrorKind.NETWORK


class InvalidResponse(ProviderError):
    kind = ErrorKind.INVALID_RESPONSE


class UnknownProviderError(ProviderError):
    kind = ErrorKind.UNKNOWN


ERROR_CLASSES: dict[ErrorKind, type[ProviderError]] = {
    cls.kind: cls
    for cls in (
        AuthError,
        RateLimited,
        PermissionDenied,
        NotFound,
        ServerError,
        ProviderTimeout,
        NetworkError,
        InvalidResponse,
        UnknownProviderError,
    )
}

# Gemini / Google RPC status names found in error envelopes
_RPC_STATUS_KINDS = {
    "UNAUTHENTICATED": ErrorKind.AUTH,
    "RESOURCE_EXHAUSTED": ErrorKind.RATE_LIMITED,
    "PERMISSION_DENIED": ErrorKind.PERMISSION_DENIED,
    "NOT_FOUND": ErrorKind.NOT_FOUND,
    "INTERNAL": ErrorKind.SERVER,
    "UNAVAILABLE": ErrorKind.SERVER,
    "DEADLINE_EXCEEDED": ErrorKind.TIMEOUT,
}

# Checked in order; first match wins
_TEXT_PATTERNS: list[tuple[re.Pattern[str], ErrorKind]] = [
    (re.compile(r"\b401\b|invalid[ _]api[ _]key|api_key_invalid|unauthenticated|incorrect api key", re.I), ErrorKind.AUTH),
    (re.compile(r"\b429\b|resource_exhausted|rate[ _]?limit|quota", re.I), ErrorKind.RATE_LIMITED),
    (re.compile(r"\b403\b|permission_denied|permission denied|forbidden", re.I), ErrorKind.PERMISSION_DENIED),
    (re.compile(r"\b404\b|not_found|model not found|does not exist", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"\b50[0-9]\b|internal server error|service unavailable|overloaded", re.I), ErrorKind.SERVER),
    (re.compile(r"timed? ?out|timeout|deadline_exceeded", re.I), ErrorKind.TIMEOUT),
    (re.compile(r"network|connection (refused|reset|error)|econnrefused|fetch failed|name resolution", re.I), ErrorKind.NETWORK),
]


def kind_for_status(status: int) -> ErrorKind:
    if status == 401:
        return ErrorKind.AUTH
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 403:
        return ErrorKind.PERMISSION_DENIED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status in (408, 504):
        return ErrorKind.TIMEOUT
    if status >= 500:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN


def _kind_from_envelope(text: str) -> ErrorKind | None:
    """Read `{"error": {"code": ..., "status": ...}}` style bodies."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if not isinstance(err, dict):
        return None

    status = err.get("status")
    if isinstance(status, str) and status.upper() in _RPC_STATUS_KINDS:
        return _RPC_STATUS_KINDS[status.upper()]
    code = err.get("code")
    if isinstance(code, int):
        kind = kind_for_status(code)
        if kind is not ErrorKind.UNKNOWN:
            return kind
    # OpenAI envelopes carry a string `code`/`type`
    for key in ("code", "type"):
        val = err.get(key)
        if isinstance(val, str):
            kind = kind_from_text(val)
            if kind is not ErrorKind.UNKNOWN:
                return kind
    return None


def kind_from_text(text: str) -> ErrorKind:
    kind = _kind_from_envelope(text)
    if kind is not None:
        return kind
    for pattern, candidate in _TEXT_PATTERNS:
        if pattern.search(text):
            return candidate
    return ErrorKind.UNKNOWN


def make_error(kind: ErrorKind, detail: str | None = None) -> ProviderError:
    return ERROR_CLASSES[kind](detail=detail)


def classify_error(exc: BaseException | str) -> ProviderError:
    """Translate any backend failure (or raw error text) into a ProviderError."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, str):
        return make_error(kind_from_text(exc), detail=exc)

    detail = str(exc)

    # OpenAI SDK (check before httpx: its errors wrap httpx responses)
    if isinstance(exc, openai.APITimeoutError):
        return make_error(ErrorKind.TIMEOUT, detail)
    if isinstance(exc, openai.APIConnectionError):
        return make_error(ErrorKind.NETWORK, detail)
    if isinstance(exc, openai.APIStatusError):
        kind = kind_for_status(exc.status_code)
        if kind is ErrorKind.UNKNOWN:
            kind = kind_from_text(detail)
        return make_error(kind, detail)

    # httpx (Gemini REST)
    if isinstance(exc, httpx.HTTPStatusError):
        body = ""
        try:
            body = exc.response.text
        except httpx.ResponseNotRead:
            pass
        kind = _kind_from_envelope(body) or kind_for_status(exc.response.status_code)
        return make_error(kind, body or detail)
    if isinstance(exc, httpx.TimeoutException):
        return make_error(ErrorKind.TIMEOUT, detail)
    if isinstance(exc, httpx.TransportError):
        return make_error(ErrorKind.NETWORK, detail)

    if isinstance(exc, (json.JSONDecodeError, ValueError, KeyError, TypeError)):
        return make_error(ErrorKind.INVALID_RESPONSE, detail)
    if isinstance(exc, TimeoutError):
        return make_error(ErrorKind.TIMEOUT, detail)
    if isinstance(exc, (ConnectionError, OSError)):
        return make_error(ErrorKind.NETWORK, detail)

    return make_error(kind_from_text(detail), detail)
