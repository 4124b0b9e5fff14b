import json

import httpx
import pytest

from vidstudy.services.llm.errors import (
    AuthError,
    ErrorKind,
    InvalidResponse,
    NetworkError,
    NotFound,
    PermissionDenied,
    ProviderTimeout,
    RateLimited,
    ServerError,
    UnknownProviderError,
    classify_error,
    kind_for_status,
    kind_from_text,
)


def _status_error(status: int, body: str) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.test/models/x:generateContent")
    response = httpx.Response(status, text=body, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def test_gemini_envelope_resource_exhausted_is_rate_limited():
    body = json.dumps({"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}})
    err = classify_error(body)
    assert isinstance(err, RateLimited)
    assert err.kind is ErrorKind.RATE_LIMITED


def test_text_with_401_is_auth_error():
    err = classify_error("Request failed with status code 401")
    assert isinstance(err, AuthError)
    assert "API key" in err.message


@pytest.mark.parametrize(
    "status,cls",
    [
        (401, AuthError),
        (403, PermissionDenied),
        (404, NotFound),
        (429, RateLimited),
        (500, ServerError),
        (503, ServerError),
        (504, ProviderTimeout),
    ],
)
def test_http_status_errors(status, cls):
    assert isinstance(classify_error(_status_error(status, "")), cls)


def test_envelope_status_wins_over_http_status():
    body = json.dumps({"error": {"code": 400, "status": "PERMISSION_DENIED"}})
    assert isinstance(classify_error(_status_error(400, body)), PermissionDenied)


def test_openai_string_code_in_envelope():
    body = json.dumps({"error": {"message": "Incorrect key", "type": "invalid_request_error", "code": "invalid_api_key"}})
    assert kind_from_text(body) is ErrorKind.AUTH


def test_transport_failures():
    request = httpx.Request("GET", "https://example.test/models")
    assert isinstance(classify_error(httpx.ReadTimeout("slow", request=request)), ProviderTimeout)
    assert isinstance(classify_error(httpx.ConnectError("refused", request=request)), NetworkError)
    assert isinstance(classify_error(TimeoutError()), ProviderTimeout)
    assert isinstance(classify_error(ConnectionResetError()), NetworkError)


def test_malformed_payloads_are_invalid_response():
    assert isinstance(classify_error(ValueError("bad json")), InvalidResponse)
    assert isinstance(classify_error(KeyError("candidates")), InvalidResponse)


def test_unrecognized_text_is_unknown():
    err = classify_error("the moon is made of cheese")
    assert isinstance(err, UnknownProviderError)
    assert err.to_dict() == {"kind": "Unknown", "message": err.message}


def test_provider_errors_pass_through():
    err = RateLimited(detail="x")
    assert classify_error(err) is err


def test_kind_for_status_unknown_for_client_errors():
    assert kind_for_status(400) is ErrorKind.UNKNOWN
