import httpx
import pytest

from pr_review_server.core.errors import (
    DegradableProviderError,
    FatalProviderError,
    QuotaExceededError,
    RateLimitedError,
    TransientProviderError,
    classify_http_error,
    raise_for_provider_status,
    transport_error,
)


def _response(status_code, json=None, text=None, headers=None):
    if json is not None:
        return httpx.Response(status_code, json=json, headers=headers)
    return httpx.Response(status_code, text=text or "", headers=headers)


def test_429_with_resource_exhausted_is_quota():
    resp = _response(429, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}})
    err = classify_http_error("gemini", resp)
    assert isinstance(err, QuotaExceededError)
    assert isinstance(err, DegradableProviderError)
    assert err.status_code == 429
    assert err.provider == "gemini"


def test_429_without_quota_signal_is_rate_limited():
    err = classify_http_error("gemini", _response(429, text="slow down"))
    assert isinstance(err, RateLimitedError)
    assert isinstance(err, DegradableProviderError)


def test_quota_message_on_other_status_is_quota():
    resp = _response(403, json={"error": {"status": "PERMISSION_DENIED", "message": "Daily quota reached"}})
    assert isinstance(classify_http_error("gemini", resp), QuotaExceededError)


def test_quota_word_on_bad_request_is_fatal():
    resp = _response(400, json={"error": {"status": "INVALID_ARGUMENT", "message": "Invalid quota project header"}})
    assert isinstance(classify_http_error("gemini", resp), FatalProviderError)


def test_quota_word_on_server_error_is_transient():
    resp = _response(503, json={"error": {"status": "UNAVAILABLE", "message": "quota service unavailable"}})
    assert isinstance(classify_http_error("gemini", resp), TransientProviderError)


def test_resource_exhausted_on_other_status_is_quota():
    resp = _response(400, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "exhausted"}})
    assert isinstance(classify_http_error("gemini", resp), QuotaExceededError)


def test_github_secondary_rate_limit():
    resp = _response(
        403,
        json={"message": "API rate limit exceeded"},
        headers={"x-ratelimit-remaining": "0"},
    )
    assert isinstance(classify_http_error("github", resp), RateLimitedError)


def test_server_errors_are_transient():
    err = classify_http_error("github", _response(502, text="bad gateway"))
    assert isinstance(err, TransientProviderError)
    assert not isinstance(err, DegradableProviderError)


def test_client_errors_are_fatal():
    resp = _response(404, json={"message": "Not Found"})
    err = classify_http_error("github", resp)
    assert isinstance(err, FatalProviderError)
    assert "Not Found" in str(err)


def test_raise_for_provider_status_passes_success():
    raise_for_provider_status("github", _response(200, json={}))


def test_raise_for_provider_status_raises_classified():
    with pytest.raises(TransientProviderError):
        raise_for_provider_status("github", _response(503, text="unavailable"))


def test_transport_error_is_transient():
    err = transport_error("gemini", httpx.ConnectTimeout("timed out"))
    assert isinstance(err, TransientProviderError)
    assert "ConnectTimeout" in str(err)
