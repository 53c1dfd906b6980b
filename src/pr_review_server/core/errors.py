"""
Error Taxonomy & Global Error Handling

This module defines the typed error taxonomy used at every provider-client
boundary (embedding model, generative model, source host) plus the
application-wide FastAPI exception handler.

Design Goals
------------
- Classify provider failures by status code and structured error status,
  never by sniffing arbitrary exception messages
- Make "degrade and continue" failures distinguishable by type
- Never leak internal exception details to HTTP clients
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("review.errors")


# ---------------------------------------------------------------------
# Provider Error Taxonomy
# ---------------------------------------------------------------------

class ProviderError(RuntimeError):
    """Base class for failures reported by an external provider."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class DegradableProviderError(ProviderError):
    """
    A provider failure that callers may replace with a placeholder result.

    Covers quota exhaustion and rate limiting: retrying immediately will not
    help, but the surrounding pipeline can still produce useful output.
    """


class QuotaExceededError(DegradableProviderError):
    """The provider reports that the account quota is exhausted."""


class RateLimitedError(DegradableProviderError):
    """The provider throttled the request (HTTP 429 without quota status)."""


class TransientProviderError(ProviderError):
    """Server-side or transport failure that may succeed on retry."""


class FatalProviderError(ProviderError):
    """Client-side failure (bad request, auth, malformed payload). Not retried."""


# ---------------------------------------------------------------------
# Configuration Errors
# ---------------------------------------------------------------------

class ConfigurationError(RuntimeError):
    """Raised when a workflow cannot proceed due to missing setup. Never retried."""


class MissingCredentialError(ConfigurationError):
    """No provider credential is stored for the requesting user."""


class RepositoryNotFoundError(ConfigurationError):
    """The repository is not connected."""


# ---------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------

_QUOTA_STATUSES = {"RESOURCE_EXHAUSTED"}


def _error_details(response: httpx.Response) -> tuple[Optional[str], str]:
    """
    Extract (structured_status, message) from a provider error body.

    Google APIs return ``{"error": {"status": "...", "message": "..."}}``;
    GitHub returns ``{"message": "..."}``. Non-JSON bodies yield the raw text.
    """
    try:
        body = response.json()
    except ValueError:
        return None, response.text[:500]

    if not isinstance(body, dict):
        return None, str(body)[:500]

    error = body.get("error")
    if isinstance(error, dict):
        return error.get("status"), str(error.get("message", ""))

    return None, str(body.get("message", ""))


def classify_http_error(provider: str, response: httpx.Response) -> ProviderError:
    """
    Map a non-success provider response onto the error taxonomy.

    Parameters
    ----------
    provider : str
        Short provider name used in logs and error attributes.

    response : httpx.Response
        The failed response.

    Returns
    -------
    ProviderError
        An instance of the most specific taxonomy class.
    """
    status_code = response.status_code
    structured_status, message = _error_details(response)
    text = f"{provider} request failed with HTTP {status_code}: {message}".strip()

    quota_signal = structured_status in _QUOTA_STATUSES
    # Free-text quota mentions only count on statuses that mean "limit reached"
    if status_code in (429, 403) and "quota" in message.lower():
        quota_signal = True

    if status_code == 429:
        if quota_signal:
            return QuotaExceededError(text, provider, status_code)
        return RateLimitedError(text, provider, status_code)

    # GitHub signals secondary rate limits with 403 + remaining=0
    if status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0":
        return RateLimitedError(text, provider, status_code)

    if quota_signal:
        return QuotaExceededError(text, provider, status_code)

    if status_code >= 500:
        return TransientProviderError(text, provider, status_code)

    return FatalProviderError(text, provider, status_code)


def raise_for_provider_status(provider: str, response: httpx.Response) -> None:
    """Raise the classified ProviderError if ``response`` is not a success."""
    if response.is_success:
        return
    raise classify_http_error(provider, response)


def transport_error(provider: str, exc: httpx.TransportError) -> TransientProviderError:
    """Wrap an httpx transport failure (timeout, connection reset) as transient."""
    return TransientProviderError(
        f"{provider} transport failure: {type(exc).__name__}: {exc}",
        provider,
    )


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full exception stack trace and returns a generic 500 error with
    no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
