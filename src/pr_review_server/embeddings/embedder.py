"""
Embedding Client

This module implements the embedding client used by both indexing and
retrieval. It calls the Gemini `embedContent` endpoint and is responsible for:

- Truncating input to the model's safe character budget
- Short-circuiting blank input without a remote call
- Classifying provider failures into the error taxonomy
- Degrading quota / rate-limit failures to an empty vector

Callers MUST treat an empty vector as "no embedding available" and skip
dependent work. Every other failure propagates.

The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

from typing import List, Optional
import logging
import httpx

from ..config import settings
from ..core.errors import (
    DegradableProviderError,
    FatalProviderError,
    raise_for_provider_status,
    transport_error,
)
from .models import truncate_text

logger = logging.getLogger("review.embedder")

PROVIDER = "gemini-embedding"


class EmbeddingError(FatalProviderError):
    """Raised when the embedding response is malformed."""


class Embedder:
    """
    Asynchronous single-text embedding generator.

    This class performs no caching; deduplication is the indexing layer's job.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        char_budget: Optional[int] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the API key. Defaults to settings.gemini_api_key.

        model : Optional[str]
            Optional override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            API root. Defaults to settings.gemini_api_base_url.

        char_budget : Optional[int]
            Maximum characters submitted per call. Defaults to settings.embedding_char_budget.

        timeout : float
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport (tests inject httpx.MockTransport).
        """
        self.api_key = api_key or settings.gemini_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = (base_url or str(settings.gemini_api_base_url)).rstrip("/")
        self.char_budget = char_budget or settings.embedding_char_budget
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for one text.

        Returns
        -------
        List[float]
            The embedding, or an empty list when the input is blank or the
            provider reported quota exhaustion / rate limiting.

        Raises
        ------
        ProviderError
            Any non-degradable provider failure.
        """
        if not text or not text.strip():
            return []

        try:
            return await self._request_embedding(truncate_text(text, self.char_budget))
        except DegradableProviderError as exc:
            logger.warning(
                "Embedding skipped (%s): %s",
                type(exc).__name__,
                exc,
            )
            return []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request_embedding(self, text: str) -> List[float]:
        url = f"{self.base_url}/models/{self.model}:embedContent"
        payload = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }
        headers = {"x-goog-api-key": self.api_key}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.TransportError as exc:
                logger.error("Embedding request failed: %s", exc)
                raise transport_error(PROVIDER, exc) from exc

        raise_for_provider_status(PROVIDER, response)
        return self._extract_embedding(response.json())

    @staticmethod
    def _extract_embedding(data: dict) -> List[float]:
        """
        Parse and validate embedding output format.

        Gemini returns:
            { "embedding": { "values": [...] } }

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure.
        """
        record = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(record, dict) or "values" not in record:
            raise EmbeddingError("Embedding response missing 'embedding.values'.", PROVIDER)

        values = record["values"]
        if not isinstance(values, list) or not all(
            isinstance(x, (float, int)) for x in values
        ):
            raise EmbeddingError("Invalid embedding vector: must be a float list.", PROVIDER)

        return [float(x) for x in values]
