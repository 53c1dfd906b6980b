from typing import Any, Dict, Optional
import logging

import httpx

from ..config import settings
from ..core.errors import FatalProviderError, raise_for_provider_status, transport_error

logger = logging.getLogger("review.llm")

PROVIDER = "gemini"


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.gemini_api_key.get_secret_value()
        self.model = model or settings.generation_model
        self.base_url = (base_url or str(settings.gemini_api_base_url)).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def generate(self, prompt: str, temperature: float = 0.2) -> str:
        """
        Single-shot text completion. Returns the concatenated text parts of the
        first candidate, e.g. from:
        {
            "candidates": [
                {"content": {"parts": [{"text": "..."}]}}
            ]
        }

        Raises the provider error taxonomy on failure.
        """
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature},
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}/models/{self.model}:generateContent",
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
            except httpx.TransportError as exc:
                raise transport_error(PROVIDER, exc) from exc

        raise_for_provider_status(PROVIDER, resp)
        data = resp.json()

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise FatalProviderError(
                f"Malformed generation response: {type(exc).__name__}", PROVIDER
            ) from exc

        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text:
            raise FatalProviderError("Generation response contained no text.", PROVIDER)
        return text
