"""
Generative Review Engine

Wraps one generative-model call. Quota and rate-limit failures produce a
fixed degraded message so the workflow still posts *something*; every other
failure propagates.
"""

from __future__ import annotations

import logging

from ..core.errors import DegradableProviderError
from ..llm.client import LLMClient

logger = logging.getLogger("review.engine")

DEGRADED_REVIEW_MESSAGE = "⚠️ AI review unavailable due to quota limits."


class ReviewEngine:
    def __init__(self, llm: LLMClient) -> None:
        self._llm = llm

    async def review(self, prompt: str) -> str:
        try:
            return await self._llm.generate(prompt)
        except DegradableProviderError as exc:
            logger.error("Generation quota exhausted (%s): %s", type(exc).__name__, exc)
            return DEGRADED_REVIEW_MESSAGE

    @staticmethod
    def is_degraded(text: str) -> bool:
        return text == DEGRADED_REVIEW_MESSAGE
