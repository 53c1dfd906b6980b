from unittest.mock import AsyncMock

import httpx
import pytest

from pr_review_server.core.errors import (
    FatalProviderError,
    QuotaExceededError,
    RateLimitedError,
    TransientProviderError,
)
from pr_review_server.llm.client import LLMClient
from pr_review_server.review.engine import DEGRADED_REVIEW_MESSAGE, ReviewEngine
from pr_review_server.review.prompts import (
    NO_CONTEXT,
    NO_DESCRIPTION,
    build_review_prompt,
    build_review_query,
)


# ---------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------

def test_prompt_uses_placeholders_when_inputs_missing():
    prompt = build_review_prompt(title="Add login", description=None, context=[], diff="+x")

    assert "PR Title: Add login" in prompt
    assert f"PR Description: {NO_DESCRIPTION}" in prompt
    assert NO_CONTEXT in prompt
    assert "```diff\n+x\n```" in prompt


def test_prompt_orders_sections():
    prompt = build_review_prompt(
        title="Add login",
        description="Adds a login form",
        context=["File: a.py\n\nA", "File: b.py\n\nB"],
        diff="+login()",
    )

    positions = [
        prompt.index("Add login"),
        prompt.index("Adds a login form"),
        prompt.index("File: a.py\n\nA\n\nFile: b.py\n\nB"),
        prompt.index("+login()"),
    ]
    assert positions == sorted(positions)
    assert NO_CONTEXT not in prompt
    assert NO_DESCRIPTION not in prompt


def test_blank_description_uses_placeholder():
    prompt = build_review_prompt(title="T", description="   ", context=["c"], diff="d")
    assert f"PR Description: {NO_DESCRIPTION}" in prompt


def test_review_query_combines_title_and_description():
    assert build_review_query("Add login", "Adds a form") == "Add login\nAdds a form"
    assert build_review_query("Add login", None) == "Add login"


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_engine_returns_generated_text():
    llm = AsyncMock(spec=LLMClient)
    llm.generate.return_value = "## Walkthrough\nLooks good."

    assert await ReviewEngine(llm).review("prompt") == "## Walkthrough\nLooks good."


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [QuotaExceededError("quota", "gemini", 429), RateLimitedError("slow", "gemini", 429)])
async def test_engine_degrades_on_quota(exc):
    llm = AsyncMock(spec=LLMClient)
    llm.generate.side_effect = exc

    text = await ReviewEngine(llm).review("prompt")

    assert text == DEGRADED_REVIEW_MESSAGE
    assert ReviewEngine.is_degraded(text)


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [TransientProviderError("down", "gemini", 503), FatalProviderError("bad", "gemini", 400)])
async def test_engine_propagates_other_failures(exc):
    llm = AsyncMock(spec=LLMClient)
    llm.generate.side_effect = exc

    with pytest.raises(type(exc)):
        await ReviewEngine(llm).review("prompt")


# ---------------------------------------------------------------------
# LLM client
# ---------------------------------------------------------------------

def _client(handler):
    return LLMClient(
        api_key="test-key",
        model="gemini-2.5-flash",
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_llm_client_joins_text_parts():
    def handler(request):
        assert request.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "test-key"
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}]},
        )

    assert await _client(handler).generate("prompt") == "Hello world"


@pytest.mark.asyncio
async def test_llm_client_quota_error():
    def handler(request):
        return httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "quota"}})

    with pytest.raises(QuotaExceededError):
        await _client(handler).generate("prompt")


@pytest.mark.asyncio
async def test_llm_client_rejects_empty_candidates():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(FatalProviderError):
        await _client(handler).generate("prompt")
