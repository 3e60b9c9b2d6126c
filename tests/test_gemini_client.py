"""
GeminiClient request shape and failure reporting.
"""

import json

import httpx
import pytest

from matchoracle.llm.gemini_client import GeminiClient, GeminiError


def make_client(handler) -> GeminiClient:
    return GeminiClient(
        api_key="llm-key",
        model="gemini-test",
        timeout=5,
        temperature=0.2,
        max_tokens=256,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_missing_key_raises():
    client = GeminiClient(api_key="  ", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(GeminiError):
        await client.generate("hi")


@pytest.mark.asyncio
async def test_completed_request():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": '{"ok": true}'}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 4},
            "modelVersion": "gemini-test-001",
        })

    client = make_client(handler)
    result = await client.generate("prompt text")
    await client.close()

    assert result.ok
    assert result.text == '{"ok": true}'
    assert (result.tokens_in, result.tokens_out) == (12, 4)
    assert result.model_version == "gemini-test-001"

    request = seen[0]
    assert request.url.path.endswith("/gemini-test:generateContent")
    assert request.url.params["key"] == "llm-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "prompt text"
    assert body["generationConfig"] == {
        "maxOutputTokens": 256,
        "temperature": 0.2,
        "responseMimeType": "application/json",
    }


@pytest.mark.asyncio
async def test_http_error_is_reported_not_raised():
    client = make_client(lambda request: httpx.Response(500, text="overloaded"))
    result = await client.generate("prompt")
    await client.close()

    assert result.status == "ERROR"
    assert not result.ok
    assert "HTTP 500" in result.error


@pytest.mark.asyncio
async def test_timeout_is_reported():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = make_client(handler)
    result = await client.generate("prompt")
    await client.close()

    assert result.status == "TIMEOUT"


@pytest.mark.asyncio
async def test_empty_candidates_is_not_ok():
    client = make_client(lambda request: httpx.Response(200, json={"candidates": []}))
    result = await client.generate("prompt")
    await client.close()

    assert result.status == "COMPLETED"
    assert not result.ok


@pytest.mark.asyncio
async def test_non_json_body_is_reported():
    client = make_client(lambda request: httpx.Response(200, text="<html>gateway</html>"))
    result = await client.generate("prompt")
    await client.close()

    assert result.status == "ERROR"
    assert "Invalid response body" in result.error
