"""
Google Gemini API client for the qualitative analysis stages.

Used by the Trinity context engine (fatigue / lineup / style read) and
by LLMGRADE (context factors and outlier scenarios). The key comes from
the credential store per request, not from a process-wide singleton.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx

from matchoracle.config import get_settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"


@dataclass
class GeminiResult:
    """Result from a Gemini API call."""

    status: str  # COMPLETED, ERROR, TIMEOUT
    text: str
    exec_ms: int
    model_version: str
    tokens_in: int = 0
    tokens_out: int = 0
    raw_output: dict = field(default_factory=dict)
    error: Optional[str] = None
    finish_reason: Optional[str] = None  # STOP, MAX_TOKENS, SAFETY, RECITATION, OTHER

    @property
    def ok(self) -> bool:
        return self.status == "COMPLETED" and bool(self.text)


class GeminiError(Exception):
    """Error from Gemini API client setup."""

    pass


class GeminiClient:
    """Async client for Google Gemini API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = (api_key if api_key is not None else settings.GEMINI_API_KEY or "").strip()
        self.model = model or settings.GEMINI_MODEL or DEFAULT_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        self.temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_output: bool = True,
    ) -> GeminiResult:
        """
        Generate text using Gemini API.

        Args:
            prompt: The prompt to send to the model.
            max_tokens: Override default max tokens.
            temperature: Override default temperature.
            json_output: Ask the model for application/json output.

        Returns:
            GeminiResult with generated text and metadata. Transport
            problems are reported through status, not raised.

        Raises:
            GeminiError: if no API key is configured.
        """
        if not self.api_key:
            raise GeminiError("GEMINI_API_KEY not configured")

        client = await self._get_client()
        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"

        generation_config = {
            "maxOutputTokens": max_tokens or self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if json_output:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

        start_time = time.time()

        try:
            response = await client.post(url, params={"key": self.api_key}, json=payload)
            elapsed_ms = int((time.time() - start_time) * 1000)

            if response.status_code != 200:
                error_text = response.text[:500]
                logger.error(f"Gemini API error {response.status_code}: {error_text}")
                return GeminiResult(
                    status="ERROR",
                    text="",
                    exec_ms=elapsed_ms,
                    model_version=self.model,
                    error=f"HTTP {response.status_code}: {error_text}",
                )

            data = response.json()
            text, finish_reason = self._extract_text_and_reason(data)
            usage = data.get("usageMetadata", {})

            if finish_reason and finish_reason != "STOP":
                logger.warning(
                    f"Gemini finishReason={finish_reason} (tokens_out={usage.get('candidatesTokenCount', 0)}, "
                    f"text_len={len(text)})"
                )

            return GeminiResult(
                status="COMPLETED",
                text=text,
                exec_ms=elapsed_ms,
                model_version=data.get("modelVersion", self.model),
                tokens_in=usage.get("promptTokenCount", 0),
                tokens_out=usage.get("candidatesTokenCount", 0),
                raw_output=data,
                finish_reason=finish_reason,
            )

        except httpx.TimeoutException:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Gemini API timeout after {elapsed_ms}ms")
            return GeminiResult(
                status="TIMEOUT",
                text="",
                exec_ms=elapsed_ms,
                model_version=self.model,
                error="Request timed out",
            )
        except httpx.HTTPError as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Gemini transport error: {e}")
            return GeminiResult(
                status="ERROR",
                text="",
                exec_ms=elapsed_ms,
                model_version=self.model,
                error=str(e),
            )
        except ValueError as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Gemini returned a non-JSON body: {e}")
            return GeminiResult(
                status="ERROR",
                text="",
                exec_ms=elapsed_ms,
                model_version=self.model,
                error=f"Invalid response body: {e}",
            )

    def _extract_text_and_reason(self, response: dict) -> tuple[str, Optional[str]]:
        """Extract text and finishReason from Gemini response."""
        candidates = response.get("candidates", [])
        if not candidates:
            return "", None

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")

        parts = candidate.get("content", {}).get("parts", [])
        if not parts:
            return "", finish_reason

        return parts[0].get("text", ""), finish_reason


def gemini_client_factory(api_key: str) -> GeminiClient:
    """Default LLM client factory: one client per credential."""
    return GeminiClient(api_key=api_key)
