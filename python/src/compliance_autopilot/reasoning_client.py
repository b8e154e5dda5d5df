"""
Reasoning service client for compliance analysis.

Wraps an OpenAI-compatible chat completions endpoint (OpenRouter by
default) and translates provider failures into the package's error
taxonomy so the request gate can decide what to retry.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import openai
import tiktoken
from openai import AsyncOpenAI

from .config import AnalyzerConfig
from .errors import (
    AuthError,
    MalformedResponse,
    ProviderError,
    RateLimitExceeded,
    TransientProviderError,
)


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a compliance auditor reviewing source code. "
    "Respond with a single JSON object and nothing else."
)

# Statuses worth retrying: timeouts, conflicts and server-side failures
_TRANSIENT_STATUS_CODES = {408, 409, 500, 502, 503, 504, 529}


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Completion:
    """Raw text returned by the reasoning service plus token usage."""
    text: str
    usage: Usage


class ReasoningBackend(Protocol):
    """Anything that turns a rendered prompt into a completion."""

    async def complete(self, prompt: str) -> Completion:
        ...


def _retry_after_seconds(error: openai.APIStatusError) -> float | None:
    headers = getattr(error.response, "headers", None) or {}
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def classify_error(error: BaseException) -> BaseException:
    """
    Map an openai/httpx exception onto the error taxonomy.

    Errors that are already classified, and errors this function does not
    recognise, are returned unchanged.
    """
    if isinstance(error, ProviderError):
        return error

    if isinstance(error, openai.RateLimitError):
        return RateLimitExceeded(
            f"Reasoning service rate limit: {error}",
            retry_after=_retry_after_seconds(error),
            cause=error,
        )
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthError(f"Reasoning service rejected credentials: {error}", cause=error)
    if isinstance(error, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientProviderError(f"Network error talking to reasoning service: {error}", cause=error)
    if isinstance(error, openai.APIStatusError):
        if error.status_code in _TRANSIENT_STATUS_CODES or error.status_code >= 500:
            return TransientProviderError(
                f"Reasoning service unavailable ({error.status_code}): {error}",
                context={"status_code": error.status_code},
                cause=error,
            )
        return MalformedResponse(
            f"Reasoning service rejected the request ({error.status_code}): {error}",
            context={"status_code": error.status_code},
            cause=error,
        )
    if isinstance(error, (asyncio.TimeoutError, httpx.TransportError)):
        return TransientProviderError(f"Network error talking to reasoning service: {error}", cause=error)
    return error


class ReasoningClient:
    """
    Async client for the external reasoning service.

    Features:
    - AsyncOpenAI with a pooled httpx client
    - Provider errors classified for the retry policy
    - Token usage from the provider, estimated with tiktoken when absent
    """

    def __init__(
        self,
        config: AnalyzerConfig | None = None,
        openai_client: Any | None = None,
    ):
        self.config = config or AnalyzerConfig()
        self._http_client: httpx.AsyncClient | None = None

        if openai_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
            # Retries belong to the request gate, not the SDK
            self.client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base_url,
                http_client=self._http_client,
                max_retries=0,
            )
        else:
            self.client = openai_client

        self._encoder: tiktoken.Encoding | None = None

    @property
    def encoder(self) -> tiktoken.Encoding:
        """Lazy-load tiktoken encoder."""
        if self._encoder is None:
            self._encoder = tiktoken.get_encoding("cl100k_base")
        return self._encoder

    def count_tokens(self, text: str) -> int:
        """Count tokens in text."""
        if not text:
            return 0
        return len(self.encoder.encode(text))

    async def complete(self, prompt: str) -> Completion:
        """
        Send one prompt and return the completion text with usage.

        Raises:
            RateLimitExceeded, TransientProviderError: retryable failures
            AuthError: bad credentials
            MalformedResponse: rejected request or empty completion
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                max_tokens=self.config.max_output_tokens,
                temperature=self.config.temperature,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except Exception as e:
            classified = classify_error(e)
            if classified is e:
                raise
            logger.debug("Reasoning service call failed: %s", classified)
            raise classified from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        if not text.strip():
            raise MalformedResponse("Reasoning service returned an empty completion")

        usage = getattr(response, "usage", None)
        if usage is not None:
            input_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
            output_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        else:
            input_tokens = self.count_tokens(SYSTEM_PROMPT) + self.count_tokens(prompt)
            output_tokens = self.count_tokens(text)

        return Completion(text=text, usage=Usage(input_tokens, output_tokens))

    async def aclose(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._http_client is not None:
            await self._http_client.aclose()


def create_reasoning_client(config: AnalyzerConfig) -> ReasoningClient:
    """Factory function to create a ReasoningClient."""
    return ReasoningClient(config)
