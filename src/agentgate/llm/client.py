"""LLM provider clients."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx

from agentgate.config import ConfigurationError, Settings
from agentgate.http.executor import (
    RequestSpec,
    ResilientRequestExecutor,
    UpstreamUnavailableError,
)
from agentgate.llm.options import ResolvedOptions

logger = logging.getLogger(__name__)


class LLMClient(ABC):
    """
    Abstract LLM provider.

    Implement this class to plug in another provider; the API layer
    depends only on this interface.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'anthropic')."""
        ...

    @abstractmethod
    async def complete(self, prompt: str, options: ResolvedOptions) -> str:
        """
        Generate a full response for a single-turn prompt.

        Args:
            prompt: User prompt
            options: Resolved generation options

        Returns:
            Generated text
        """
        ...

    @abstractmethod
    def stream(self, prompt: str, options: ResolvedOptions) -> AsyncIterator[str]:
        """
        Stream a response as text chunks.

        Args:
            prompt: User prompt
            options: Resolved generation options

        Yields:
            Text chunks in order
        """
        ...

    async def close(self) -> None:
        """Release provider resources."""
        return None


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded JSON payloads from ``data:`` lines of an SSE body."""
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if not payload or payload == "[DONE]":
            continue
        try:
            yield json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed stream event: {payload[:80]}")


class AnthropicClient(LLMClient):
    """
    Client for the Anthropic Messages API.

    Requests go through a ResilientRequestExecutor, so transient
    provider failures are retried before any text is produced.
    """

    MESSAGES_PATH = "/v1/messages"

    def __init__(
        self,
        api_key: str,
        executor: ResilientRequestExecutor | None = None,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
    ) -> None:
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key
            executor: Executor for outbound calls (created if None)
            base_url: API base URL
            api_version: Value of the anthropic-version header
        """
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")

        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": api_version,
            "content-type": "application/json",
        }
        self._executor = executor or ResilientRequestExecutor(base_url=base_url)

    @property
    def name(self) -> str:
        return "anthropic"

    def _request(self, prompt: str, options: ResolvedOptions, stream: bool) -> RequestSpec:
        return RequestSpec(
            method="POST",
            url=self.MESSAGES_PATH,
            headers=self._headers,
            json={
                "model": options.model,
                "max_tokens": options.max_tokens,
                "temperature": options.temperature,
                "messages": [{"role": "user", "content": prompt}],
                "stream": stream,
            },
        )

    async def complete(self, prompt: str, options: ResolvedOptions) -> str:
        """Generate a full response."""
        response = await self._executor.execute(self._request(prompt, options, stream=False))
        data = response.json()
        return "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )

    async def stream(self, prompt: str, options: ResolvedOptions) -> AsyncIterator[str]:
        """Stream text deltas from the provider."""
        spec = self._request(prompt, options, stream=True)
        async with self._executor.stream(spec) as response:
            async for event in iter_sse_data(response):
                event_type = event.get("type")
                if event_type == "content_block_delta":
                    delta = event.get("delta", {})
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield delta["text"]
                elif event_type == "error":
                    error = event.get("error") or {}
                    raise UpstreamUnavailableError(
                        error.get("message") or "Provider stream failed"
                    )
                elif event_type == "message_stop":
                    break

    async def close(self) -> None:
        await self._executor.close()


def create_llm_client(settings: Settings) -> LLMClient:
    """
    Create the LLM client from settings.

    Raises:
        ConfigurationError: If no API key is configured
    """
    if not settings.anthropic_api_key:
        raise ConfigurationError(
            "ANTHROPIC_API_KEY environment variable is not set"
        )

    executor = ResilientRequestExecutor(
        base_url=settings.anthropic_base_url,
        timeout=httpx.Timeout(
            connect=settings.http_timeout_connect,
            read=settings.http_timeout_read,
            write=10.0,
            pool=10.0,
        ),
        max_retries=settings.http_max_retries,
        base_delay_ms=settings.http_backoff_base_ms,
        max_delay_ms=settings.http_backoff_max_ms,
    )
    return AnthropicClient(
        api_key=settings.anthropic_api_key,
        executor=executor,
        api_version=settings.anthropic_version,
    )
