"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator

import pytest

from agentgate.config import Settings
from agentgate.llm import LLMClient, ResolvedOptions
from agentgate.store import InMemoryCounterStore


class FakeClock:
    """Manually advanced clock shared by the store and the limiter."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLMClient(LLMClient):
    """
    LLM client returning canned chunks, or raising a given error.

    With ``fail_after`` set, ``stream`` yields that many chunks before
    raising ``error``.
    """

    def __init__(
        self,
        chunks: list[str] | None = None,
        error: Exception | None = None,
        fail_after: int = 0,
    ) -> None:
        self.chunks = chunks if chunks is not None else ["Hello", " world"]
        self.error = error
        self.fail_after = fail_after
        self.calls: list[tuple[str, ResolvedOptions]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def complete(self, prompt: str, options: ResolvedOptions) -> str:
        self.calls.append((prompt, options))
        if self.error:
            raise self.error
        return "".join(self.chunks)

    async def stream(self, prompt: str, options: ResolvedOptions) -> AsyncIterator[str]:
        self.calls.append((prompt, options))
        for index, chunk in enumerate(self.chunks):
            if self.error and index >= self.fail_after:
                raise self.error
            yield chunk
        if self.error:
            raise self.error

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryCounterStore:
    """Create an in-memory store driven by the fake clock."""
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment's limits and keys."""
    return Settings(
        rate_limit=3,
        rate_limit_window_seconds=60,
        store_backend="memory",
        anthropic_api_key=None,
        backend_health_url="http://backend.test/health",
        llm_default_model="test-model",
        llm_default_max_tokens=256,
        llm_default_temperature=0.5,
    )


@pytest.fixture
def fake_llm():
    """Factory for fake LLM clients."""
    return FakeLLMClient
