"""LLM provider access: options handling and provider clients."""

from agentgate.llm.client import (
    AnthropicClient,
    LLMClient,
    create_llm_client,
    iter_sse_data,
)
from agentgate.llm.options import (
    AgentOptions,
    ResolvedOptions,
    merge_with_default_options,
)

__all__ = [
    "AgentOptions",
    "AnthropicClient",
    "LLMClient",
    "ResolvedOptions",
    "create_llm_client",
    "iter_sse_data",
    "merge_with_default_options",
]
