"""Request options for LLM calls."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

from agentgate.config import Settings

MIN_TOKENS = 1
MAX_TOKENS = 4096


class AgentOptions(BaseModel):
    """Caller-supplied generation options (all optional, no type coercion)."""

    model_config = ConfigDict(extra="forbid")

    model: StrictStr | None = None
    max_tokens: StrictInt | None = Field(default=None, gt=0, le=MAX_TOKENS)
    temperature: StrictFloat | None = Field(default=None, ge=0.0, le=1.0)


@dataclass(frozen=True)
class ResolvedOptions:
    """Options with every value filled in."""

    model: str
    max_tokens: int
    temperature: float


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def merge_with_default_options(
    options: AgentOptions | None,
    settings: Settings,
) -> ResolvedOptions:
    """
    Fill unset options from settings and clamp them to provider limits.

    max_tokens is clamped to 1..4096 and temperature to 0..1, so
    defaults coming from the environment are also kept in range.
    """
    options = options or AgentOptions()

    max_tokens = options.max_tokens
    if max_tokens is None:
        max_tokens = settings.llm_default_max_tokens

    temperature = options.temperature
    if temperature is None:
        temperature = settings.llm_default_temperature

    return ResolvedOptions(
        model=options.model or settings.llm_default_model,
        max_tokens=int(_clamp(max_tokens, MIN_TOKENS, MAX_TOKENS)),
        temperature=float(_clamp(temperature, 0.0, 1.0)),
    )
