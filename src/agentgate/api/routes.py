"""API routes: rate-limited agent endpoints and backend status."""

import logging
from typing import Any, AsyncIterator

import httpx
from fastapi import APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from agentgate.availability import AvailabilityMonitor
from agentgate.http.executor import (
    UpstreamError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from agentgate.llm import AgentOptions, LLMClient, merge_with_default_options
from agentgate.ratelimit import (
    FixedWindowRateLimiter,
    RateLimitDecision,
    get_client_identity,
)

logger = logging.getLogger(__name__)
router = APIRouter()

GENERIC_ERROR = "An error occurred while processing your request"


class AgentRequest(BaseModel):
    """Body of an agent request."""

    model_config = ConfigDict(extra="forbid")

    prompt: StrictStr = Field(min_length=1)
    options: AgentOptions | None = None


# --- Helpers ---


def _error_response(
    status_code: int,
    error: str,
    message: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": error}
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _upstream_error_response(
    error: Exception,
    decision: RateLimitDecision,
) -> JSONResponse:
    """Map an LLM call failure to a client-safe response."""
    headers = decision.headers()
    if isinstance(error, UpstreamRejectedError):
        return _error_response(
            502, "Request rejected by upstream service", error.message, headers
        )
    if isinstance(error, UpstreamUnavailableError):
        return _error_response(503, "Service unavailable", error.message, headers)

    logger.exception("Unexpected error processing agent request")
    return _error_response(500, GENERIC_ERROR, headers=headers)


async def _check_rate_limit(request: Request) -> RateLimitDecision:
    limiter: FixedWindowRateLimiter = request.app.state.limiter
    identity = get_client_identity(request)
    return await limiter.check_rate_limit(identity)


async def _parse_agent_request(request: Request) -> AgentRequest:
    """
    Parse and validate the JSON body.

    Raises:
        RequestValidationError: If the body is not valid JSON or fails
            validation
    """
    try:
        body = await request.json()
    except ValueError:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "Invalid JSON", "input": None}]
        )

    try:
        return AgentRequest.model_validate(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


def _is_json(request: Request) -> bool:
    return "application/json" in request.headers.get("content-type", "")


# --- Agent Endpoints ---


@router.post("/agent")
async def agent_stream(request: Request):
    """
    Stream a model response as plain text chunks.

    The rate limit is counted before the body is validated, so
    malformed requests also consume quota.
    """
    decision = await _check_rate_limit(request)
    if not decision.allowed:
        return _error_response(429, "Rate limit exceeded", headers=decision.headers())

    if not _is_json(request):
        return _error_response(415, "Content-Type must be application/json")

    agent_request = await _parse_agent_request(request)
    options = merge_with_default_options(agent_request.options, request.app.state.settings)
    llm: LLMClient = request.app.state.llm_client

    chunks = llm.stream(agent_request.prompt, options)
    try:
        # Pull the first chunk so provider errors still get a proper status
        first_chunk = await anext(chunks, None)
    except Exception as e:
        await chunks.aclose()
        return _upstream_error_response(e, decision)

    async def body() -> AsyncIterator[str]:
        try:
            if first_chunk is not None:
                yield first_chunk
            async for chunk in chunks:
                yield chunk
        except (UpstreamError, httpx.HTTPError) as e:
            # Headers are already sent; abort the chunked transfer
            logger.error(f"Agent stream interrupted: {e}")
            raise
        finally:
            await chunks.aclose()

    headers = {
        "X-Content-Type-Options": "nosniff",
        **decision.headers(),
    }
    return StreamingResponse(
        body(),
        media_type="text/plain; charset=utf-8",
        headers=headers,
    )


@router.post("/agent/complete")
async def agent_complete(request: Request):
    """Return a full model response as JSON."""
    decision = await _check_rate_limit(request)
    if not decision.allowed:
        return _error_response(429, "Rate limit exceeded", headers=decision.headers())

    if not _is_json(request):
        return _error_response(415, "Content-Type must be application/json")

    agent_request = await _parse_agent_request(request)
    options = merge_with_default_options(agent_request.options, request.app.state.settings)
    llm: LLMClient = request.app.state.llm_client

    try:
        text = await llm.complete(agent_request.prompt, options)
    except Exception as e:
        return _upstream_error_response(e, decision)

    return JSONResponse(
        content={
            "success": True,
            "data": {"text": text, "model": options.model},
        },
        headers=decision.headers(),
    )


# --- Status Endpoints ---


@router.get("/status")
async def backend_status(request: Request):
    """Current availability of the backend service and limiter settings."""
    monitor: AvailabilityMonitor = request.app.state.monitor
    limiter: FixedWindowRateLimiter = request.app.state.limiter
    return {
        "backend": monitor.state.to_dict(),
        "rate_limit": {
            "limit": limiter.limit,
            "window_seconds": limiter.window_seconds,
            "store": request.app.state.counter_store.name,
        },
    }


@router.post("/status/check")
async def recheck_backend(request: Request):
    """Probe the backend now (joins a probe already in flight)."""
    monitor: AvailabilityMonitor = request.app.state.monitor
    state = await monitor.check_now()
    return {"backend": state.to_dict()}
