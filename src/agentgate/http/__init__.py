"""Outbound HTTP with bounded retries."""

from agentgate.http.executor import (
    GENERIC_ERROR_MESSAGE,
    RequestSpec,
    ResilientRequestExecutor,
    UpstreamError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
    extract_error_message,
    is_retryable_status,
)

__all__ = [
    "GENERIC_ERROR_MESSAGE",
    "RequestSpec",
    "ResilientRequestExecutor",
    "UpstreamError",
    "UpstreamRejectedError",
    "UpstreamUnavailableError",
    "extract_error_message",
    "is_retryable_status",
]
