"""
Rate limiting module for the LLM endpoint.

Provides a fixed-window limiter over a shared counter store and
client identity extraction for per-IP limits.
"""

from agentgate.ratelimit.identity import UNKNOWN_IDENTITY, get_client_identity
from agentgate.ratelimit.limiter import FixedWindowRateLimiter, RateLimitDecision

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "UNKNOWN_IDENTITY",
    "get_client_identity",
]
