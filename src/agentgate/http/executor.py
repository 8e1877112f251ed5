"""HTTP request executor with bounded retries, timeouts, and error normalization."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx

from agentgate.backoff import next_interval

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to communicate with upstream service"


class UpstreamError(Exception):
    """Base error for failed upstream calls, safe to show to end callers."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class UpstreamRejectedError(UpstreamError):
    """Raised for non-retryable 4xx responses (anything but 429)."""

    pass


class UpstreamUnavailableError(UpstreamError):
    """Raised when retries are exhausted on transient failures."""

    pass


@dataclass
class RequestSpec:
    """An outbound HTTP request."""

    method: str
    url: str
    json: Any = None
    headers: dict[str, str] | None = None
    params: dict[str, Any] | None = None
    timeout: httpx.Timeout | float | None = None
    """Per-attempt timeout; None uses the executor default."""


def is_retryable_status(status_code: int) -> bool:
    """429 and 5xx responses are worth another attempt."""
    return status_code == 429 or 500 <= status_code <= 599


def extract_error_message(response: httpx.Response) -> str | None:
    """
    Pull a human-readable error message out of an error response body.

    Understands ``{"error": "..."}``, ``{"error": {"message": "..."}}``
    and ``{"message": "..."}``.
    """
    try:
        body = response.json()
    except (ValueError, httpx.ResponseNotRead):
        return None

    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict):
        nested = error.get("message")
        if isinstance(nested, str) and nested:
            return nested

    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return None


class ResilientRequestExecutor:
    """
    HTTP client with bounded retries and exponential backoff.

    Uses httpx for async requests. Transport failures, 429 and 5xx
    responses are retried up to ``max_retries`` times; other 4xx
    responses fail immediately. Every attempt is bounded by its own
    timeout, independent of the retry count.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(
        connect=5.0,
        read=60.0,
        write=10.0,
        pool=10.0,
    )

    def __init__(
        self,
        base_url: str | None = None,
        timeout: httpx.Timeout | None = None,
        max_retries: int = 2,
        base_delay_ms: float = 500.0,
        max_delay_ms: float = 5000.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the executor.

        Args:
            base_url: Optional base URL for all requests
            timeout: Per-attempt timeout configuration
            max_retries: Retries after the first attempt
            base_delay_ms: Backoff delay before the first retry
            max_delay_ms: Ceiling for backoff delays
            headers: Default headers for all requests
            transport: Optional httpx transport (mocking, proxies)
            sleep: Coroutine used to wait between attempts
        """
        self._base_url = base_url
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._max_retries = max(0, max_retries)
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._default_headers = headers or {}
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @property
    def max_attempts(self) -> int:
        return self._max_retries + 1

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url or "",
                timeout=self._timeout,
                headers=self._default_headers,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate the delay in seconds before retrying ``attempt``."""
        return next_interval(attempt, self._base_delay_ms, self._max_delay_ms) / 1000.0

    async def _wait_before_retry(self, spec: RequestSpec, attempt: int, reason: str) -> None:
        backoff = self._calculate_backoff(attempt)
        logger.warning(
            f"{reason} on {spec.method} {spec.url}. "
            f"Retrying in {backoff:.2f}s (attempt {attempt + 1}/{self.max_attempts})"
        )
        await self._sleep(backoff)

    def _build_request(self, client: httpx.AsyncClient, spec: RequestSpec) -> httpx.Request:
        kwargs: dict[str, Any] = {}
        if spec.timeout is not None:
            kwargs["timeout"] = spec.timeout
        return client.build_request(
            spec.method,
            spec.url,
            json=spec.json,
            headers=spec.headers,
            params=spec.params,
            **kwargs,
        )

    def _rejected(self, response: httpx.Response) -> UpstreamRejectedError:
        message = extract_error_message(response) or (
            f"Upstream rejected the request (status {response.status_code})"
        )
        return UpstreamRejectedError(message, status_code=response.status_code)

    async def _send(self, spec: RequestSpec, stream: bool) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Returns the first non-retryable successful response. For
        ``stream=True`` the returned response is open and must be closed
        by the caller.

        Raises:
            UpstreamRejectedError: For non-retryable 4xx responses
            UpstreamUnavailableError: When all attempts fail
        """
        client = await self._get_client()
        last_exception: Exception | None = None
        last_message: str | None = None
        last_status: int | None = None

        for attempt in range(self.max_attempts):
            try:
                response = await client.send(self._build_request(client, spec), stream=stream)
            except httpx.TransportError as e:
                last_exception = e
                last_message = str(e) or None
                last_status = None
                if attempt < self._max_retries:
                    await self._wait_before_retry(spec, attempt, type(e).__name__)
                    continue
                break

            status = response.status_code
            if status < 400:
                return response

            if stream:
                await response.aread()
                await response.aclose()

            if not is_retryable_status(status):
                logger.info(f"Upstream rejected {spec.method} {spec.url} with {status}")
                raise self._rejected(response)

            last_exception = None
            last_message = extract_error_message(response)
            last_status = status
            if attempt < self._max_retries:
                reason = "Rate limited" if status == 429 else f"Server error {status}"
                await self._wait_before_retry(spec, attempt, reason)
                continue
            break

        message = last_message or GENERIC_ERROR_MESSAGE
        logger.error(
            f"Giving up on {spec.method} {spec.url} after {self.max_attempts} attempts: {message}"
        )
        raise UpstreamUnavailableError(message, status_code=last_status) from last_exception

    async def execute(self, spec: RequestSpec) -> httpx.Response:
        """
        Execute a request with retry logic.

        Args:
            spec: Request to send

        Returns:
            httpx.Response with a status below 400

        Raises:
            UpstreamRejectedError: For non-retryable 4xx responses
            UpstreamUnavailableError: When retries are exhausted
        """
        return await self._send(spec, stream=False)

    @asynccontextmanager
    async def stream(self, spec: RequestSpec) -> AsyncIterator[httpx.Response]:
        """
        Open a streamed response with the same retry policy.

        Retries only cover opening the stream; once the body starts
        flowing, errors propagate to the caller.
        """
        response = await self._send(spec, stream=True)
        try:
            yield response
        finally:
            await response.aclose()

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request."""
        return await self.execute(RequestSpec(method="GET", url=url, **kwargs))

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a POST request."""
        return await self.execute(RequestSpec(method="POST", url=url, **kwargs))

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP client closed")

    async def __aenter__(self) -> "ResilientRequestExecutor":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
