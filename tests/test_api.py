"""Tests for API endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from agentgate.api.app import create_app
from agentgate.availability import AvailabilityMonitor, ProbeError
from agentgate.config import ConfigurationError
from agentgate.http import UpstreamRejectedError, UpstreamUnavailableError
from agentgate.store import InMemoryCounterStore


class BackendProbe:
    """Probe whose health can be flipped by the test."""

    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1
        if not self.healthy:
            raise ProbeError("Health check returned status 503")


def build_client(test_settings, llm, probe=None) -> TestClient:
    monitor = AvailabilityMonitor(
        url=test_settings.backend_health_url,
        base_interval=60,
        max_interval=300,
        probe=probe or BackendProbe(),
    )
    app = create_app(
        settings=test_settings,
        counter_store=InMemoryCounterStore(),
        llm_client=llm,
        monitor=monitor,
    )
    return TestClient(app)


@pytest.fixture
def llm(fake_llm):
    """Create a fake LLM client."""
    return fake_llm()


@pytest.fixture
def client(test_settings, llm):
    """Create test client with injected dependencies."""
    with build_client(test_settings, llm=llm) as test_client:
        yield test_client


def flatten_exceptions(error: BaseException) -> list[BaseException]:
    """Unwrap exception groups raised through anyio task groups."""
    nested = getattr(error, "exceptions", None)
    if not nested:
        return [error]
    return [leaf for inner in nested for leaf in flatten_exceptions(inner)]


def agent_post(client: TestClient, path: str = "/v1/agent", ip: str = "198.51.100.1", **kwargs):
    kwargs.setdefault("json", {"prompt": "Hello"})
    return client.post(path, headers={"X-Forwarded-For": ip}, **kwargs)


class TestHealthCheck:
    """Tests for health check endpoint."""

    def test_health_check(self, client: TestClient) -> None:
        """Test health check returns healthy."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["store"] == "memory"


class TestRootEndpoint:
    """Tests for root endpoint."""

    def test_root(self, client: TestClient) -> None:
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "agentgate"


class TestAgentStream:
    """Tests for the streaming agent endpoint."""

    def test_streams_text(self, client: TestClient) -> None:
        """Test chunks are streamed as plain text with limit headers."""
        response = agent_post(client)

        assert response.status_code == 200
        assert response.text == "Hello world"
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-ratelimit-limit"] == "3"
        assert response.headers["x-ratelimit-remaining"] == "2"
        assert int(response.headers["x-ratelimit-reset"]) > 0

    def test_options_resolved(self, client: TestClient, llm) -> None:
        """Test request options are merged with defaults."""
        agent_post(client, json={"prompt": "Hi", "options": {"max_tokens": 50}})

        prompt, options = llm.calls[-1]
        assert prompt == "Hi"
        assert options.max_tokens == 50
        assert options.model == "test-model"
        assert options.temperature == 0.5

    def test_rate_limited_after_limit(self, client: TestClient) -> None:
        """Test the request after the limit gets 429 with headers."""
        for _ in range(3):
            assert agent_post(client).status_code == 200

        response = agent_post(client)

        assert response.status_code == 429
        assert response.json()["error"] == "Rate limit exceeded"
        assert response.headers["x-ratelimit-remaining"] == "0"
        assert "x-ratelimit-reset" in response.headers

    def test_rate_limit_per_client(self, client: TestClient) -> None:
        """Test each client address has its own window."""
        for _ in range(4):
            agent_post(client, ip="198.51.100.1")

        response = agent_post(client, ip="198.51.100.2")
        assert response.status_code == 200
        assert response.headers["x-ratelimit-remaining"] == "2"

    def test_limit_shared_across_endpoints(self, client: TestClient) -> None:
        """Test streaming and complete requests draw on one window."""
        agent_post(client)
        agent_post(client, path="/v1/agent/complete")
        response = agent_post(client)

        assert response.headers["x-ratelimit-remaining"] == "0"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"prompt": ""},
            {"prompt": 42},
            {"prompt": "Hi", "extra": True},
            {"prompt": "Hi", "options": {"temperature": 2}},
            {"prompt": "Hi", "options": {"max_tokens": 0}},
            {"prompt": "Hi", "options": {"max_tokens": "100"}},
            {"prompt": "Hi", "options": {"max_tokens": 100.0}},
            {"prompt": "Hi", "options": {"temperature": "0.5"}},
            {"prompt": "Hi", "options": {"model": 7}},
        ],
    )
    def test_invalid_body(self, client: TestClient, body) -> None:
        """Test invalid bodies are rejected with 400."""
        response = agent_post(client, json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Invalid request body"
        assert data["details"]

    def test_malformed_json(self, client: TestClient) -> None:
        """Test a body that is not JSON is rejected with 400."""
        response = client.post(
            "/v1/agent",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_wrong_content_type(self, client: TestClient) -> None:
        """Test non-JSON content types are rejected with 415."""
        response = client.post(
            "/v1/agent",
            content=b"prompt=hi",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == 415

    def test_invalid_requests_consume_quota(self, client: TestClient) -> None:
        """Test rejected bodies still count against the limit."""
        for _ in range(3):
            agent_post(client, json={"prompt": ""})

        assert agent_post(client).status_code == 429

    def test_upstream_rejected(self, test_settings, fake_llm) -> None:
        """Test a provider rejection maps to 502."""
        llm = fake_llm(error=UpstreamRejectedError("model not found", status_code=404))
        with build_client(test_settings, llm=llm) as client:
            response = agent_post(client)

        assert response.status_code == 502
        assert response.json()["message"] == "model not found"
        assert response.headers["x-ratelimit-limit"] == "3"

    def test_upstream_unavailable(self, test_settings, fake_llm) -> None:
        """Test an exhausted provider maps to 503."""
        llm = fake_llm(error=UpstreamUnavailableError("overloaded", status_code=529))
        with build_client(test_settings, llm=llm) as client:
            response = agent_post(client)

        assert response.status_code == 503
        assert response.json()["error"] == "Service unavailable"
        assert response.json()["message"] == "overloaded"

    def test_error_after_first_chunk_aborts_stream(self, test_settings, fake_llm) -> None:
        """Test a provider failure mid-stream aborts the response."""
        llm = fake_llm(
            chunks=["Partial", " answer"],
            error=UpstreamUnavailableError("Overloaded"),
            fail_after=1,
        )
        with build_client(test_settings, llm=llm) as client:
            with pytest.raises(Exception) as exc_info:
                agent_post(client)

        assert any(
            isinstance(error, UpstreamUnavailableError) and error.message == "Overloaded"
            for error in flatten_exceptions(exc_info.value)
        )

    def test_unexpected_error(self, test_settings, fake_llm) -> None:
        """Test other failures return a generic 500."""
        llm = fake_llm(error=RuntimeError("secret internals"))
        with build_client(test_settings, llm=llm) as client:
            response = agent_post(client)

        assert response.status_code == 500
        assert "secret" not in response.text


class TestAgentComplete:
    """Tests for the non-streaming agent endpoint."""

    def test_complete(self, client: TestClient) -> None:
        """Test the full text is returned as JSON."""
        response = agent_post(client, path="/v1/agent/complete")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["text"] == "Hello world"
        assert data["data"]["model"] == "test-model"
        assert response.headers["x-ratelimit-remaining"] == "2"

    def test_complete_rate_limited(self, client: TestClient) -> None:
        """Test the complete endpoint is rate limited too."""
        for _ in range(3):
            agent_post(client, path="/v1/agent/complete")

        assert agent_post(client, path="/v1/agent/complete").status_code == 429


class TestStatus:
    """Tests for backend status endpoints."""

    def test_status(self, client: TestClient) -> None:
        """Test status reports backend state and limiter settings."""
        response = client.get("/v1/status")

        assert response.status_code == 200
        data = response.json()
        assert data["backend"]["status"] in ("available", "checking", "unchecked")
        assert data["rate_limit"] == {"limit": 3, "window_seconds": 60, "store": "memory"}

    def test_check_now(self, test_settings, llm) -> None:
        """Test a manual check probes the backend."""
        probe = BackendProbe(healthy=False)
        with build_client(test_settings, llm=llm, probe=probe) as client:
            response = client.post("/v1/status/check")

            assert response.status_code == 200
            backend = response.json()["backend"]
            assert backend["is_available"] is False
            assert backend["status"] == "unavailable"
            assert backend["last_error"] == "Health check returned status 503"

            probe.healthy = True
            backend = client.post("/v1/status/check").json()["backend"]
            assert backend["is_available"] is True
            assert backend["consecutive_failures"] == 0

        assert probe.calls >= 2


class TestStartup:
    """Tests for application startup."""

    def test_missing_api_key_fails_startup(self, test_settings) -> None:
        """Test startup fails when no LLM client can be built."""
        app = create_app(settings=test_settings, counter_store=InMemoryCounterStore())

        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass

    def test_failed_startup_closes_llm_client(self, test_settings, fake_llm) -> None:
        """Test the LLM client built at startup is closed if startup fails later."""
        llm = fake_llm()
        app = create_app(settings=test_settings)

        with patch("agentgate.api.app.create_llm_client", return_value=llm), patch(
            "agentgate.api.app.initialize_counter_store",
            AsyncMock(side_effect=RuntimeError("store init failed")),
        ):
            with pytest.raises(RuntimeError, match="store init failed"):
                with TestClient(app):
                    pass

        assert llm.closed is True

    def test_failed_monitor_start_closes_created_store(self, test_settings, fake_llm) -> None:
        """Test a store built at startup is closed if the monitor fails to start."""
        llm = fake_llm()
        store = InMemoryCounterStore()
        monitor = AvailabilityMonitor(url=test_settings.backend_health_url, probe=BackendProbe())

        app = create_app(settings=test_settings, monitor=monitor)
        with patch("agentgate.api.app.create_llm_client", return_value=llm), patch(
            "agentgate.api.app.initialize_counter_store", AsyncMock(return_value=store)
        ), patch.object(
            AvailabilityMonitor, "start", AsyncMock(side_effect=RuntimeError("no loop"))
        ):
            with pytest.raises(RuntimeError, match="no loop"):
                with TestClient(app):
                    pass

        assert llm.closed is True
        assert store.is_connected is False

    def test_injected_clients_left_open(self, test_settings, fake_llm) -> None:
        """Test injected clients are not closed on a failed startup."""
        llm = fake_llm()
        app = create_app(settings=test_settings, llm_client=llm)

        with patch(
            "agentgate.api.app.initialize_counter_store",
            AsyncMock(side_effect=RuntimeError("store init failed")),
        ):
            with pytest.raises(RuntimeError):
                with TestClient(app):
                    pass

        assert llm.closed is False
