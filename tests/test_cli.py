"""Tests for CLI interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from agentgate.availability import AvailabilityMonitor, AvailabilityState, MonitorStatus
from agentgate.cli import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_settings(test_settings):
    """Run every command against the isolated test settings."""
    with patch("agentgate.cli.get_settings", return_value=test_settings):
        yield test_settings


class TestLimiterDemo:
    """Tests for the limiter-demo command."""

    def test_json_output(self):
        """Test decisions are printed as JSON and the limit is enforced."""
        result = runner.invoke(cli, ["limiter-demo", "--identity", "demo", "--count", "4", "--json"])

        assert result.exit_code == 0
        decisions = json.loads(result.output)
        assert [d["allowed"] for d in decisions] == [True, True, True, False]
        assert [d["remaining"] for d in decisions] == [2, 1, 0, 0]
        assert all(d["limit"] == 3 for d in decisions)

    def test_table_output(self):
        """Test the default output is a table naming the store."""
        result = runner.invoke(cli, ["limiter-demo", "-i", "demo", "-n", "2"])

        assert result.exit_code == 0
        assert "memory" in result.output
        assert "demo" in result.output


class TestCheckBackend:
    """Tests for the check-backend command."""

    @staticmethod
    def _state(available: bool, error: str | None = None) -> AvailabilityState:
        return AvailabilityState(
            status=MonitorStatus.AVAILABLE if available else MonitorStatus.UNAVAILABLE,
            is_available=available,
            last_checked_at=None,
            last_error=error,
            consecutive_failures=0 if available else 1,
            current_poll_interval=30.0,
        )

    def test_available(self):
        """Test an available backend exits 0."""
        with patch.object(
            AvailabilityMonitor, "check_now", AsyncMock(return_value=self._state(True))
        ):
            result = runner.invoke(cli, ["check-backend", "--url", "http://backend.test/health"])

        assert result.exit_code == 0
        assert "available" in result.output

    def test_unavailable(self):
        """Test an unavailable backend exits 1 with the reason."""
        state = self._state(False, "Health check returned status 503")
        with patch.object(AvailabilityMonitor, "check_now", AsyncMock(return_value=state)):
            result = runner.invoke(cli, ["check-backend"])

        assert result.exit_code == 1
        assert "503" in result.output


class TestStorePing:
    """Tests for the store-ping command."""

    def test_invalid_url(self):
        """Test a malformed Redis URL is reported."""
        result = runner.invoke(cli, ["store-ping", "--url", "not-a-redis-url"])

        assert result.exit_code == 1
        assert "Invalid Redis URL" in result.output

    def test_reachable(self):
        """Test a reachable Redis server exits 0."""
        mock_client = AsyncMock()
        mock_client.ping = AsyncMock(return_value=True)

        with patch("redis.asyncio.from_url", return_value=mock_client):
            result = runner.invoke(cli, ["store-ping", "--url", "redis://cache:6379"])

        assert result.exit_code == 0
        assert "reachable" in result.output

    def test_unreachable(self):
        """Test an unreachable Redis server exits 1."""
        mock_client = AsyncMock()
        mock_client.ping = AsyncMock(side_effect=OSError("connection refused"))

        with patch("redis.asyncio.from_url", return_value=mock_client):
            result = runner.invoke(cli, ["store-ping", "--url", "redis://cache:6379"])

        assert result.exit_code == 1
        assert "unreachable" in result.output
