"""Tests for CLI commands"""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from typer.testing import CliRunner

from cli.client.base import DelayedJobsAPIError
from cli.client.endpoints import DelayedJobsClient
from cli.main import app

JOB = {
    "id": "5f0c6b8e-1d2a-4c3b-9e8f-7a6b5c4d3e2f",
    "queue_name": "OrderEmailJobHandler",
    "actor_id": "order-1",
    "priority": 10,
    "run_at": "2024-01-01T00:00:00Z",
    "attempts": 0,
    "locked": False,
    "complete": False,
    "completed_with_failure": False,
    "failure_reason": None,
    "last_error": None,
}


@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def mock_client():
    """Mock API client"""
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    return client


class TestMainCommands:
    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Delayed Jobs CLI" in result.stdout

    @patch("cli.main.DelayedJobsClient")
    def test_status_success(self, mock_client_class, runner, mock_client):
        mock_client.health_check.return_value = {
            "ok": True,
            "version": "1.0.0",
            "environment": "development",
            "database": {"connected": True},
            "dispatcher": {"running": True, "registered_queues": ["OrderEmailJobHandler"]},
            "queue": {"ready": 2, "scheduled": 1, "locked": 0, "failed": 0},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Healthy" in result.stdout
        assert "OrderEmailJobHandler" in result.stdout

    @patch("cli.main.DelayedJobsClient")
    def test_status_connection_error(self, mock_client_class, runner, mock_client):
        mock_client.health_check.side_effect = DelayedJobsAPIError("Connection failed")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "Connection Failed" in result.stdout

    @patch("cli.main.DelayedJobsClient")
    def test_api_url_option(self, mock_client_class, runner, mock_client):
        mock_client.health_check.return_value = {"ok": True}
        mock_client_class.return_value = mock_client

        runner.invoke(app, ["--api-url", "http://jobs.internal:9000", "status"])

        mock_client_class.assert_called_once_with("http://jobs.internal:9000")


class TestJobCommands:
    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_enqueue(self, mock_client_class, runner, mock_client):
        mock_client.enqueue.return_value = JOB
        mock_client_class.return_value = mock_client

        result = runner.invoke(
            app, ["enqueue", "OrderEmailJobHandler", "order-1", "--delay", "30"]
        )

        assert result.exit_code == 0
        assert "Enqueued job" in result.stdout
        mock_client.enqueue.assert_called_once_with(
            "OrderEmailJobHandler", "order-1", delay_seconds=30.0
        )

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_enqueue_error(self, mock_client_class, runner, mock_client):
        mock_client.enqueue.side_effect = DelayedJobsAPIError(
            "API Error 422: Handler not registered: Nope"
        )
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["enqueue", "Nope", "order-1"])

        assert result.exit_code == 1
        assert "Failed to enqueue job" in result.stdout

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_show(self, mock_client_class, runner, mock_client):
        mock_client.get_job.return_value = {
            **JOB,
            "failure_reason": "Order not found: order-1",
            "last_error": "TerminalJobError: Order not found: order-1",
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["show", JOB["id"]])

        assert result.exit_code == 0
        assert "Order not found" in result.stdout
        assert "Last Error" in result.stdout

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_ready(self, mock_client_class, runner, mock_client):
        mock_client.ready_jobs.return_value = [JOB]
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["ready", "--limit", "5"])

        assert result.exit_code == 0
        assert "Ready Jobs" in result.stdout
        mock_client.ready_jobs.assert_called_once_with(limit=5)

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_ready_empty(self, mock_client_class, runner, mock_client):
        mock_client.ready_jobs.return_value = []
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["ready"])

        assert result.exit_code == 0
        assert "No jobs waiting" in result.stdout

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_failed(self, mock_client_class, runner, mock_client):
        mock_client.failed_jobs.return_value = [
            {**JOB, "complete": True, "completed_with_failure": True,
             "failure_reason": "Order not found: order-1"}
        ]
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["failed"])

        assert result.exit_code == 0
        assert "Failed Jobs" in result.stdout
        assert "Order not found" in result.stdout

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_queues(self, mock_client_class, runner, mock_client):
        mock_client.list_queues.return_value = [
            {
                "queue_name": "OrderEmailJobHandler",
                "priority": 10,
                "description": "Order confirmation email sender",
            }
        ]
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues"])

        assert result.exit_code == 0
        assert "OrderEmailJobHandler" in result.stdout

    @patch("cli.commands.jobs.DelayedJobsClient")
    def test_jobs_by_actor(self, mock_client_class, runner, mock_client):
        mock_client.list_jobs.return_value = [JOB]
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "--actor", "order-1"])

        assert result.exit_code == 0
        mock_client.list_jobs.assert_called_once_with(actor_id="order-1")


class TestWorkerCommand:
    @patch("cli.commands.worker.create_runtime")
    def test_worker_once(self, mock_create_runtime, runner):
        runtime = Mock()
        runtime.dispatcher.run_pending = AsyncMock(return_value=3)
        runtime.close = AsyncMock()
        mock_create_runtime.return_value = runtime

        result = runner.invoke(app, ["worker", "--once"])

        assert result.exit_code == 0
        assert "Processed 3 due jobs" in result.stdout
        runtime.close.assert_awaited_once()


class TestDelayedJobsClient:
    def test_unwraps_response_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/jobs/queues"
            return httpx.Response(
                200, json={"ok": True, "data": {"queues": [{"queue_name": "Q"}]}}
            )

        with DelayedJobsClient(
            "http://test", transport=httpx.MockTransport(handler)
        ) as client:
            assert client.list_queues() == [{"queue_name": "Q"}]

    def test_enqueue_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/v1/jobs"
            assert json.loads(request.read()) == {
                "queue_name": "Q",
                "actor_id": "a",
                "delay_seconds": 5,
            }
            return httpx.Response(201, json={"ok": True, "data": {"id": "1"}})

        with DelayedJobsClient(
            "http://test", transport=httpx.MockTransport(handler)
        ) as client:
            assert client.enqueue("Q", "a", delay_seconds=5) == {"id": "1"}

    def test_error_envelope_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404,
                json={"ok": False, "error": {"message": "Job not found: x", "code": 404}},
            )

        with DelayedJobsClient(
            "http://test", transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(DelayedJobsAPIError, match="Job not found"):
                client.get_job("x")
