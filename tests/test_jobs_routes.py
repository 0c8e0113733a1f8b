from uuid import uuid4

import pytest
from httpx import AsyncClient

from .conftest import RecordingHandler, TerminalFailureHandler


class TestEnqueueEndpoint:
    @pytest.mark.asyncio
    async def test_enqueue_job(self, async_client: AsyncClient):
        response = await async_client.post(
            "/v1/jobs",
            json={
                "queue_name": "RecordingHandler",
                "actor_id": "order-1",
                "delay_seconds": 3600,
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["ok"] is True

        job = data["data"]
        assert job["queue_name"] == "RecordingHandler"
        assert job["actor_id"] == "order-1"
        assert job["priority"] == 10
        assert job["attempts"] == 0
        assert job["complete"] is False
        assert job["locked"] is False

    @pytest.mark.asyncio
    async def test_enqueue_with_run_at(self, async_client: AsyncClient):
        response = await async_client.post(
            "/v1/jobs",
            json={
                "queue_name": "RecordingHandler",
                "actor_id": "order-1",
                "run_at": "2099-01-01T00:00:00+00:00",
            },
        )

        assert response.status_code == 201
        assert response.json()["data"]["run_at"].startswith("2099-01-01T00:00:00")

    @pytest.mark.asyncio
    async def test_enqueue_unknown_queue(self, async_client: AsyncClient):
        response = await async_client.post(
            "/v1/jobs", json={"queue_name": "NoSuchHandler", "actor_id": "order-1"}
        )

        assert response.status_code == 422
        data = response.json()
        assert data["ok"] is False
        assert data["error"]["message"] == "Handler not registered: NoSuchHandler"

    @pytest.mark.asyncio
    async def test_enqueue_rejects_run_at_and_delay(self, async_client: AsyncClient):
        response = await async_client.post(
            "/v1/jobs",
            json={
                "queue_name": "RecordingHandler",
                "actor_id": "order-1",
                "run_at": "2099-01-01T00:00:00+00:00",
                "delay_seconds": 10,
            },
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_enqueue_rejects_naive_run_at(self, async_client: AsyncClient):
        response = await async_client.post(
            "/v1/jobs",
            json={
                "queue_name": "RecordingHandler",
                "actor_id": "order-1",
                "run_at": "2099-01-01T00:00:00",
            },
        )

        assert response.status_code == 422


class TestJobQueries:
    @pytest.mark.asyncio
    async def test_get_job(self, async_client: AsyncClient, service):
        job = await service.enqueue(RecordingHandler, "order-1")

        response = await async_client.get(f"/v1/jobs/{job.id}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(job.id)

    @pytest.mark.asyncio
    async def test_get_missing_job(self, async_client: AsyncClient):
        response = await async_client.get(f"/v1/jobs/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["ok"] is False

    @pytest.mark.asyncio
    async def test_get_job_invalid_id(self, async_client: AsyncClient):
        response = await async_client.get("/v1/jobs/not-a-uuid")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_jobs_by_actor(self, async_client: AsyncClient, service):
        await service.enqueue(RecordingHandler, "order-1")
        await service.enqueue(RecordingHandler, "order-2")

        response = await async_client.get("/v1/jobs", params={"actor_id": "order-1"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["jobs"][0]["actor_id"] == "order-1"

    @pytest.mark.asyncio
    async def test_list_incomplete_jobs(self, async_client: AsyncClient, service):
        await service.enqueue(RecordingHandler, "order-1")
        done = await service.enqueue(RecordingHandler, "order-2")
        await service.process(done.id)

        response = await async_client.get("/v1/jobs")

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["jobs"][0]["actor_id"] == "order-1"

    @pytest.mark.asyncio
    async def test_ready_jobs(self, async_client: AsyncClient, service):
        job = await service.enqueue(RecordingHandler, "order-1")

        response = await async_client.get("/v1/jobs/ready", params={"limit": 10})

        data = response.json()["data"]
        assert [j["id"] for j in data["jobs"]] == [str(job.id)]

    @pytest.mark.asyncio
    async def test_failed_jobs(self, async_client: AsyncClient, service):
        job = await service.enqueue(TerminalFailureHandler, "order-404")
        await service.process(job.id)

        response = await async_client.get("/v1/jobs/failed")

        jobs = response.json()["data"]["jobs"]
        assert len(jobs) == 1
        assert jobs[0]["failure_reason"] == "Order not found: order-404"
        assert jobs[0]["completed_with_failure"] is True

    @pytest.mark.asyncio
    async def test_list_queues(self, async_client: AsyncClient):
        response = await async_client.get("/v1/jobs/queues")

        assert response.status_code == 200
        queues = response.json()["data"]["queues"]
        assert queues[0] == {
            "queue_name": "RecordingHandler",
            "priority": 10,
            "description": "Records calls",
        }
        assert {q["queue_name"] for q in queues} == {
            "RecordingHandler",
            "LowPriorityHandler",
            "TerminalFailureHandler",
            "RecoverableFailureHandler",
            "CrashingHandler",
        }
