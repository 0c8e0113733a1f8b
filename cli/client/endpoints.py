"""API Endpoint Wrappers"""

from typing import Any

import httpx

from .base import APIClient, DelayedJobsAPIError

DEFAULT_API_URL = "http://localhost:8000"

__all__ = ["DEFAULT_API_URL", "DelayedJobsAPIError", "DelayedJobsClient"]


class DelayedJobsClient:
    """High-level client with one method per endpoint"""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api = APIClient(base_url=base_url, timeout=timeout, transport=transport)

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    def health_check(self) -> dict[str, Any]:
        return self.api.get("/healthz")

    def list_queues(self) -> list[dict[str, Any]]:
        return self.api.get("/jobs/queues").get("queues", [])

    def enqueue(
        self, queue_name: str, actor_id: str, delay_seconds: float | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"queue_name": queue_name, "actor_id": actor_id}
        if delay_seconds is not None:
            payload["delay_seconds"] = delay_seconds
        return self.api.post("/jobs", json=payload)

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/jobs/{job_id}")

    def list_jobs(self, actor_id: str | None = None) -> list[dict[str, Any]]:
        params = {"actor_id": actor_id} if actor_id else None
        return self.api.get("/jobs", params=params).get("jobs", [])

    def ready_jobs(self, limit: int = 100) -> list[dict[str, Any]]:
        return self.api.get("/jobs/ready", params={"limit": limit}).get("jobs", [])

    def failed_jobs(self, limit: int = 100) -> list[dict[str, Any]]:
        return self.api.get("/jobs/failed", params={"limit": limit}).get("jobs", [])
