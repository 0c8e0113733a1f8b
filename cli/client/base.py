"""Base HTTP Client for the Delayed Jobs API"""

from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel

console = Console()

API_PREFIX = "/v1"


class DelayedJobsAPIError(Exception):
    """Raised when the API cannot be reached or answers with an error envelope"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class APIClient:
    """Thin httpx wrapper that speaks the API's response envelope"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: int = 30,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request under the API prefix and return the envelope's data"""
        try:
            response = self.client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.RequestError as e:
            console.print(f"[red]Connection error: {e}[/red]")
            raise DelayedJobsAPIError(f"Connection failed: {e}") from None

        return self._unwrap(response)

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return self.request("POST", path, json=json)

    def _unwrap(self, response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            raise DelayedJobsAPIError(
                f"Invalid JSON response: {response.status_code}",
                status_code=response.status_code,
            ) from None

        if response.is_error or body.get("ok") is False:
            error = body.get("error") or {}
            message = error.get("message") or str(body.get("detail", "Unknown error"))
            console.print(Panel(f"[red]{message}[/red]", title="API Error"))
            raise DelayedJobsAPIError(
                f"API Error {response.status_code}: {message}",
                status_code=response.status_code,
            )

        return body.get("data", {}) if "ok" in body else body
