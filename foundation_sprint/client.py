"""Async HTTP client for the Foundation Sprint API.

This module provides SprintClient for:
- Starting a sprint from a product idea
- Polling status until a phase is reached
- Submitting research findings and decisions
- Fetching results
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"


class SprintClientError(Exception):
    """Raised for non-2xx responses, failed sprints and polling timeouts."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SprintClient:
    """Client for the five sprint endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 150.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root including the /api prefix
            timeout: Per-request timeout in seconds (decisions and results wait on the model)
            client: Pre-built httpx.AsyncClient (e.g. over ASGITransport in tests);
                not closed by aclose()
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "SprintClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise SprintClientError(f"Request to {path} failed: {exc}") from exc

        if response.is_error:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise SprintClientError(message, status_code=response.status_code)
        return response.json()

    async def start_sprint(self, product_idea: dict[str, Any]) -> str:
        """Start a sprint and return its id."""
        data = await self._request("POST", "/sprint/start", {"productIdea": product_idea})
        return data["sprintId"]

    async def get_status(self, sprint_id: str) -> dict:
        return await self._request("GET", f"/sprint/{sprint_id}/status")

    async def submit_research(self, sprint_id: str, research_data: dict[str, str]) -> dict:
        return await self._request(
            "POST", f"/sprint/{sprint_id}/research", {"researchData": research_data}
        )

    async def make_decisions(self, sprint_id: str, decisions: dict[str, Any]) -> dict:
        """Submit decisions; returns {"hypothesis": ..., "status": "completed"}."""
        return await self._request(
            "POST", f"/sprint/{sprint_id}/decisions", {"decisions": decisions}
        )

    async def get_results(self, sprint_id: str) -> dict:
        return await self._request("GET", f"/sprint/{sprint_id}/results")

    async def wait_for_phase(
        self,
        sprint_id: str,
        phases: str | Iterable[str],
        interval: float = 2.0,
        timeout: float = 300.0,
    ) -> dict:
        """Poll status until the sprint reaches one of phases.

        Returns:
            The status payload that matched

        Raises:
            SprintClientError: The sprint reported status "error", or timeout elapsed
        """
        wanted = {phases} if isinstance(phases, str) else set(phases)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            status = await self.get_status(sprint_id)
            if status.get("status") == "error":
                raise SprintClientError(
                    f"Sprint {sprint_id} failed in phase {status.get('phase')}: {status.get('error')}"
                )
            if status.get("phase") in wanted:
                return status
            if loop.time() >= deadline:
                raise SprintClientError(
                    f"Timed out waiting for sprint {sprint_id} to reach {sorted(wanted)}; "
                    f"last phase {status.get('phase')}"
                )
            logger.debug("sprint_poll", sprint_id=sprint_id, phase=status.get("phase"))
            await asyncio.sleep(interval)
