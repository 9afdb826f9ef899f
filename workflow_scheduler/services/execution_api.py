from __future__ import annotations

import logging
from typing import Any

import httpx

from workflow_scheduler.config import Settings
from workflow_scheduler.core.exceptions import ConfigurationError, ExecutionApiError

logger = logging.getLogger(__name__)


class ExecutionApiClient:
    """Client for the workflow execution endpoint of the main application."""

    def __init__(self, base_url: str, service_key: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutionApiClient":
        service_key = settings.service_api_key.get_secret_value()
        if not service_key:
            raise ConfigurationError("SCHEDULER_SERVICE_API_KEY is required to call the execution API")
        return cls(
            settings.keeperhub_url,
            service_key,
            timeout=settings.execution_api_timeout,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Service-Key": self.service_key,
        }

    async def execute(self, workflow_id: str, execution_id: str, input_data: dict[str, Any]) -> dict[str, Any]:
        """
        Ask the application to run a workflow for an existing execution record.

        Raises ExecutionApiError on a non-2xx response or a transport failure.
        """
        try:
            response = await self.client.post(
                f"{self.base_url}/api/workflow/{workflow_id}/execute",
                headers=self._headers(),
                json={"executionId": execution_id, "input": input_data},
            )
        except httpx.HTTPError as exc:
            raise ExecutionApiError(f"API call failed: {exc}") from exc

        if not response.is_success:
            raise ExecutionApiError(
                f"API call failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json() if response.content else {}
        except ValueError:
            logger.warning("Execution API returned a non-JSON body for workflow %s", workflow_id)
            return {}

    async def close(self) -> None:
        await self.client.aclose()
