"""
Estimator Client - HTTP access to the external probability estimator.

The estimator is a black box: given (user_id, course_id) it answers with the
flat entity list that becomes a snapshot's raw entities.

Failures are split by whether a retry can help:
- EstimatorUnavailableError: timeout, transport error, 5xx
- EstimatorResponseError: 4xx, non-JSON or non-list body
"""

import uuid
from typing import Any, Dict, List, Optional

import httpx

from mastery_analytics.engines.progress.errors import (
    EstimatorResponseError,
    EstimatorUnavailableError,
)
from mastery_analytics.logging_config import get_logger

logger = get_logger(__name__)


class EstimatorClient:
    """
    POSTs {"user_id", "course_id"} to the estimator URL.

    A shared ``httpx.AsyncClient`` may be passed in (the app creates one per
    process); otherwise a client is opened per call.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> httpx.Response:
        return await client.post(
            self.base_url,
            json=body,
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )

    async def estimate(self, user_id: uuid.UUID, course_id: str) -> List[Dict[str, Any]]:
        """Fetch fresh raw entities for (user, course)."""
        body = {"user_id": str(user_id), "course_id": str(course_id)}
        try:
            if self._client is not None:
                response = await self._post(self._client, body)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, body)
        except httpx.TransportError as e:
            logger.warning("Estimator request failed: %s", e, extra={"course_id": str(course_id)})
            raise EstimatorUnavailableError(f"Estimator unreachable: {e}") from e

        if response.status_code >= 500:
            raise EstimatorUnavailableError(f"Estimator returned {response.status_code}")
        if response.status_code >= 400:
            raise EstimatorResponseError(f"Estimator rejected request: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise EstimatorResponseError("Estimator returned invalid JSON") from e

        if not isinstance(data, list):
            raise EstimatorResponseError("Estimator response is not a list")
        return [item for item in data if isinstance(item, dict)]
