"""
Scorecard API Client.

The only sanctioned upstream for performance figures:
    GET {base_url}/api/scorecard/{kind}/{id}?mtdMonth=&mtdYear=
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from guarded_qa.core.errors import MetricsUnavailable
from guarded_qa.domain.models import EntityKind, Period

logger = structlog.get_logger(__name__)


class MetricsProvider(ABC):
    """Source of raw scorecard records."""

    @abstractmethod
    async def fetch_scorecard(
        self,
        kind: EntityKind,
        entity_id: str,
        period: Period,
    ) -> tuple[dict[str, Any], str]:
        """
        Fetch one raw scorecard record.

        Returns:
            (record, endpoint) where record is the unwrapped field mapping

        Raises:
            MetricsUnavailable: provider unreachable, error status, or no data
        """
        pass

    @abstractmethod
    async def check_endpoint(self, kind: EntityKind) -> dict[str, Any]:
        """Check that the endpoint for ``kind`` answers."""
        pass

    async def close(self) -> None:
        pass


class HttpMetricsProvider(MetricsProvider):
    """Scorecard API over HTTP."""

    def __init__(
        self,
        base_url: str = "http://localhost:5002",
        timeout_seconds: float = 10.0,
        service_token: str | None = None,
        user_agent: str = "AI-Agent-Scorecard-Access/2.0",
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._service_token = service_token
        self._user_agent = user_agent
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {
                "Content-Type": "application/json",
                "User-Agent": self._user_agent,
            }
            if self._service_token:
                headers["Authorization"] = f"Bearer {self._service_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def endpoint_for(self, kind: EntityKind, entity_id: str) -> str:
        return f"/api/scorecard/{kind.value}/{entity_id}"

    async def fetch_scorecard(
        self,
        kind: EntityKind,
        entity_id: str,
        period: Period,
    ) -> tuple[dict[str, Any], str]:
        path = self.endpoint_for(kind, entity_id)
        params = {}
        if period.month and period.year:
            params = {"mtdMonth": period.month, "mtdYear": period.year}
        endpoint = f"{self.base_url}{path}"

        logger.info(
            "Accessing validated scorecard data",
            kind=kind.value,
            entity_id=entity_id,
            endpoint=endpoint,
            **params,
        )

        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise MetricsUnavailable(
                f"Scorecard API timed out: {e}", kind.value, entity_id, endpoint
            ) from e
        except httpx.ConnectError as e:
            raise MetricsUnavailable(
                f"Cannot connect to scorecard API at {endpoint}", kind.value, entity_id, endpoint
            ) from e
        except httpx.HTTPStatusError as e:
            raise MetricsUnavailable(
                f"Scorecard API HTTP {e.response.status_code}", kind.value, entity_id, endpoint
            ) from e
        except httpx.HTTPError as e:
            raise MetricsUnavailable(
                f"Network error accessing scorecard API: {e}", kind.value, entity_id, endpoint
            ) from e
        except ValueError as e:
            raise MetricsUnavailable(
                "Scorecard API returned invalid JSON", kind.value, entity_id, endpoint
            ) from e

        return unwrap_payload(payload, kind, entity_id, endpoint), endpoint

    async def check_endpoint(self, kind: EntityKind) -> dict[str, Any]:
        """4xx counts as accessible (the endpoint answered, just no data)."""
        path = self.endpoint_for(kind, "1")
        client = await self._get_client()
        try:
            response = await client.get(path, timeout=5.0)
        except httpx.HTTPError as e:
            logger.warning("Scorecard endpoint unreachable", kind=kind.value, error=str(e))
            return {"accessible": False, "error": str(e), "endpoint": f"{self.base_url}{path}"}
        return {
            "accessible": response.status_code < 500,
            "status": response.status_code,
            "endpoint": f"{self.base_url}{path}",
        }


def unwrap_payload(
    payload: Any,
    kind: EntityKind,
    entity_id: str,
    endpoint: str | None = None,
) -> dict[str, Any]:
    """
    Accept both bare records and ``{success, data}`` envelopes.

    A nested ``metrics`` mapping is lifted to the top level.
    """
    if not payload:
        raise MetricsUnavailable("Empty response from scorecard API", kind.value, entity_id, endpoint)
    if not isinstance(payload, dict):
        raise MetricsUnavailable("Unexpected scorecard payload", kind.value, entity_id, endpoint)

    record = payload
    if "success" in payload:
        if not payload["success"]:
            message = payload.get("message") or "Unknown error"
            raise MetricsUnavailable(
                f"Scorecard API error: {message}", kind.value, entity_id, endpoint
            )
        record = payload.get("data")

    if not record or not isinstance(record, dict):
        raise MetricsUnavailable("No scorecard data in API response", kind.value, entity_id, endpoint)

    nested = record.get("metrics")
    if isinstance(nested, dict):
        record = {**{k: v for k, v in record.items() if k != "metrics"}, **nested}
    return record
