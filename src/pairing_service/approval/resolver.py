"""DirectoryResolver: maps a Railway service id to its private network name."""

import re
from typing import Any

import httpx

from pairing_service.core.exceptions import DirectoryNotFoundError, DirectoryUpstreamError
from pairing_service.core.structured_logger import get_logger
from pairing_service.core.types import WorkerName

logger = get_logger("DirectoryResolver")

SERVICE_QUERY = """
query service($id: String!) {
  service(id: $id) {
    id
    name
  }
}
""".strip()

_NOT_FOUND = re.compile(r"not\s+found", re.IGNORECASE)
_SLUG_INVALID = re.compile(r"[^a-z0-9-]+")


def private_hostname(name: str, suffix: str) -> str:
    """Railway private DNS name for a service: lowercase, dash-separated."""
    slug = _SLUG_INVALID.sub("-", name.strip().lower()).strip("-")
    return f"{slug}{suffix}"


class DirectoryResolver:
    """Resolves worker ids with one GraphQL query; never retries."""

    def __init__(
        self,
        endpoint: str,
        token: str | None,
        timeout_seconds: float = 10.0,
        private_domain_suffix: str = ".railway.internal",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._token = token
        self.timeout_seconds = timeout_seconds
        self.private_domain_suffix = private_domain_suffix
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def resolve(self, worker_id: str) -> WorkerName:
        """
        Resolve a worker id to a connectable name.

        Raises:
            DirectoryNotFoundError: The directory has no such service
            DirectoryUpstreamError: Transport failure, bad status or unparseable body
        """
        body = await self._query(worker_id)

        errors = body.get("errors") or []
        if errors:
            messages = [str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors]
            if any(_NOT_FOUND.search(m) for m in messages):
                raise DirectoryNotFoundError(worker_id, {"errors": messages})
            raise DirectoryUpstreamError(
                f"Directory error: {'; '.join(messages)}", {"errors": messages}
            )

        data = body.get("data")
        if data is not None and not isinstance(data, dict):
            raise DirectoryUpstreamError("Directory response has unexpected shape")
        service = (data or {}).get("service")
        if not service:
            raise DirectoryNotFoundError(worker_id)
        if not isinstance(service, dict) or not isinstance(service.get("name"), str) or not service["name"].strip():
            raise DirectoryUpstreamError("Directory record has no usable service name")

        worker = WorkerName(
            service_id=str(service.get("id") or worker_id),
            name=service["name"],
            host=private_hostname(service["name"], self.private_domain_suffix),
        )
        logger.info("Resolved worker", worker_id=worker_id, name=worker.name, host=worker.host)
        return worker

    async def _query(self, worker_id: str) -> dict[str, Any]:
        payload = {"query": SERVICE_QUERY, "variables": {"id": worker_id}}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(self.endpoint, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("Directory request failed", worker_id=worker_id, error=str(e) or e.__class__.__name__)
            raise DirectoryUpstreamError(f"Directory request failed: {e}") from e

        if resp.status_code >= 400 and not _is_json(resp):
            raise DirectoryUpstreamError(
                f"Directory returned HTTP {resp.status_code}", {"status": resp.status_code}
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise DirectoryUpstreamError("Directory returned a non-JSON response") from e
        if not isinstance(body, dict):
            raise DirectoryUpstreamError("Directory response has unexpected shape")
        if resp.status_code >= 400 and not body.get("errors"):
            raise DirectoryUpstreamError(
                f"Directory returned HTTP {resp.status_code}", {"status": resp.status_code}
            )
        return body


def _is_json(resp: httpx.Response) -> bool:
    return "json" in resp.headers.get("content-type", "")
