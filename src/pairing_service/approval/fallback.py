"""FallbackTransport: plain HTTP approval on the worker's secondary port."""

import asyncio
from typing import Any

import httpx

from pairing_service.core.exceptions import (
    FallbackRejectedError,
    FallbackTimeoutError,
    FallbackUnreachableError,
)
from pairing_service.core.structured_logger import get_logger
from pairing_service.core.types import WorkerName

logger = get_logger("FallbackTransport")


def _worker_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "output"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return default


class FallbackTransport:
    """Single POST of {channel, code}; used only after the gateway gave up."""

    def __init__(
        self,
        port: int = 8080,
        path: str = "/pairing/approve",
        timeout_seconds: float = 12.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.port = port
        self.path = path
        self.timeout_seconds = timeout_seconds
        self._token = token
        self._transport = transport

    def url_for(self, worker: WorkerName) -> str:
        return f"http://{worker.host}:{self.port}{self.path}"

    async def approve(self, worker: WorkerName, channel: str, code: str) -> dict[str, Any]:
        """
        Approve a pairing code through the fallback endpoint.

        Raises:
            FallbackTimeoutError: The call exceeded its timeout
            FallbackRejectedError: Non-2xx status or an explicit success=false
            FallbackUnreachableError: Transport failure or malformed payload
        """
        url = self.url_for(worker)
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        logger.info("Calling fallback endpoint", url=url, channel=channel)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds, transport=self._transport
                ) as client:
                    resp = await client.post(url, json={"channel": channel, "code": code}, headers=headers)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise FallbackTimeoutError(
                f"Fallback timeout after {self.timeout_seconds:g}s", {"url": url}
            ) from e
        except httpx.HTTPError as e:
            raise FallbackUnreachableError(
                f"Fallback request failed: {str(e) or e.__class__.__name__}", {"url": url}
            ) from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if not resp.is_success:
            default = resp.text.strip()[:200] or f"HTTP {resp.status_code}"
            raise FallbackRejectedError(
                _worker_message(body, default), {"url": url, "status": resp.status_code}
            )
        if body is None and not resp.content.strip():
            body = {}
        if not isinstance(body, dict):
            raise FallbackUnreachableError("Fallback returned a malformed payload", {"url": url})
        if body.get("success") is False:
            raise FallbackRejectedError(
                _worker_message(body, "Fallback approval failed"), {"url": url, "status": resp.status_code}
            )

        logger.info("Fallback approval succeeded", url=url)
        return body
