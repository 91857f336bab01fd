from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from shipment_batch.core.config import get_settings
from shipment_batch.core.logging import get_logger

logger = get_logger("http")


class CircuitOpen(Exception):
    pass


@dataclass
class CircuitBreaker:
    name: str = "upstream"
    max_failures: int = 3
    reset_seconds: int = 30
    failures: int = 0
    last_failure_ts: float | None = None

    def allow(self) -> bool:
        if self.failures < self.max_failures:
            return True
        if self.last_failure_ts is None:
            return True
        if time.time() - self.last_failure_ts > self.reset_seconds:
            self.failures = 0
            self.last_failure_ts = None
            return True
        return False

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_ts = time.time()
        if self.failures == self.max_failures:
            logger.warning("circuit_opened", breaker=self.name, reset_seconds=self.reset_seconds)

    def record_success(self) -> None:
        self.failures = 0
        self.last_failure_ts = None


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class ServiceClient:
    """JSON-over-HTTP access to one upstream service."""

    def __init__(
        self,
        base_url: str,
        *,
        name: str,
        api_key: str | None = None,
        breaker: CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.name = name
        self.api_key = api_key if api_key is not None else settings.service_api_key
        self.timeout = settings.http_timeout_seconds
        self.attempts = settings.http_retry_attempts
        self.breaker = breaker or CircuitBreaker(name=name)
        self.transport = transport

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> dict:
        return await self._request("GET", path, params=params)

    async def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        retry: bool = True,
    ) -> dict:
        return await self._request("POST", path, json=payload, headers=headers, retry=retry)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        retry: bool = True,
    ) -> dict:
        if not self.breaker.allow():
            raise CircuitOpen(f"{self.name} circuit is open")

        request_headers = {"Accept": "application/json"}
        if self.api_key:
            request_headers["Authorization"] = f"Bearer {self.api_key}"
        if headers:
            request_headers.update(headers)

        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.attempts if retry else 1),
                    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                    retry=retry_if_exception(_is_retryable),
                    reraise=True,
                ):
                    with attempt:
                        response = await client.request(
                            method, url, params=params, json=json, headers=request_headers
                        )
                        response.raise_for_status()
                        payload = response.json()
        except (httpx.HTTPError, ValueError):
            self.breaker.record_failure()
            logger.warning("upstream_request_failed", service=self.name, method=method, url=url)
            raise
        self.breaker.record_success()
        return payload
