"""
Base payment client implementing shared concerns: http, retry, logging, error mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import (
    GatewayError,
    GatewayTimeoutError,
)


logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"retryable status {response.status_code}")


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 5.0, "read": 30.0, "write": 30.0, "total": 30.0}
        self._retry_cfg = retry or {"max": 3, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, _RetryableStatus)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        retry: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request with bounded timeout and retry; HTTP error statuses are returned to the caller.

        Transport failures and exhausted retries become ``GatewayError``.
        """

        async def _once() -> httpx.Response:
            async with self.client() as c:
                resp = await c.request(method, url, **kwargs)
            if resp.status_code in RETRY_STATUS_CODES:
                raise _RetryableStatus(resp)
            return resp

        try:
            if retry:
                return await self._retry(_once)
            return await _once()
        except _RetryableStatus as exc:
            return exc.response
        except httpx.TimeoutException as exc:
            self._log_error(f"{operation}_timeout", error=str(exc))
            raise GatewayTimeoutError(f"{operation} timed out", provider=self.provider) from exc
        except httpx.TransportError as exc:
            self._log_error(f"{operation}_transport_error", error=str(exc))
            raise GatewayError(f"{operation} failed: {exc}", provider=self.provider) from exc

    # Helpers
    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )

    def _log_error(self, event: str, **kwargs) -> None:
        logger.error(
            event,
            provider=self.provider,
            **kwargs,
        )
