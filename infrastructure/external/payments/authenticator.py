"""
OAuth client-credentials token cache for the gateway.

The token is held as an explicit ``AccessToken`` value. Refresh happens on
expiry, and concurrent callers share a single in-flight refresh request.
"""
from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import GatewayAuthenticationError, GatewayError

logger = get_logger(__name__)

SendFn = Callable[..., Awaitable[httpx.Response]]


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float  # clock() seconds

    def is_valid(self, now: float, skew: float = 0.0) -> bool:
        return now + skew < self.expires_at


class GatewayAuthenticator:
    def __init__(
        self,
        *,
        auth_url: str,
        merchant_id: str,
        client_secret: str,
        send: SendFn,
        clock: Callable[[], float] = time.monotonic,
        skew_seconds: float = 30.0,
    ) -> None:
        self.auth_url = auth_url
        self.merchant_id = merchant_id
        self._client_secret = client_secret
        self._send = send
        self._clock = clock
        self._skew = skew_seconds
        self._token: Optional[AccessToken] = None
        self._inflight: Optional[asyncio.Future[AccessToken]] = None

    @property
    def current(self) -> Optional[AccessToken]:
        return self._token

    def clear(self) -> None:
        self._token = None

    async def get_token(self) -> str:
        token = self._token
        if token is not None and token.is_valid(self._clock(), self._skew):
            return token.token

        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.ensure_future(self._authenticate())
            self._inflight = inflight
        try:
            fresh = await asyncio.shield(inflight)
        finally:
            if self._inflight is inflight and inflight.done():
                self._inflight = None
        return fresh.token

    async def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self.get_token()}"}

    async def _authenticate(self) -> AccessToken:
        basic = base64.b64encode(f"{self.merchant_id}:{self._client_secret}".encode()).decode()
        logger.info("gateway_authentication_started", auth_url=self.auth_url, merchant_id=self.merchant_id)
        resp = await self._send(
            "POST",
            self.auth_url,
            operation="gateway_authenticate",
            content=b"grant_type=client_credentials",
            headers={
                "Authorization": f"Basic {basic}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )
        body = _json_or_none(resp)
        if resp.status_code >= 400:
            self._token = None
            error = body.get("error") if isinstance(body, dict) else None
            logger.error(
                "gateway_authentication_failed",
                auth_url=self.auth_url,
                merchant_id=self.merchant_id,
                status_code=resp.status_code,
                error=error,
            )
            if error == "invalid_client":
                description = body.get("error_description") if isinstance(body, dict) else None
                raise GatewayAuthenticationError(
                    "Gateway rejected client credentials (invalid_client)",
                    details={"merchant_id": self.merchant_id, "error_description": description},
                )
            raise GatewayError(
                f"Gateway authentication failed with status {resp.status_code}",
                status_code=resp.status_code,
            )

        if not isinstance(body, dict) or not body.get("access_token"):
            raise GatewayError("Gateway authentication returned no access token", status_code=resp.status_code)

        expires_in = float(body.get("expires_in") or 0)
        token = AccessToken(token=body["access_token"], expires_at=self._clock() + expires_in)
        self._token = token
        logger.info("gateway_authentication_succeeded", token_type=body.get("token_type"), expires_in=expires_in)
        return token


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None
