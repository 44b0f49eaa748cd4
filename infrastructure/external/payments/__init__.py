"""
Factory for payment gateway clients.

Clients are cached per merchant so the HTTP connection pool and the OAuth
token cache are shared across requests; ``close_payment_gateways`` closes
them on shutdown.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import PaymentGateway
from application.services.merchant_config import MerchantCredentials

_gateways: dict[tuple[str, str, Optional[str]], PaymentGateway] = {}


def get_payment_gateway(
    credentials: MerchantCredentials,
    *,
    settings: Optional[PaymentSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    cfg = settings or payment_settings
    key = (credentials.merchant_id, credentials.merchant_key, credentials.client_secret)
    gateway = _gateways.get(key)
    if gateway is None:
        from .braspag_client import BraspagPixClient

        gateway = BraspagPixClient(
            merchant_id=credentials.merchant_id,
            merchant_key=credentials.merchant_key,
            client_secret=credentials.client_secret,
            api_url=cfg.gateway.resolved_api_url,
            query_url=cfg.gateway.resolved_query_url,
            auth_url=cfg.gateway.resolved_auth_url,
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )
        _gateways[key] = gateway
    return gateway


async def close_payment_gateways() -> None:
    gateways = list(_gateways.values())
    _gateways.clear()
    for gateway in gateways:
        await gateway.aclose()
