"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Environment variables use the ``PAYMENT__`` prefix, e.g.
``PAYMENT__GATEWAY__MERCHANT_ID`` or ``PAYMENT__TIMEOUTS__TOTAL``.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field

SANDBOX_API_URL = "https://apisandbox.braspag.com.br"
SANDBOX_QUERY_URL = "https://apiquerysandbox.braspag.com.br"
SANDBOX_AUTH_URL = "https://authsandbox.braspag.com.br/oauth2/token"
PRODUCTION_API_URL = "https://api.braspag.com.br"
PRODUCTION_QUERY_URL = "https://apiquery.braspag.com.br"
PRODUCTION_AUTH_URL = "https://auth.braspag.com.br/oauth2/token"


class GatewaySettings(BaseModel):
    merchant_id: Optional[str] = None
    merchant_key: Optional[str] = None
    client_secret: Optional[str] = None
    production: bool = False
    api_url: Optional[str] = None
    query_url: Optional[str] = None
    auth_url: Optional[str] = None

    @property
    def resolved_api_url(self) -> str:
        return self.api_url or (PRODUCTION_API_URL if self.production else SANDBOX_API_URL)

    @property
    def resolved_query_url(self) -> str:
        return self.query_url or (PRODUCTION_QUERY_URL if self.production else SANDBOX_QUERY_URL)

    @property
    def resolved_auth_url(self) -> str:
        return self.auth_url or (PRODUCTION_AUTH_URL if self.production else SANDBOX_AUTH_URL)


class PaymentTimeouts(BaseModel):
    connect: float = 5.0
    read: float = 30.0
    write: float = 30.0
    total: float = 30.0


class PaymentRetry(BaseModel):
    max: int = 3
    base_backoff: float = 0.2


class SplitSettings(BaseModel):
    marketplace_merchant_id: Optional[str] = None
    default_mdr: float = 50.0
    default_fee: int = 100
    default_total_taxes: float = 5.0


class PaymentDelays(BaseModel):
    """Delays (milliseconds) returned to the platform on pending authorizations."""
    cancel_after_ms: int = 15 * 60 * 1000
    auto_settle_ms: int = 2 * 60 * 1000
    auto_settle_after_antifraud_ms: int = 2 * 60 * 1000


class CollaboratorSettings(BaseModel):
    orders_url: Optional[str] = None
    vouchers_url: Optional[str] = None
    auth_token: Optional[str] = None
    timeout: float = 10.0


class LockSettings(BaseModel):
    # Held across gateway and voucher calls, so it outlives PaymentTimeouts.total.
    timeout: float = 45.0
    blocking_timeout: float = 5.0


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs allowed to post webhooks


class PaymentSettings(BaseSettings):
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    split: SplitSettings = Field(default_factory=SplitSettings)
    delays: PaymentDelays = Field(default_factory=PaymentDelays)
    collaborators: CollaboratorSettings = Field(default_factory=CollaboratorSettings)
    lock: LockSettings = Field(default_factory=LockSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    notification_url: Optional[str] = None
    forward_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
