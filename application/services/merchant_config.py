"""
Merchant configuration: resolves gateway credentials from the request's
merchant settings, falling back to the environment field by field.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from application.dtos.payments import MerchantSetting
from application.ports.collaborators import Logger
from core.settings import GatewaySettings
from domain.common.exceptions import DomainValidationException


@dataclass(frozen=True)
class MerchantCredentials:
    merchant_id: str
    merchant_key: str
    client_secret: Optional[str] = None
    consultant_merchant_id: Optional[str] = None


class MerchantConfigService:
    def __init__(self, gateway_settings: GatewaySettings, logger: Logger) -> None:
        self._env = gateway_settings
        self._logger = logger

    def resolve(self, merchant_settings: Iterable[MerchantSetting] = ()) -> MerchantCredentials:
        """Raises DomainValidationException when merchant id or key is missing everywhere."""
        provided = {ms.name: ms.value for ms in merchant_settings if ms.value}

        merchant_id = provided.get("merchantId") or self._env.merchant_id
        merchant_key = provided.get("merchantKey") or self._env.merchant_key
        client_secret = provided.get("clientSecret") or self._env.client_secret

        missing = [
            name
            for name, value in (("merchantId", merchant_id), ("merchantKey", merchant_key))
            if not (value or "").strip()
        ]
        if missing:
            self._logger.error("merchant_credentials_missing", missing=missing)
            raise DomainValidationException(
                f"Missing merchant credentials: {', '.join(missing)}",
                field=missing[0],
            )

        return MerchantCredentials(
            merchant_id=merchant_id,
            merchant_key=merchant_key,
            client_secret=client_secret,
            consultant_merchant_id=provided.get("consultantMerchantId"),
        )

    def from_env(self) -> MerchantCredentials:
        """Credentials for cancel/settle/refund, where no merchant settings travel."""
        return self.resolve(())
