"""
Exceptions for the payment gateway mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class GatewayError(BusinessException):
    """Transport failure, timeout or unexpected gateway response; the caller may retry the operation."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "braspag",
        status_code: int | None = None,
        reason_code: int | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "GatewayError",
    ):
        full_details = {"provider": provider, "status_code": status_code, "reason_code": reason_code}
        if details:
            full_details.update(details)
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)
        self.status_code = status_code
        self.reason_code = reason_code


class GatewayTimeoutError(GatewayError):
    def __init__(self, message: str, *, provider: str = "braspag", details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            details=details,
            code=PaymentCode.TIMEOUT,
            error_type="GatewayTimeoutError",
        )


class GatewayNotFoundError(GatewayError):
    def __init__(self, payment_id: str, *, provider: str = "braspag"):
        super().__init__(
            f"Payment {payment_id} not found at gateway",
            provider=provider,
            status_code=404,
            details={"payment_id": payment_id},
            code=PaymentCode.PROVIDER_NOT_FOUND,
            error_type="GatewayNotFoundError",
        )
        self.payment_id = payment_id


class SplitTransactionalError(GatewayError):
    """Void rejected because of the split configuration; escalate to a voucher refund."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "braspag",
        status_code: int | None = None,
        reason_code: int | None = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            provider=provider,
            status_code=status_code,
            reason_code=reason_code,
            details=details,
            code=PaymentCode.SPLIT_TRANSACTIONAL_ERROR,
            error_type="SplitTransactionalError",
        )


class GatewayAuthenticationError(GatewayError):
    def __init__(self, message: str, *, provider: str = "braspag", details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            status_code=401,
            details=details,
            code=PaymentCode.AUTHENTICATION_ERROR,
            error_type="GatewayAuthenticationError",
        )
