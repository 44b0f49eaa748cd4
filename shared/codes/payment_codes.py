"""
Payment specific codes: gateway error families and gateway reason codes.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_NOT_FOUND = 60002
    TIMEOUT = 60003
    AUTHENTICATION_ERROR = 60005
    SPLIT_TRANSACTIONAL_ERROR = 60010


class GatewayReasonCode(IntEnum):
    """ReasonCode values reported by the gateway on sale/void responses."""

    SUCCESSFUL = 0
    NOT_FOUND = 6
    PROBLEMS_WITH_CREDITCARD = 16
    SPLIT_TRANSACTIONAL_ERROR = 37


# Reason codes that mean the void failed because of the split configuration
# and can only be settled out-of-band.
SPLIT_TRANSACTIONAL_REASON_CODES = frozenset({GatewayReasonCode.SPLIT_TRANSACTIONAL_ERROR})


# Machine-readable codes returned on deny responses
class DenyCode:
    ERROR = "ERROR"
    DENIED = "DENIED"
    NOT_FOUND = "NOT_FOUND"
    WRONG_TYPE = "WRONG_TYPE"
    CONFLICT = "CONFLICT"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    SPLIT_TRANSACTIONAL_ERROR = "SPLIT_TRANSACTIONAL_ERROR"
    TID_REQUIRED = "TID_REQUIRED"


class ResponseMessage:
    PIX_CREATED = "PIX payment created successfully"
    PIX_CREATION_FAILED = "PIX payment creation failed - no payment data returned"
    PIX_ARTIFACT_MISSING = "PIX payment creation failed - no QR code returned"
    PIX_ABORTED = "PIX payment aborted - consultant account not approved"
    PIX_CANCELLED = "PIX payment cancelled"
    PIX_REFUNDED = "PIX payment refunded"
    PIX_ALREADY_CANCELLED = "PIX payment already cancelled"
    PIX_ALREADY_REFUNDED = "PIX payment already refunded"
    PIX_SETTLED = "PIX payment settled successfully"
    PIX_NOT_FOUND = "PIX payment not found"
    PIX_WRONG_TYPE = "Payment is not a PIX payment"
    PIX_STATUS_CHANGED = "PIX payment status changed concurrently; retry the operation"
    SPLIT_TRANSACTIONAL_ERROR = "Gateway void failed due to split configuration; use voucher refund"
    TID_REQUIRED = "Transaction ID (tid) is required for settlement"
