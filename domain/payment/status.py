"""
支付状态模型 - 网关状态码与取消/结算资格判定

Operations and notification flows consult this module; neither re-derives
eligibility on its own.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class PaymentStatus(IntEnum):
    """Gateway status codes"""
    NOT_FINISHED = 0            # transient, only observed mid-creation
    PENDING = 1
    PAID = 2
    DENIED = 3
    VOIDED = 10
    REFUNDED = 11
    PENDING_AUTHORIZATION = 12
    ABORTED = 13
    SCHEDULED = 20


_DESCRIPTIONS = {
    PaymentStatus.NOT_FINISHED: "NotFinished",
    PaymentStatus.PENDING: "Pending",
    PaymentStatus.PAID: "Paid",
    PaymentStatus.DENIED: "Denied",
    PaymentStatus.VOIDED: "Voided",
    PaymentStatus.REFUNDED: "Refunded",
    PaymentStatus.PENDING_AUTHORIZATION: "PendingAuthorization",
    PaymentStatus.ABORTED: "Aborted",
    PaymentStatus.SCHEDULED: "Scheduled",
}

CANCELLABLE_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.SCHEDULED})
_TERMINAL = frozenset({
    PaymentStatus.VOIDED,
    PaymentStatus.REFUNDED,
    PaymentStatus.ABORTED,
    PaymentStatus.DENIED,
})
_ALREADY_CANCELLED = frozenset({PaymentStatus.VOIDED, PaymentStatus.REFUNDED})


def is_known(status: int) -> bool:
    return status in PaymentStatus._value2member_map_


def can_cancel(status: int) -> bool:
    """Only Pending and Scheduled payments can be cancelled locally."""
    return status in CANCELLABLE_STATUSES


def can_settle(status: int) -> bool:
    return status == PaymentStatus.PAID


def is_terminal(status: int) -> bool:
    return status in _TERMINAL


def is_already_cancelled(status: int) -> bool:
    return status in _ALREADY_CANCELLED


def describe(status: int) -> str:
    """Human-readable name; unknown codes render as ``Unknown(<code>)``."""
    try:
        return _DESCRIPTIONS[PaymentStatus(status)]
    except ValueError:
        return f"Unknown({status})"


@dataclass(frozen=True)
class StatusInfo:
    status: int
    can_cancel: bool
    can_settle: bool
    is_terminal: bool
    is_pending: bool
    description: str


def status_info(status: int) -> StatusInfo:
    return StatusInfo(
        status=status,
        can_cancel=can_cancel(status),
        can_settle=can_settle(status),
        is_terminal=is_terminal(status),
        is_pending=status in CANCELLABLE_STATUSES,
        description=describe(status),
    )
