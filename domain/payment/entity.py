"""
支付领域实体 - 支付记录（双键索引的逻辑记录）
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Collection, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
    StaleStatusException,
)
from domain.payment.status import PaymentStatus, is_known, is_terminal

PIX_PAYMENT_TYPE = "pix"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SplitEntry:
    """单个分账接收方；金额为最小货币单位（分）"""
    subordinate_merchant_id: str
    amount: int
    mdr: Optional[float] = None
    fee: Optional[int] = None


@dataclass
class PaymentRecord:
    """
    支付记录 - 平台支付ID与网关支付ID两个键指向同一逻辑记录

    业务规则：
    1. 状态必须是已知的网关状态码
    2. 金额不能为负
    3. 终态（Voided/Refunded/Aborted/Denied）之后不允许再变更状态，
       同一终态的重复确认视为无操作
    """

    gateway_payment_id: str
    merchant_order_id: str
    status: int
    payment_type: str = PIX_PAYMENT_TYPE
    amount: int = 0

    platform_payment_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    order_id: Optional[str] = None
    callback_url: Optional[str] = None
    buyer_id: Optional[str] = None
    buyer_document: Optional[str] = None

    split_payments: list[SplitEntry] = field(default_factory=list)
    consultant_split_amount: Optional[int] = None
    master_split_amount: Optional[int] = None

    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    def __post_init__(self):
        if not is_known(self.status):
            raise DomainValidationException(f"Unknown payment status: {self.status}", field="status")
        if self.amount < 0:
            raise DomainValidationException(f"Amount must be non-negative: {self.amount}", field="amount")
        self.created_at = _ensure_utc(self.created_at)
        self.last_updated = _ensure_utc(self.last_updated)

    @property
    def keys(self) -> tuple[str, ...]:
        """Index keys the record is reachable by (gateway id first)."""
        if self.platform_payment_id and self.platform_payment_id != self.gateway_payment_id:
            return (self.gateway_payment_id, self.platform_payment_id)
        return (self.gateway_payment_id,)

    @property
    def is_pix(self) -> bool:
        return self.payment_type == PIX_PAYMENT_TYPE

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def with_status(
        self,
        status: int,
        *,
        expected: Optional[Collection[int]] = None,
        now: Optional[datetime] = None,
        **changes,
    ) -> "PaymentRecord":
        """
        返回应用新状态后的副本

        Raises StaleStatusException when ``expected`` is given and the current
        status is not in it, and InvalidStatusTransitionException when the
        record is terminal and the requested status differs. Re-confirming the
        same terminal status only refreshes ``last_updated``.
        """
        if expected is not None and self.status not in expected:
            raise StaleStatusException(self.gateway_payment_id, self.status, status, expected=expected)
        if self.is_terminal and status != self.status:
            raise InvalidStatusTransitionException(self.gateway_payment_id, self.status, status)
        return replace(self, status=int(status), last_updated=now or utcnow(), **changes)

    def touched(self, *, now: Optional[datetime] = None) -> "PaymentRecord":
        return replace(self, last_updated=now or utcnow())

    def splits_summary(self) -> list[dict]:
        return [
            {
                "subordinate_merchant_id": s.subordinate_merchant_id,
                "amount": s.amount,
                "mdr": s.mdr,
                "fee": s.fee,
            }
            for s in self.split_payments
        ]


__all__ = ["PaymentRecord", "SplitEntry", "PaymentStatus", "PIX_PAYMENT_TYPE", "utcnow"]
