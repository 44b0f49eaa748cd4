"""In-process doubles for the gateway, collaborators and the logger."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from application.dtos.payments import (
    OrderSplitData,
    OutboundSplitEvent,
    SaleRequest,
    SaleResult,
    VoidResult,
)
from application.ports.collaborators import IssuedVoucher
from domain.payment.entity import PaymentRecord, SplitEntry, utcnow
from domain.payment.status import PaymentStatus
from infrastructure.repositories.payment_store import InMemoryPaymentStore


class RecordingLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, event: str, **kw: Any) -> None:
        self.records.append(("info", event, kw))

    def warning(self, event: str, **kw: Any) -> None:
        self.records.append(("warning", event, kw))

    def error(self, event: str, **kw: Any) -> None:
        self.records.append(("error", event, kw))

    def events(self, level: Optional[str] = None) -> list[str]:
        return [event for lvl, event, _ in self.records if level is None or lvl == level]


class FakeGateway:
    provider = "fake"

    def __init__(self) -> None:
        self.sale_result = SaleResult(
            payment_id="gw-1",
            status=int(PaymentStatus.PENDING),
            tid="tid-1",
            qr_code_string="00020101021226",
            qr_code_base64_image="iVBORw0KGgo=",
        )
        self.sale_error: Optional[Exception] = None
        self.query_result: Optional[SaleResult] = None
        self.query_error: Optional[Exception] = None
        self.void_result = VoidResult(status=int(PaymentStatus.REFUNDED), reason_code=0)
        self.void_error: Optional[Exception] = None
        # Runs while a status query is in flight, e.g. to deliver a webhook.
        self.on_query: Optional[Callable[[], Awaitable[None]]] = None
        self.sales: list[SaleRequest] = []
        self.queries: list[str] = []
        self.voids: list[str] = []

    async def create_sale(self, req: SaleRequest) -> SaleResult:
        self.sales.append(req)
        await asyncio.sleep(0)
        if self.sale_error:
            raise self.sale_error
        return self.sale_result

    async def query_status(self, payment_id: str) -> SaleResult:
        self.queries.append(payment_id)
        if self.on_query is not None:
            await self.on_query()
        if self.query_error:
            raise self.query_error
        return self.query_result or SaleResult(payment_id=payment_id)

    async def void_payment(self, payment_id: str, amount: Optional[int] = None) -> VoidResult:
        self.voids.append(payment_id)
        if self.void_error:
            raise self.void_error
        return self.void_result

    async def aclose(self) -> None:
        return None


class FakeOrders:
    def __init__(self, split_data: Optional[OrderSplitData] = None, fail_cancel: bool = False) -> None:
        self.split_data = split_data
        self.fail_cancel = fail_cancel
        self.lookups: list[str] = []
        self.cancelled: list[tuple[str, str]] = []

    async def get_split_data(self, order_id: str) -> Optional[OrderSplitData]:
        self.lookups.append(order_id)
        return self.split_data

    async def cancel_order(self, order_id: str, reason: str) -> None:
        if self.fail_cancel:
            raise RuntimeError("order system unavailable")
        self.cancelled.append((order_id, reason))


class FakeVouchers:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.issued: list[dict[str, Any]] = []

    async def issue_refund_voucher(self, *, user_id: str, amount: int, order_id: str) -> IssuedVoucher:
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("voucher service unavailable")
        self.issued.append({"user_id": user_id, "amount": amount, "order_id": order_id})
        return IssuedVoucher(voucher_id="gc-1", redemption_code="ABCD-1234")


class FakeForwarder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[OutboundSplitEvent] = []

    async def forward_status_event(self, event: OutboundSplitEvent) -> None:
        if self.fail:
            raise RuntimeError("platform unreachable")
        self.events.append(event)


def make_record(
    status: int = PaymentStatus.PENDING,
    *,
    gateway_payment_id: str = "gw-1",
    platform_payment_id: str = "pay-1",
    amount: int = 10000,
    payment_type: str = "pix",
    **kwargs: Any,
) -> PaymentRecord:
    now = utcnow()
    kwargs.setdefault("split_payments", [SplitEntry("marketplace-1", 8000, 50.0, 100), SplitEntry("sub-1", 2000, 50.0, 100)])
    return PaymentRecord(
        gateway_payment_id=gateway_payment_id,
        platform_payment_id=platform_payment_id,
        merchant_order_id="tx-1",
        order_id="order-1",
        status=int(status),
        payment_type=payment_type,
        amount=amount,
        created_at=now,
        last_updated=now,
        **kwargs,
    )


class YieldingStore(InMemoryPaymentStore):
    """In-memory store whose reads suspend, as a network round trip does."""

    async def get(self, key: str) -> Optional[PaymentRecord]:
        await asyncio.sleep(0)
        return await super().get(key)
