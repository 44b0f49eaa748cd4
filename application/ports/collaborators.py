"""
Ports for the platform-side collaborators: order system, voucher issuer and
the status forwarder used on Paid transitions.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import OrderSplitData, OutboundSplitEvent


@dataclass(frozen=True)
class IssuedVoucher:
    voucher_id: str
    redemption_code: str


@runtime_checkable
class Logger(Protocol):
    """Structured logger capability required by every service constructor."""

    def info(self, event: str, **kw: Any) -> Any: ...

    def warning(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...


@runtime_checkable
class OrderService(Protocol):
    async def get_split_data(self, order_id: str) -> Optional[OrderSplitData]: ...

    async def cancel_order(self, order_id: str, reason: str) -> None: ...


@runtime_checkable
class VoucherIssuer(Protocol):
    async def issue_refund_voucher(self, *, user_id: str, amount: int, order_id: str) -> IssuedVoucher: ...


@runtime_checkable
class StatusForwarder(Protocol):
    async def forward_status_event(self, event: OutboundSplitEvent) -> None: ...
