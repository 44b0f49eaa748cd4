"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Implementations raise the gateway exception family from
``infrastructure.external.payments.exceptions``.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import SaleRequest, SaleResult, VoidResult


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the PIX payment provider.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def create_sale(self, req: SaleRequest) -> SaleResult: ...

    async def query_status(self, payment_id: str) -> SaleResult: ...

    async def void_payment(self, payment_id: str, amount: Optional[int] = None) -> VoidResult: ...

    async def aclose(self) -> None: ...
