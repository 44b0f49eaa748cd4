"""
Refund escape valve: when the gateway cannot void a split PIX payment the
buyer is refunded with a voucher and the originating order is cancelled.
"""
from __future__ import annotations

import time
from typing import Optional

from application.dtos.payments import VoucherRefundRequest, VoucherRefundResponse
from application.ports.collaborators import Logger, OrderService, VoucherIssuer
from domain.common.exceptions import DomainValidationException, PaymentNotFoundException
from domain.payment.repository import PaymentStore
from domain.payment.status import PaymentStatus, describe, is_already_cancelled

ORDER_CANCEL_REASON = "Reembolso via voucher - Gift card criado"


class VoucherRefundService:
    def __init__(
        self,
        *,
        store: PaymentStore,
        vouchers: VoucherIssuer,
        logger: Logger,
        orders: Optional[OrderService] = None,
    ) -> None:
        self.store = store
        self.vouchers = vouchers
        self.orders = orders
        self.logger = logger

    async def refund(self, payment_id: str, req: VoucherRefundRequest) -> VoucherRefundResponse:
        """
        Issue a refund voucher for a stored PIX payment.

        Voucher issuance failures propagate. Order cancellation is best-effort.

        Raises:
            PaymentNotFoundException: no PIX record under ``payment_id``.
            DomainValidationException: refund larger than the captured amount.
        """
        started = time.perf_counter()
        record = await self.store.get(payment_id)
        if record is None:
            raise PaymentNotFoundException(payment_id)
        if not record.is_pix:
            raise PaymentNotFoundException(
                payment_id,
                reason=PaymentNotFoundException.WRONG_TYPE,
                payment_type=record.payment_type,
            )

        # Check, issue and status advance share one lock so a payment yields at most one voucher.
        async with self.store.lock(record.gateway_payment_id):
            current = await self.store.get(record.gateway_payment_id) or record

            if is_already_cancelled(current.status):
                self.logger.info("voucher_refund_already_refunded", payment_id=payment_id, status=current.status)
                return VoucherRefundResponse(
                    success=False,
                    order_id=req.order_id,
                    message="Payment already refunded or cancelled",
                )
            if current.status != PaymentStatus.PAID:
                self.logger.warning("voucher_refund_not_paid", payment_id=payment_id, status=current.status)
                return VoucherRefundResponse(
                    success=False,
                    order_id=req.order_id,
                    message=f"Payment cannot be refunded. Status: {describe(current.status)}",
                )

            if current.amount and req.refund_value > current.amount:
                raise DomainValidationException(
                    f"Refund value {req.refund_value} exceeds payment amount {current.amount}",
                    field="refundValue",
                )

            self.logger.info(
                "voucher_refund_started",
                payment_id=payment_id,
                order_id=req.order_id,
                user_id=req.user_id,
                refund_value=req.refund_value,
            )
            voucher = await self.vouchers.issue_refund_voucher(
                user_id=req.user_id,
                amount=req.refund_value,
                order_id=req.order_id,
            )
            self.logger.info(
                "voucher_refund_issued",
                payment_id=payment_id,
                order_id=req.order_id,
                voucher_id=voucher.voucher_id,
            )
            await self.store.save(current.with_status(PaymentStatus.REFUNDED))

        await self._cancel_order(req.order_id)

        self.logger.info(
            "voucher_refund_completed",
            payment_id=payment_id,
            order_id=req.order_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return VoucherRefundResponse(
            success=True,
            order_id=req.order_id,
            gift_card_id=voucher.voucher_id,
            redemption_code=voucher.redemption_code,
            refund_value=req.refund_value,
            message="Refund voucher issued",
        )

    async def _cancel_order(self, order_id: str) -> None:
        if self.orders is None:
            return
        try:
            await self.orders.cancel_order(order_id, ORDER_CANCEL_REASON)
        except Exception as exc:
            # The voucher already exists; a failed cancellation does not undo it.
            self.logger.error("voucher_refund_order_cancel_failed", order_id=order_id, error=str(exc))
