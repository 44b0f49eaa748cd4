"""
Builds the outbound PIX sale request and its split entries.

Monetary values are converted to integer minor units exactly once, here.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from application.dtos.payments import (
    AuthorizationRequest,
    OrderSplitData,
    PaymentAppData,
    SaleCustomer,
    SaleFares,
    SalePayment,
    SaleRequest,
    SaleResult,
    SaleSplitPayment,
    SplitInstruction,
)
from application.ports.collaborators import Logger
from core.settings import SplitSettings
from domain.payment.commission import Commissions, OrderValues, calculate_commissions, customer_paid
from domain.payment.entity import SplitEntry


def to_minor_units(value: float | Decimal) -> int:
    """Currency units to cents, rounding half away from zero."""
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class SplitPlan:
    entries: list[SplitEntry] = field(default_factory=list)
    consultant_amount: Optional[int] = None
    master_amount: Optional[int] = None


class SaleRequestBuilder:
    def __init__(self, split_settings: SplitSettings, logger: Logger) -> None:
        self._split = split_settings
        self._logger = logger

    def build(
        self,
        req: AuthorizationRequest,
        *,
        notification_url: Optional[str],
        order_data: Optional[OrderSplitData] = None,
        consultant_merchant_id: Optional[str] = None,
    ) -> tuple[SaleRequest, SplitPlan]:
        amount = to_minor_units(req.value)
        plan = self.plan_splits(
            amount,
            explicit=req.splits,
            order_data=order_data,
            consultant_merchant_id=consultant_merchant_id,
        )
        buyer = req.mini_cart.buyer
        sale = SaleRequest(
            merchant_order_id=req.transaction_id,
            customer=SaleCustomer(name=buyer.display_name, identity=buyer.identity),
            payment=SalePayment(
                amount=amount,
                notification_url=notification_url,
                split_payments=[self._to_wire(e) for e in plan.entries] or None,
            ),
        )
        return sale, plan

    def plan_splits(
        self,
        amount: int,
        *,
        explicit: Optional[list[SplitInstruction]] = None,
        order_data: Optional[OrderSplitData] = None,
        consultant_merchant_id: Optional[str] = None,
    ) -> SplitPlan:
        if explicit:
            return SplitPlan(entries=[self._from_instruction(s) for s in explicit])
        if order_data is None:
            return SplitPlan()
        return self._synthesize(amount, order_data, consultant_merchant_id)

    def _from_instruction(self, s: SplitInstruction) -> SplitEntry:
        commission = s.commission
        return SplitEntry(
            subordinate_merchant_id=s.merchant_id,
            amount=to_minor_units(s.amount),
            mdr=commission.gateway if commission and commission.gateway is not None else self._split.default_mdr,
            fee=commission.fee if commission and commission.fee is not None else self._split.default_fee,
        )

    def _synthesize(
        self,
        amount: int,
        data: OrderSplitData,
        consultant_merchant_id: Optional[str],
    ) -> SplitPlan:
        subordinate_id = data.subordinate_merchant_id or consultant_merchant_id
        master_id = self._split.marketplace_merchant_id
        if not subordinate_id or not data.split_profit_pct or not master_id:
            self._logger.info(
                "split_skipped_missing_data",
                has_subordinate_merchant_id=bool(subordinate_id),
                has_split_profit_pct=bool(data.split_profit_pct),
                has_marketplace_merchant_id=bool(master_id),
            )
            return SplitPlan()

        taxes = data.total_taxes if data.total_taxes is not None else self._split.default_total_taxes
        subordinate_raw = max(0.0, min(100.0, data.split_profit_pct - taxes))
        raw = Commissions(master=100.0 - subordinate_raw, subordinate=subordinate_raw)

        values = OrderValues(
            total_items_amount=data.items_subtotal if data.items_subtotal is not None else amount,
            total_discount_amount=data.discounts_subtotal,
            coupon_discount_amount=data.coupon_discount,
        )
        if values.coupon_discount_amount and not data.is_free_shipping_coupon and customer_paid(values) <= 0:
            self._logger.warning(
                "commission_customer_paid_non_positive",
                total_items_amount=values.total_items_amount,
                total_discount_amount=abs(values.total_discount_amount),
            )
        adjusted = calculate_commissions(
            values,
            raw,
            shared_coupon=not data.is_consultant_coupon,
            is_free_shipping_coupon=data.is_free_shipping_coupon,
        )

        # Shipping never enters the consultant base.
        net_amount = max(0, amount - _round_half_up(data.shipping_value))
        consultant_amount = _round_half_up(net_amount * adjusted.subordinate / 100)
        consultant_amount = max(0, min(amount, consultant_amount))
        master_amount = amount - consultant_amount

        self._logger.info(
            "split_synthesized",
            subordinate_merchant_id=subordinate_id,
            raw_subordinate_pct=raw.subordinate,
            adjusted_subordinate_pct=adjusted.subordinate,
            consultant_amount=consultant_amount,
            master_amount=master_amount,
        )
        return SplitPlan(
            entries=[
                SplitEntry(master_id, master_amount, self._split.default_mdr, self._split.default_fee),
                SplitEntry(subordinate_id, consultant_amount, self._split.default_mdr, self._split.default_fee),
            ],
            consultant_amount=consultant_amount,
            master_amount=master_amount,
        )

    @staticmethod
    def _to_wire(entry: SplitEntry) -> SaleSplitPayment:
        return SaleSplitPayment(
            subordinate_merchant_id=entry.subordinate_merchant_id,
            amount=entry.amount,
            fares=SaleFares(mdr=entry.mdr, fee=entry.fee),
        )


def build_payment_app_data(result: SaleResult) -> Optional[PaymentAppData]:
    """Proof-of-payment artifact handed back to the platform; None without a QR code."""
    code = result.qr_code_string
    image = result.qr_code_image
    if not code and not image:
        return None
    payload: dict[str, str] = {}
    if code:
        payload.update(code=code, qrCodeString=code)
    if image:
        payload.update(qrCodeBase64Image=image, qrCodeBase64=image)
    return PaymentAppData(payload=json.dumps(payload))
