"""
分账佣金计算 - 根据优惠券归属调整主/从商户百分比

The calculator works on percentages, never amounts: whatever the customer
actually paid is always distributed 100% between the platform (master) and
the consultant (subordinate).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OrderValues:
    total_items_amount: float
    total_discount_amount: float = 0.0
    coupon_discount_amount: Optional[float] = None


@dataclass(frozen=True)
class Commissions:
    master: float
    subordinate: float


def customer_paid(order_values: OrderValues) -> float:
    """Amount the customer actually paid for the items (discount sign ignored)."""
    return order_values.total_items_amount - abs(order_values.total_discount_amount)


def calculate_commissions(
    order_values: OrderValues,
    raw_commissions: Commissions,
    shared_coupon: bool,
    is_free_shipping_coupon: bool = False,
) -> Commissions:
    """
    Recompute master/subordinate percentages after a coupon.

    Without a coupon, or with a free-shipping-only coupon, the raw
    commissions are returned unchanged. When the amount the customer paid is
    zero or negative the raw commissions are returned as well.
    """
    if not order_values.coupon_discount_amount or is_free_shipping_coupon:
        return raw_commissions

    base_amount = order_values.total_items_amount
    coupon_amount = abs(order_values.coupon_discount_amount)
    total_discount = abs(order_values.total_discount_amount)

    paid = customer_paid(order_values)
    if paid <= 0:
        return raw_commissions

    brand_discount = total_discount - coupon_amount
    consultant_base = base_amount - brand_discount
    consultant_gross = raw_commissions.subordinate / 100 * consultant_base

    # Shared coupons charge the consultant half; consultant coupons the whole.
    coupon_charge = coupon_amount / 2 if shared_coupon else coupon_amount
    consultant_net = consultant_gross - coupon_charge
    master_net = paid - consultant_net

    return Commissions(
        master=master_net / paid * 100,
        subordinate=consultant_net / paid * 100,
    )
