"""
订单系统客户端 - 读取分账所需的订单数据、取消订单
"""
import logging
from typing import Any, Dict, Optional

from application.dtos.payments import OrderSplitData
from .base import BaseAPIClient

logger = logging.getLogger(__name__)

CONSULTANT_APP_ID = "consultant"
SPLIT_SIMULATION_APP_ID = "splitsimulation"
COUPON_PARAMETER = "couponCode@Marketing"


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _custom_app_fields(order: Dict[str, Any], app_id: str) -> Dict[str, Any]:
    apps = ((order.get("customData") or {}).get("customApps")) or []
    for app in apps:
        if app.get("id") == app_id:
            return app.get("fields") or {}
    return {}


def _coupon_discount(order: Dict[str, Any]) -> float:
    """优惠券折扣：匹配优惠券促销ID的商品价格标签绝对值之和"""
    coupon = (order.get("marketingData") or {}).get("coupon")
    if not coupon:
        return 0.0
    identifiers = (order.get("ratesAndBenefitsData") or {}).get("rateAndBenefitsIdentifiers") or []
    promotion_id = next(
        (p.get("id") for p in identifiers if (p.get("matchedParameters") or {}).get(COUPON_PARAMETER) == coupon),
        None,
    )
    if not promotion_id:
        return 0.0
    total = 0.0
    for item in order.get("items") or []:
        for tag in item.get("priceTags") or []:
            if tag.get("identifier") == promotion_id:
                total += abs(float(tag.get("value") or 0))
                break
    return total


def extract_split_data(order: Dict[str, Any]) -> OrderSplitData:
    """
    从订单详情中提取分账数据

    Totals are in minor units, exactly as the order system reports them.
    """
    consultant = _custom_app_fields(order, CONSULTANT_APP_ID)
    split_app = _custom_app_fields(order, SPLIT_SIMULATION_APP_ID)

    consultant_id = consultant.get("consultantId")
    subordinate_id = consultant.get("braspagId") or (consultant_id.split("_")[0] if consultant_id else None)

    totals = {t.get("id"): t.get("value") for t in order.get("totals") or []}

    return OrderSplitData(
        subordinate_merchant_id=subordinate_id or None,
        split_profit_pct=_to_float(split_app.get("splitProfitPct")),
        split_discount_pct=_to_float(split_app.get("splitDiscountPct")),
        items_subtotal=_to_float(totals.get("Items")),
        discounts_subtotal=_to_float(totals.get("Discounts")) or 0.0,
        shipping_value=_to_float(totals.get("Shipping")) or 0.0,
        coupon_discount=_coupon_discount(order),
    )


class OrdersClient(BaseAPIClient):
    """订单管理系统客户端"""

    def __init__(self, base_url: str, auth_token: Optional[str] = None, timeout: float = 10.0, **kwargs):
        headers = {"VtexIdclientAutCookie": auth_token} if auth_token else None
        super().__init__(base_url=base_url, timeout=timeout, max_retries=2, retry_delay=0.5, headers=headers, **kwargs)

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        response = await self.get(f"/api/oms/pvt/orders/{order_id}")
        return response.json() or {}

    async def get_split_data(self, order_id: str) -> Optional[OrderSplitData]:
        order = await self.get_order(order_id)
        if not order:
            return None
        return extract_split_data(order)

    async def cancel_order(self, order_id: str, reason: str) -> None:
        await self.post(f"/api/oms/pvt/orders/{order_id}/cancel", json_data={"reason": reason})
        logger.info("Order cancelled", extra={"order_id": order_id, "reason": reason})
