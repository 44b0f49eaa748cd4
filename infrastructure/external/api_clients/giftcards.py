"""
礼品卡服务客户端 - 以礼品卡形式发放退款
"""
import logging
from typing import Optional

from application.ports.collaborators import IssuedVoucher
from .base import APIError, BaseAPIClient

logger = logging.getLogger(__name__)


class GiftCardClient(BaseAPIClient):
    def __init__(self, base_url: str, auth_token: Optional[str] = None, timeout: float = 10.0, **kwargs):
        # Issuing twice would hand out two vouchers, so no retries here.
        super().__init__(base_url=base_url, timeout=timeout, max_retries=0, auth_token=auth_token, **kwargs)

    async def issue_refund_voucher(self, *, user_id: str, amount: int, order_id: str) -> IssuedVoucher:
        response = await self.post(
            "/_v/refund",
            json_data={"userId": user_id, "refundValue": amount, "orderId": order_id},
        )
        body = response.json() or {}
        gift_card_id = body.get("giftCardId")
        if not gift_card_id:
            raise APIError("Voucher service returned no giftCardId", status_code=response.status_code, response=response)
        logger.info("Refund voucher issued", extra={"order_id": order_id, "gift_card_id": gift_card_id})
        return IssuedVoucher(voucher_id=str(gift_card_id), redemption_code=str(body.get("redemptionCode") or ""))
