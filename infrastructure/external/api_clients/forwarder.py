"""
状态转发客户端 - 支付变为 Paid 时通知平台
"""
from typing import Optional

from application.dtos.payments import OutboundSplitEvent
from .base import APIError, BaseAPIClient


class HttpStatusForwarder(BaseAPIClient):
    """POSTs the event to its ``callback_url``, or to ``base_url`` when unset."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10.0, **kwargs):
        super().__init__(base_url=base_url or "", timeout=timeout, max_retries=1, retry_delay=0.5, **kwargs)

    async def forward_status_event(self, event: OutboundSplitEvent) -> None:
        target = event.callback_url or self.base_url
        if not target:
            raise APIError(f"No forwarding target for payment {event.payment_id}")
        await self.post(
            target,
            json_data={
                "paymentId": event.platform_payment_id or event.payment_id,
                "gatewayPaymentId": event.payment_id,
                "merchantOrderId": event.merchant_order_id,
                "status": event.status,
                "amount": event.amount,
            },
        )
