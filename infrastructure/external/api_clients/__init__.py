"""
API客户端模块

平台侧协作方（订单、礼品卡、状态转发）的 REST 客户端
"""
from .base import BaseAPIClient, APIResponse, APIError
from .forwarder import HttpStatusForwarder
from .giftcards import GiftCardClient
from .orders import OrdersClient

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "GiftCardClient",
    "HttpStatusForwarder",
    "OrdersClient",
]
