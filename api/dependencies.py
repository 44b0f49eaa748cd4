"""
API依赖项 - 组合根

Wires stores, gateway factory, collaborator clients and application services.
Routes depend only on the ``get_*_service`` providers, which tests replace via
``app.dependency_overrides``.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status

from application.ports.collaborators import OrderService, StatusForwarder, VoucherIssuer
from application.services.authorization_service import AuthorizationService
from application.services.merchant_config import MerchantConfigService
from application.services.notification_service import NotificationReconciler
from application.services.operations_service import PaymentOperationsService
from application.services.sale_request_builder import SaleRequestBuilder
from application.services.voucher_refund_service import VoucherRefundService
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.payment.repository import AuthorizationStore, PaymentStore
from infrastructure.external.api_clients import GiftCardClient, HttpStatusForwarder, OrdersClient
from infrastructure.external.cache import get_redis_client
from infrastructure.external.payments import get_payment_gateway
from infrastructure.repositories.payment_store import (
    InMemoryAuthorizationStore,
    InMemoryPaymentStore,
    RedisAuthorizationStore,
    RedisPaymentStore,
)

_memory_payments = InMemoryPaymentStore()
_memory_authorizations = InMemoryAuthorizationStore()

_orders_client: Optional[OrdersClient] = None
_giftcard_client: Optional[GiftCardClient] = None
_forwarder: Optional[HttpStatusForwarder] = None


# ============= 存储 =============

async def get_payment_store() -> PaymentStore:
    if settings.storage_backend == "redis":
        return RedisPaymentStore(
            await get_redis_client(),
            get_logger("infrastructure.payment_store"),
            lock_timeout=payment_settings.lock.timeout,
            lock_blocking_timeout=payment_settings.lock.blocking_timeout,
        )
    return _memory_payments


async def get_authorization_store() -> AuthorizationStore:
    if settings.storage_backend == "redis":
        return RedisAuthorizationStore(await get_redis_client())
    return _memory_authorizations


# ============= 协作方 =============

def get_order_service() -> Optional[OrderService]:
    global _orders_client
    cfg = payment_settings.collaborators
    if not cfg.orders_url:
        return None
    if _orders_client is None:
        _orders_client = OrdersClient(cfg.orders_url, auth_token=cfg.auth_token, timeout=cfg.timeout)
    return _orders_client


def get_voucher_issuer() -> VoucherIssuer:
    global _giftcard_client
    cfg = payment_settings.collaborators
    if not cfg.vouchers_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Voucher service is not configured",
        )
    if _giftcard_client is None:
        _giftcard_client = GiftCardClient(cfg.vouchers_url, auth_token=cfg.auth_token, timeout=cfg.timeout)
    return _giftcard_client


def get_status_forwarder() -> StatusForwarder:
    global _forwarder
    if _forwarder is None:
        _forwarder = HttpStatusForwarder(payment_settings.forward_url, timeout=payment_settings.collaborators.timeout)
    return _forwarder


async def close_collaborators() -> None:
    global _orders_client, _giftcard_client, _forwarder
    for client in (_orders_client, _giftcard_client, _forwarder):
        if client is not None:
            await client.close()
    _orders_client = _giftcard_client = _forwarder = None


def get_merchant_config() -> MerchantConfigService:
    return MerchantConfigService(payment_settings.gateway, get_logger("application.merchant_config"))


# ============= 应用服务 =============

async def get_authorization_service(
    store: PaymentStore = Depends(get_payment_store),
    authorizations: AuthorizationStore = Depends(get_authorization_store),
    config: MerchantConfigService = Depends(get_merchant_config),
    orders: Optional[OrderService] = Depends(get_order_service),
) -> AuthorizationService:
    return AuthorizationService(
        store=store,
        authorizations=authorizations,
        config=config,
        gateway_factory=get_payment_gateway,
        builder=SaleRequestBuilder(payment_settings.split, get_logger("application.sale_request_builder")),
        delays=payment_settings.delays,
        orders=orders,
        notification_url=payment_settings.notification_url,
        logger=get_logger("application.authorization"),
    )


async def get_operations_service(
    store: PaymentStore = Depends(get_payment_store),
    config: MerchantConfigService = Depends(get_merchant_config),
) -> PaymentOperationsService:
    return PaymentOperationsService(
        store=store,
        config=config,
        gateway_factory=get_payment_gateway,
        logger=get_logger("application.operations"),
    )


async def get_notification_reconciler(
    store: PaymentStore = Depends(get_payment_store),
    config: MerchantConfigService = Depends(get_merchant_config),
    forwarder: StatusForwarder = Depends(get_status_forwarder),
) -> NotificationReconciler:
    return NotificationReconciler(
        store=store,
        config=config,
        gateway_factory=get_payment_gateway,
        forwarder=forwarder,
        forward_url=payment_settings.forward_url,
        logger=get_logger("application.notifications"),
    )


async def get_voucher_refund_service(
    store: PaymentStore = Depends(get_payment_store),
    vouchers: VoucherIssuer = Depends(get_voucher_issuer),
    orders: Optional[OrderService] = Depends(get_order_service),
) -> VoucherRefundService:
    return VoucherRefundService(
        store=store,
        vouchers=vouchers,
        orders=orders,
        logger=get_logger("application.voucher_refund"),
    )
