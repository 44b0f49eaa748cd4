"""
Application service for PIX authorization.

Builds the sale (with split), submits it to the gateway and records the
result under both payment keys. Replays stored outcomes for repeated
authorizations of the same platform payment id.
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from application.dtos.payments import (
    AuthorizationRequest,
    AuthorizationResponse,
    OrderSplitData,
    PaymentAppData,
)
from application.ports.collaborators import Logger, OrderService
from application.ports.payment_gateway import PaymentGateway
from application.services.merchant_config import MerchantConfigService, MerchantCredentials
from application.services.sale_request_builder import (
    SaleRequestBuilder,
    build_payment_app_data,
    to_minor_units,
)
from core.settings import PaymentDelays
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentRecord, utcnow
from domain.payment.repository import AuthorizationStore, PaymentStore
from domain.payment.status import PaymentStatus, describe, is_known, is_terminal
from infrastructure.external.payments.exceptions import GatewayError
from shared.codes.payment_codes import DenyCode, ResponseMessage

GatewayFactory = Callable[[MerchantCredentials], PaymentGateway]


class AuthorizationService:
    def __init__(
        self,
        *,
        store: PaymentStore,
        authorizations: AuthorizationStore,
        config: MerchantConfigService,
        gateway_factory: GatewayFactory,
        builder: SaleRequestBuilder,
        delays: PaymentDelays,
        logger: Logger,
        orders: Optional[OrderService] = None,
        notification_url: Optional[str] = None,
    ) -> None:
        self.store = store
        self.authorizations = authorizations
        self.config = config
        self.gateway_factory = gateway_factory
        self.builder = builder
        self.delays = delays
        self.orders = orders
        self.notification_url = notification_url
        self.logger = logger

    async def authorize(self, req: AuthorizationRequest) -> AuthorizationResponse:
        """
        Authorize once per platform payment id.

        Lookup, sale creation and persistence run under the platform id lock,
        so a concurrent retry waits and then replays the stored outcome.
        """
        async with self.store.lock(req.payment_id):
            existing = await self.store.get(req.payment_id)
            if existing is not None:
                return await self._replay(req, existing)
            return await self._authorize_new(req)

    async def _authorize_new(self, req: AuthorizationRequest) -> AuthorizationResponse:
        started = time.perf_counter()
        try:
            credentials = self.config.resolve(req.merchant_settings)
        except DomainValidationException as exc:
            return self._deny(req, DenyCode.ERROR, exc.message)

        order_data = req.order_data or await self._lookup_order_data(req.order_id)
        sale, plan = self.builder.build(
            req,
            notification_url=self.notification_url,
            order_data=order_data,
            consultant_merchant_id=credentials.consultant_merchant_id,
        )
        self.logger.info(
            "pix_authorization_started",
            payment_id=req.payment_id,
            order_id=req.order_id,
            merchant_order_id=sale.merchant_order_id,
            amount=sale.payment.amount,
            split_count=len(plan.entries),
        )

        gateway = self.gateway_factory(credentials)
        try:
            result = await gateway.create_sale(sale)
        except GatewayError as exc:
            self.logger.error(
                "pix_authorization_gateway_error",
                payment_id=req.payment_id,
                error=exc.message,
                error_type=exc.error_type,
            )
            return self._deny(req, DenyCode.GATEWAY_ERROR, exc.message)

        if not result.payment_id:
            self.logger.error("pix_authorization_missing_payment_id", payment_id=req.payment_id)
            return self._deny(req, DenyCode.ERROR, ResponseMessage.PIX_CREATION_FAILED)

        status = result.status if result.status is not None else int(PaymentStatus.PENDING)
        if status == PaymentStatus.ABORTED:
            self.logger.error(
                "pix_authorization_aborted",
                payment_id=req.payment_id,
                gateway_payment_id=result.payment_id,
            )
            return self._deny(req, DenyCode.DENIED, ResponseMessage.PIX_ABORTED, tid=result.payment_id)
        if not is_known(status) or is_terminal(status):
            return self._deny(req, DenyCode.DENIED, describe(status), tid=result.payment_id)

        app_data = build_payment_app_data(result)
        if app_data is None:
            self.logger.error(
                "pix_authorization_missing_artifact",
                payment_id=req.payment_id,
                gateway_payment_id=result.payment_id,
            )
            return self._deny(req, DenyCode.ERROR, ResponseMessage.PIX_ARTIFACT_MISSING, tid=result.payment_id)

        now = utcnow()
        record = PaymentRecord(
            gateway_payment_id=result.payment_id,
            gateway_transaction_id=result.tid,
            platform_payment_id=req.payment_id,
            merchant_order_id=sale.merchant_order_id,
            order_id=req.order_id,
            status=status,
            amount=to_minor_units(req.value),
            split_payments=plan.entries,
            consultant_split_amount=plan.consultant_amount,
            master_split_amount=plan.master_amount,
            callback_url=req.callback_url,
            buyer_id=req.mini_cart.buyer.id,
            buyer_document=req.mini_cart.buyer.identity or None,
            created_at=now,
            last_updated=now,
        )
        await self.store.save(record)

        response = self._pending(req, record.gateway_payment_id, app_data, code=str(status))
        await self.authorizations.save_outcome(req.payment_id, response.model_dump(mode="json"))

        self.logger.info(
            "pix_authorization_pending",
            payment_id=req.payment_id,
            gateway_payment_id=record.gateway_payment_id,
            status=status,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    async def _lookup_order_data(self, order_id: Optional[str]) -> Optional[OrderSplitData]:
        if not order_id or self.orders is None:
            return None
        try:
            return await self.orders.get_split_data(order_id)
        except Exception as exc:  # best-effort: the sale goes out without a synthesized split
            self.logger.warning("order_split_data_lookup_failed", order_id=order_id, error=str(exc))
            return None

    async def _replay(self, req: AuthorizationRequest, record: PaymentRecord) -> AuthorizationResponse:
        self.logger.info(
            "pix_authorization_replayed",
            payment_id=req.payment_id,
            gateway_payment_id=record.gateway_payment_id,
            status=record.status,
        )
        tid = record.gateway_payment_id
        if record.status == PaymentStatus.PAID:
            return AuthorizationResponse(
                payment_id=req.payment_id,
                status="approved",
                tid=tid,
                authorization_id=tid,
                code=str(record.status),
                message=describe(record.status),
            )
        if is_terminal(record.status):
            return self._deny(req, DenyCode.DENIED, describe(record.status), tid=tid)

        app_data = None
        outcome = await self.authorizations.get_outcome(req.payment_id)
        if outcome and outcome.get("payment_app_data"):
            app_data = PaymentAppData.model_validate(outcome["payment_app_data"])
        return self._pending(req, tid, app_data, code=str(record.status))

    def _pending(
        self,
        req: AuthorizationRequest,
        tid: str,
        app_data: Optional[PaymentAppData],
        *,
        code: str,
    ) -> AuthorizationResponse:
        return AuthorizationResponse(
            payment_id=req.payment_id,
            status="undefined",
            tid=tid,
            code=code,
            message=ResponseMessage.PIX_CREATED,
            payment_app_data=app_data,
            delay_to_cancel=self.delays.cancel_after_ms,
            delay_to_auto_settle=self.delays.auto_settle_ms,
            delay_to_auto_settle_after_antifraud=self.delays.auto_settle_after_antifraud_ms,
        )

    @staticmethod
    def _deny(
        req: AuthorizationRequest,
        code: str,
        message: str,
        *,
        tid: Optional[str] = None,
    ) -> AuthorizationResponse:
        return AuthorizationResponse(
            payment_id=req.payment_id,
            status="denied",
            tid=tid,
            code=code,
            message=message,
        )
