"""
Cancel, settle and refund operations on stored PIX payments.

None of these raise: every failure becomes a deny response carrying a
machine-readable code and a message.
"""
from __future__ import annotations

import time

from application.dtos.payments import (
    CancellationRequest,
    CancellationResponse,
    RefundRequest,
    RefundResponse,
    SettlementRequest,
    SettlementResponse,
    SplitFeed,
)
from application.ports.collaborators import Logger
from application.ports.payment_gateway import PaymentGateway
from application.services.authorization_service import GatewayFactory
from application.services.merchant_config import MerchantConfigService
from domain.common.exceptions import (
    BusinessException,
    InvalidStatusTransitionException,
    PaymentNotFoundException,
    StaleStatusException,
)
from domain.payment.entity import PaymentRecord
from domain.payment.repository import PaymentStore
from domain.payment.status import (
    CANCELLABLE_STATUSES,
    PaymentStatus,
    can_cancel,
    can_settle,
    describe,
    is_already_cancelled,
)
from infrastructure.external.payments.exceptions import (
    GatewayError,
    GatewayNotFoundError,
    SplitTransactionalError,
)
from shared.codes.payment_codes import DenyCode, GatewayReasonCode, ResponseMessage

_VOID_OK = frozenset({PaymentStatus.VOIDED, PaymentStatus.REFUNDED})
_MAX_CANCEL_ATTEMPTS = 3


class _Deny(Exception):
    """Internal short-circuit carrying a deny code/message."""

    def __init__(self, code: str, message: str, *, use_voucher_refund: bool = False):
        super().__init__(message)
        self.code = code
        self.message = message
        self.use_voucher_refund = use_voucher_refund


class PaymentOperationsService:
    def __init__(
        self,
        *,
        store: PaymentStore,
        config: MerchantConfigService,
        gateway_factory: GatewayFactory,
        logger: Logger,
    ) -> None:
        self.store = store
        self.config = config
        self.gateway_factory = gateway_factory
        self.logger = logger

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, req: CancellationRequest) -> CancellationResponse:
        started = time.perf_counter()
        try:
            record = await self._load_pix_record(req.payment_id, operation="cancel")
            gateway = self._gateway()
            current = await self._gateway_status(gateway, record, operation="cancel")
            self.logger.info(
                "pix_cancel_started",
                payment_id=req.payment_id,
                gateway_payment_id=record.gateway_payment_id,
                stored_status=record.status,
                gateway_status=current,
            )

            # A write rejected under the lock means the record moved after the
            # decision was taken; decide again on the status stored now.
            for attempt in range(1, _MAX_CANCEL_ATTEMPTS + 1):
                try:
                    return await self._cancel_with_status(req, gateway, record, current, started)
                except InvalidStatusTransitionException as exc:
                    self.logger.warning(
                        "pix_cancel_status_changed",
                        payment_id=req.payment_id,
                        decided_on=current,
                        stored_status=exc.current,
                        attempt=attempt,
                    )
                    record = await self._load_pix_record(req.payment_id, operation="cancel")
                    current = record.status
            raise _Deny(DenyCode.CONFLICT, ResponseMessage.PIX_STATUS_CHANGED)

        except _Deny as deny:
            self.logger.warning(
                "pix_cancel_denied",
                payment_id=req.payment_id,
                code=deny.code,
                reason=deny.message,
                use_voucher_refund=deny.use_voucher_refund,
                duration_ms=_elapsed_ms(started),
            )
            return CancellationResponse(
                payment_id=req.payment_id,
                status="denied",
                code=deny.code,
                message=deny.message,
                request_id=req.request_id,
                use_voucher_refund=deny.use_voucher_refund,
            )
        except BusinessException as exc:
            self.logger.error(
                "pix_cancel_failed",
                payment_id=req.payment_id,
                error=exc.message,
                error_type=exc.error_type,
                duration_ms=_elapsed_ms(started),
            )
            return CancellationResponse(
                payment_id=req.payment_id,
                status="denied",
                code=DenyCode.ERROR,
                message=f"PIX cancellation failed: {exc.message}",
                request_id=req.request_id,
            )

    async def _cancel_with_status(
        self,
        req: CancellationRequest,
        gateway: PaymentGateway,
        record: PaymentRecord,
        current: int,
        started: float,
    ) -> CancellationResponse:
        """
        Cancel decision for one observed status.

        Raises InvalidStatusTransitionException when the locked write finds a
        status other than the one the decision was based on.
        """
        if is_already_cancelled(current):
            message = (
                ResponseMessage.PIX_ALREADY_REFUNDED
                if current == PaymentStatus.REFUNDED
                else ResponseMessage.PIX_ALREADY_CANCELLED
            )
            self.logger.info("pix_cancel_already_cancelled", payment_id=req.payment_id, status=current)
            if current != record.status:
                await self._write_back_cancelled(record, current)
            return self._approve_cancel(req, record, code=str(current), message=message)

        if current == PaymentStatus.PAID:
            await self._void_paid(gateway, record)
            # The gateway already returned the money; any non-terminal stored status yields to it.
            await self.store.update_status(record.gateway_payment_id, PaymentStatus.REFUNDED)
            self.logger.info(
                "pix_cancel_refunded",
                payment_id=req.payment_id,
                gateway_payment_id=record.gateway_payment_id,
                duration_ms=_elapsed_ms(started),
            )
            return self._approve_cancel(
                req, record, code=str(int(PaymentStatus.REFUNDED)), message=ResponseMessage.PIX_REFUNDED
            )

        if can_cancel(current):
            # Nothing captured yet: voiding locally is enough, provided that still holds under the lock.
            await self.store.update_status(
                record.gateway_payment_id,
                PaymentStatus.VOIDED,
                expected=CANCELLABLE_STATUSES,
            )
            self.logger.info(
                "pix_cancel_voided",
                payment_id=req.payment_id,
                gateway_payment_id=record.gateway_payment_id,
                previous_status=current,
                duration_ms=_elapsed_ms(started),
            )
            return self._approve_cancel(
                req, record, code=str(int(PaymentStatus.VOIDED)), message=ResponseMessage.PIX_CANCELLED
            )

        raise _Deny(str(current), f"PIX payment cannot be cancelled. Status: {describe(current)}")

    async def _write_back_cancelled(self, record: PaymentRecord, gateway_status: int) -> None:
        try:
            await self.store.update_status(record.gateway_payment_id, gateway_status)
        except InvalidStatusTransitionException as exc:
            # Already cancelled at the gateway; a terminal stored status is left alone.
            self.logger.warning(
                "pix_cancel_write_back_skipped",
                gateway_payment_id=record.gateway_payment_id,
                stored_status=exc.current,
                gateway_status=gateway_status,
            )

    async def _void_paid(self, gateway: PaymentGateway, record: PaymentRecord) -> None:
        try:
            result = await gateway.void_payment(record.gateway_payment_id)
        except SplitTransactionalError as exc:
            self.logger.error(
                "pix_void_split_transactional_error",
                gateway_payment_id=record.gateway_payment_id,
                reason_code=exc.reason_code,
                error=exc.message,
            )
            raise _Deny(
                DenyCode.SPLIT_TRANSACTIONAL_ERROR,
                ResponseMessage.SPLIT_TRANSACTIONAL_ERROR,
                use_voucher_refund=True,
            ) from exc
        except GatewayError as exc:
            self.logger.error(
                "pix_void_failed",
                gateway_payment_id=record.gateway_payment_id,
                error=exc.message,
                error_type=exc.error_type,
            )
            raise _Deny(DenyCode.GATEWAY_ERROR, f"PIX void failed: {exc.message}") from exc

        if result.is_split_failure:
            self.logger.error(
                "pix_void_split_transactional_error",
                gateway_payment_id=record.gateway_payment_id,
                reason_code=result.reason_code,
                split_errors=result.split_errors,
            )
            raise _Deny(
                DenyCode.SPLIT_TRANSACTIONAL_ERROR,
                ResponseMessage.SPLIT_TRANSACTIONAL_ERROR,
                use_voucher_refund=True,
            )
        rejected = (
            result.status not in _VOID_OK
            if result.status is not None
            else result.reason_code not in (None, GatewayReasonCode.SUCCESSFUL)
        )
        if rejected:
            raise _Deny(
                DenyCode.DENIED,
                result.reason_message or f"PIX void rejected. Status: {describe(result.status)}",
            )

    def _approve_cancel(
        self,
        req: CancellationRequest,
        record: PaymentRecord,
        *,
        code: str,
        message: str,
    ) -> CancellationResponse:
        return CancellationResponse(
            payment_id=req.payment_id,
            status="approved",
            cancellation_id=record.gateway_payment_id,
            code=code,
            message=message,
            request_id=req.request_id,
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def settle(self, req: SettlementRequest) -> SettlementResponse:
        started = time.perf_counter()
        try:
            if not req.tid:
                raise _Deny(DenyCode.TID_REQUIRED, ResponseMessage.TID_REQUIRED)
            record = await self._load_pix_record(req.payment_id, operation="settle")
            current = await self._reconcile_for_settlement(record)

            if can_settle(current):
                self.logger.info(
                    "pix_settle_approved",
                    payment_id=req.payment_id,
                    gateway_payment_id=record.gateway_payment_id,
                    amount=record.amount,
                    split_count=len(record.split_payments),
                    duration_ms=_elapsed_ms(started),
                )
                return SettlementResponse(
                    payment_id=req.payment_id,
                    status="approved",
                    settle_id=record.gateway_payment_id,
                    value=req.value,
                    code=str(current),
                    message=ResponseMessage.PIX_SETTLED,
                    request_id=req.request_id,
                )
            raise _Deny(str(current), f"PIX payment cannot be settled. Status: {describe(current)}")

        except _Deny as deny:
            self.logger.warning(
                "pix_settle_denied",
                payment_id=req.payment_id,
                code=deny.code,
                reason=deny.message,
                duration_ms=_elapsed_ms(started),
            )
            return SettlementResponse(
                payment_id=req.payment_id,
                status="denied",
                value=req.value,
                code=deny.code,
                message=deny.message,
                request_id=req.request_id,
            )
        except BusinessException as exc:
            self.logger.error(
                "pix_settle_failed",
                payment_id=req.payment_id,
                error=exc.message,
                error_type=exc.error_type,
                duration_ms=_elapsed_ms(started),
            )
            return SettlementResponse(
                payment_id=req.payment_id,
                status="denied",
                value=req.value,
                code=DenyCode.ERROR,
                message=f"PIX settlement failed: {exc.message}",
                request_id=req.request_id,
            )

    async def _reconcile_for_settlement(self, record: PaymentRecord) -> int:
        """Best-effort gateway query; a differing gateway status is written back under both keys."""
        try:
            gateway = self._gateway()
            result = await gateway.query_status(record.gateway_payment_id)
        except BusinessException as exc:
            self.logger.warning(
                "pix_settle_query_failed",
                gateway_payment_id=record.gateway_payment_id,
                error=exc.message,
            )
            return record.status

        gateway_status = result.status
        if gateway_status is None or gateway_status == record.status:
            return record.status
        try:
            updated = await self.store.update_status(
                record.gateway_payment_id,
                gateway_status,
                expected={record.status},
            )
        except StaleStatusException as exc:
            # Another writer got there first; its status wins and is decided on.
            self.logger.warning(
                "pix_settle_status_changed",
                gateway_payment_id=record.gateway_payment_id,
                decided_on=record.status,
                stored_status=exc.current,
                gateway_status=gateway_status,
            )
            return exc.current
        except InvalidStatusTransitionException:
            self.logger.warning(
                "pix_settle_terminal_status_kept",
                gateway_payment_id=record.gateway_payment_id,
                stored_status=record.status,
                gateway_status=gateway_status,
            )
            return record.status
        self.logger.info(
            "pix_settle_status_reconciled",
            gateway_payment_id=record.gateway_payment_id,
            stored_status=record.status,
            gateway_status=gateway_status,
        )
        return updated.status

    # ------------------------------------------------------------------
    # Full refund
    # ------------------------------------------------------------------

    async def refund(self, req: RefundRequest) -> RefundResponse:
        started = time.perf_counter()
        try:
            record = await self._load_pix_record(req.payment_id, operation="refund")
            if record.status == PaymentStatus.REFUNDED:
                return self._refund_response(req, record, "approved", str(record.status), ResponseMessage.PIX_ALREADY_REFUNDED)
            if not can_settle(record.status):
                # Only captured money goes back through a gateway void.
                raise _Deny(str(record.status), f"PIX payment cannot be refunded. Status: {describe(record.status)}")
            gateway = self._gateway()
            await self._void_paid(gateway, record)
            await self.store.update_status(record.gateway_payment_id, PaymentStatus.REFUNDED)
            self.logger.info(
                "pix_refund_completed",
                payment_id=req.payment_id,
                gateway_payment_id=record.gateway_payment_id,
                duration_ms=_elapsed_ms(started),
            )
            return self._refund_response(
                req, record, "approved", str(int(PaymentStatus.REFUNDED)), ResponseMessage.PIX_REFUNDED
            )
        except _Deny as deny:
            self.logger.warning("pix_refund_denied", payment_id=req.payment_id, code=deny.code, reason=deny.message)
            return RefundResponse(
                payment_id=req.payment_id,
                status="denied",
                value=req.value,
                code=deny.code,
                message=deny.message,
                request_id=req.request_id,
            )
        except BusinessException as exc:
            self.logger.error("pix_refund_failed", payment_id=req.payment_id, error=exc.message)
            return RefundResponse(
                payment_id=req.payment_id,
                status="denied",
                value=req.value,
                code=DenyCode.ERROR,
                message=f"PIX refund failed: {exc.message}",
                request_id=req.request_id,
            )

    @staticmethod
    def _refund_response(
        req: RefundRequest,
        record: PaymentRecord,
        status: str,
        code: str,
        message: str,
    ) -> RefundResponse:
        return RefundResponse(
            payment_id=req.payment_id,
            status=status,
            refund_id=record.gateway_payment_id,
            value=req.value,
            code=code,
            message=message,
            request_id=req.request_id,
        )

    # ------------------------------------------------------------------
    # Split feed
    # ------------------------------------------------------------------

    async def get_splits(self, payment_id: str) -> SplitFeed:
        """Stored split entries; raises PaymentNotFoundException when absent."""
        record = await self.store.get(payment_id)
        if record is None:
            raise PaymentNotFoundException(payment_id)
        return SplitFeed(
            payment_id=record.gateway_payment_id,
            platform_payment_id=record.platform_payment_id,
            status=record.status,
            split_payments=record.splits_summary(),
            consultant_split_amount=record.consultant_split_amount,
            master_split_amount=record.master_split_amount,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _gateway(self) -> PaymentGateway:
        return self.gateway_factory(self.config.from_env())

    async def _load_pix_record(self, payment_id: str, *, operation: str) -> PaymentRecord:
        record = await self.store.get(payment_id)
        if record is None:
            self.logger.warning(
                f"pix_{operation}_payment_not_found",
                payment_id=payment_id,
                reason=PaymentNotFoundException.NOT_FOUND,
            )
            raise _Deny(DenyCode.NOT_FOUND, ResponseMessage.PIX_NOT_FOUND)
        if not record.is_pix:
            self.logger.warning(
                f"pix_{operation}_payment_not_found",
                payment_id=payment_id,
                reason=PaymentNotFoundException.WRONG_TYPE,
                payment_type=record.payment_type,
            )
            raise _Deny(DenyCode.WRONG_TYPE, ResponseMessage.PIX_WRONG_TYPE)
        return record

    async def _gateway_status(self, gateway: PaymentGateway, record: PaymentRecord, *, operation: str) -> int:
        """Current gateway status; a gateway 404 falls back to the stored status."""
        try:
            result = await gateway.query_status(record.gateway_payment_id)
        except GatewayNotFoundError:
            self.logger.warning(
                f"pix_{operation}_gateway_not_found",
                gateway_payment_id=record.gateway_payment_id,
                stored_status=record.status,
            )
            return record.status
        except GatewayError as exc:
            raise _Deny(DenyCode.GATEWAY_ERROR, f"PIX status query failed: {exc.message}") from exc
        return result.status if result.status is not None else record.status


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
