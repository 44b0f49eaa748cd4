"""
Gateway webhook reconciliation.

Writes are absolute overwrites keyed by payment id, so replays of the same
event converge on the same stored record. The status seen before a write is
read under the record lock, so a transition into Paid is forwarded once.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Optional

from application.dtos.payments import NotificationResult, OutboundSplitEvent, PixNotification
from application.ports.collaborators import Logger, StatusForwarder
from application.services.authorization_service import GatewayFactory
from application.services.merchant_config import MerchantConfigService
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    InvalidStatusTransitionException,
    PaymentNotFoundException,
)
from domain.payment.entity import PaymentRecord
from domain.payment.repository import PaymentStore
from domain.payment.status import PaymentStatus


class ChangeType(IntEnum):
    STATUS = 1
    FRAUD_ANALYSIS = 2
    CHARGEBACK = 3


class NotificationReconciler:
    def __init__(
        self,
        *,
        store: PaymentStore,
        logger: Logger,
        config: Optional[MerchantConfigService] = None,
        gateway_factory: Optional[GatewayFactory] = None,
        forwarder: Optional[StatusForwarder] = None,
        forward_url: Optional[str] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.gateway_factory = gateway_factory
        self.forwarder = forwarder
        self.forward_url = forward_url
        self.logger = logger

    async def handle(self, notification: PixNotification) -> NotificationResult:
        """
        Apply one webhook event.

        Raises:
            DomainValidationException: payment id or change type missing.
            PaymentNotFoundException: no stored record for the payment id.
            StorageException: the store could not be read or written.
        """
        if not notification.payment_id:
            raise DomainValidationException("PaymentId is required", field="PaymentId")
        if notification.change_type is None:
            raise DomainValidationException("ChangeType is required", field="ChangeType")

        payment_id = notification.payment_id
        record = await self.store.get(payment_id)
        if record is None:
            self.logger.warning("notification_payment_not_found", payment_id=payment_id)
            raise PaymentNotFoundException(payment_id)

        self.logger.info(
            "notification_received",
            payment_id=payment_id,
            change_type=notification.change_type,
            status=notification.status,
            stored_status=record.status,
        )

        if notification.change_type == ChangeType.STATUS:
            return await self._status_change(notification, record)
        if notification.change_type == ChangeType.FRAUD_ANALYSIS:
            updated = await self.store.update(record.gateway_payment_id, lambda r: r.touched())
            return NotificationResult(
                payment_id=payment_id,
                change_type=notification.change_type,
                handled=True,
                previous_status=record.status,
                status=updated.status,
            )
        if notification.change_type == ChangeType.CHARGEBACK:
            return await self._overwrite_status(notification, record)

        self.logger.warning(
            "notification_change_type_unknown",
            payment_id=payment_id,
            change_type=notification.change_type,
        )
        return NotificationResult(
            payment_id=payment_id,
            change_type=notification.change_type,
            handled=False,
            previous_status=record.status,
            status=record.status,
        )

    async def _status_change(self, notification: PixNotification, record: PaymentRecord) -> NotificationResult:
        result = await self._overwrite_status(notification, record)
        if result.handled and result.previous_status != PaymentStatus.PAID and result.status == PaymentStatus.PAID:
            result.forwarded = await self._forward_paid(record, notification)
        return result

    async def _overwrite_status(self, notification: PixNotification, record: PaymentRecord) -> NotificationResult:
        status, amount = await self._enrich(notification, record)
        base = dict(payment_id=notification.payment_id, change_type=notification.change_type)
        if status is None:
            self.logger.warning(
                "notification_status_unavailable",
                payment_id=notification.payment_id,
                change_type=notification.change_type,
            )
            return NotificationResult(**base, handled=False, previous_status=record.status, status=record.status)

        changes = {"amount": amount} if amount is not None else {}
        try:
            previous, updated = await self.store.transition(
                record.gateway_payment_id,
                lambda current: current.with_status(status, **changes),
            )
        except InvalidStatusTransitionException as exc:
            self.logger.info(
                "notification_terminal_status_ignored",
                payment_id=notification.payment_id,
                current=exc.current,
                requested=exc.requested,
            )
            return NotificationResult(**base, handled=False, previous_status=exc.current, status=exc.current)

        self.logger.info(
            "notification_status_updated",
            payment_id=notification.payment_id,
            gateway_payment_id=record.gateway_payment_id,
            previous_status=previous.status,
            status=updated.status,
            amount=updated.amount,
        )
        return NotificationResult(**base, handled=True, previous_status=previous.status, status=updated.status)

    async def _enrich(self, notification: PixNotification, record: PaymentRecord) -> tuple[Optional[int], Optional[int]]:
        """Fill a missing Status/Amount from the gateway; failures leave them unset."""
        status, amount = notification.status, notification.amount
        if (status is not None and amount is not None) or self.gateway_factory is None or self.config is None:
            return status, amount
        try:
            gateway = self.gateway_factory(self.config.from_env())
            result = await gateway.query_status(record.gateway_payment_id)
        except BusinessException as exc:
            self.logger.warning(
                "notification_enrichment_failed",
                payment_id=notification.payment_id,
                error=exc.message,
            )
            return status, amount
        return (
            status if status is not None else result.status,
            amount if amount is not None else result.amount,
        )

    async def _forward_paid(self, record: PaymentRecord, notification: PixNotification) -> bool:
        target = record.callback_url or self.forward_url
        if self.forwarder is None or not target:
            self.logger.info("notification_forward_skipped", payment_id=notification.payment_id)
            return False
        event = OutboundSplitEvent(
            payment_id=record.gateway_payment_id,
            platform_payment_id=record.platform_payment_id,
            merchant_order_id=notification.merchant_order_id or record.merchant_order_id,
            status=PaymentStatus.PAID,
            amount=notification.amount if notification.amount is not None else record.amount,
            callback_url=target,
        )
        try:
            await self.forwarder.forward_status_event(event)
        except Exception as exc:
            # The money already moved at the gateway; the event is still acknowledged.
            self.logger.error(
                "notification_forward_failed",
                payment_id=notification.payment_id,
                target=target,
                error=str(exc),
            )
            return False
        self.logger.info("notification_forwarded", payment_id=notification.payment_id, target=target)
        return True
