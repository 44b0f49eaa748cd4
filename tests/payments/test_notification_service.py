import asyncio

import pytest

from application.dtos.payments import PixNotification, SaleResult
from application.services.merchant_config import MerchantConfigService
from application.services.notification_service import ChangeType, NotificationReconciler
from core.settings import GatewaySettings
from domain.common.exceptions import DomainValidationException, PaymentNotFoundException
from domain.payment.status import PaymentStatus
from fakes import FakeForwarder, YieldingStore, make_record
from infrastructure.external.payments.exceptions import GatewayError


def _reconciler(store, logger, *, forwarder=None, gateway=None, forward_url=None):
    kwargs = {}
    if gateway is not None:
        kwargs.update(
            config=MerchantConfigService(GatewaySettings(merchant_id="m", merchant_key="k"), logger),
            gateway_factory=lambda credentials: gateway,
        )
    return NotificationReconciler(store=store, logger=logger, forwarder=forwarder, forward_url=forward_url, **kwargs)


def _event(change_type=ChangeType.STATUS, status=2, amount=10000, payment_id="gw-1"):
    return PixNotification.model_validate(
        {"PaymentId": payment_id, "ChangeType": int(change_type), "Status": status, "Amount": amount}
    )


@pytest.mark.asyncio
async def test_status_change_updates_both_keys(store, logger):
    await store.save(make_record(PaymentStatus.PENDING, callback_url="https://platform.example/cb"))
    forwarder = FakeForwarder()

    result = await _reconciler(store, logger, forwarder=forwarder).handle(_event(amount=9990))

    assert result.handled is True
    assert result.previous_status == PaymentStatus.PENDING
    assert result.status == PaymentStatus.PAID
    assert result.forwarded is True
    for key in ("gw-1", "pay-1"):
        record = await store.get(key)
        assert record.status == PaymentStatus.PAID
        assert record.amount == 9990
    event = forwarder.events[0]
    assert event.callback_url == "https://platform.example/cb"
    assert event.platform_payment_id == "pay-1"
    assert event.status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_replayed_paid_event_forwards_once(store, logger):
    await store.save(make_record(PaymentStatus.PENDING))
    forwarder = FakeForwarder()
    reconciler = _reconciler(store, logger, forwarder=forwarder, forward_url="https://platform.example/hook")

    first = await reconciler.handle(_event())
    snapshot = await store.get("gw-1")
    second = await reconciler.handle(_event())

    assert first.forwarded is True
    assert second.handled is True
    assert second.forwarded is False
    assert len(forwarder.events) == 1
    replayed = await store.get("gw-1")
    assert replayed.status == snapshot.status
    assert replayed.amount == snapshot.amount


@pytest.mark.asyncio
async def test_concurrent_paid_deliveries_forward_once(logger):
    store = YieldingStore()
    await store.save(make_record(PaymentStatus.PENDING))
    forwarder = FakeForwarder()
    reconciler = _reconciler(store, logger, forwarder=forwarder, forward_url="https://platform.example/hook")

    results = await asyncio.gather(reconciler.handle(_event()), reconciler.handle(_event()))

    assert len(forwarder.events) == 1
    assert sorted(r.forwarded for r in results) == [False, True]
    assert sorted(r.previous_status for r in results) == [PaymentStatus.PENDING, PaymentStatus.PAID]


@pytest.mark.asyncio
async def test_forward_failure_still_acknowledged(store, logger):
    await store.save(make_record(PaymentStatus.PENDING))

    result = await _reconciler(
        store, logger, forwarder=FakeForwarder(fail=True), forward_url="https://platform.example/hook"
    ).handle(_event())

    assert result.handled is True
    assert result.forwarded is False
    assert (await store.get("pay-1")).status == PaymentStatus.PAID
    assert "notification_forward_failed" in logger.events("error")


@pytest.mark.asyncio
async def test_forward_skipped_without_target(store, logger):
    await store.save(make_record(PaymentStatus.PENDING))

    result = await _reconciler(store, logger, forwarder=FakeForwarder()).handle(_event())

    assert result.forwarded is False
    assert "notification_forward_skipped" in logger.events("info")


@pytest.mark.asyncio
async def test_terminal_record_is_not_overwritten(store, logger):
    await store.save(make_record(PaymentStatus.REFUNDED))

    result = await _reconciler(store, logger).handle(_event(status=2))

    assert result.handled is False
    assert result.status == PaymentStatus.REFUNDED
    assert (await store.get("gw-1")).status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_fraud_analysis_only_touches_record(store, logger):
    original = make_record(PaymentStatus.PENDING)
    await store.save(original)

    result = await _reconciler(store, logger).handle(_event(ChangeType.FRAUD_ANALYSIS, status=2))

    record = await store.get("gw-1")
    assert result.handled is True
    assert record.status == PaymentStatus.PENDING
    assert record.last_updated >= original.last_updated


@pytest.mark.asyncio
async def test_chargeback_overwrites_status_without_forwarding(store, logger):
    await store.save(make_record(PaymentStatus.PAID))
    forwarder = FakeForwarder()

    result = await _reconciler(store, logger, forwarder=forwarder, forward_url="https://x").handle(
        _event(ChangeType.CHARGEBACK, status=11)
    )

    assert result.handled is True
    assert (await store.get("pay-1")).status == PaymentStatus.REFUNDED
    assert forwarder.events == []


@pytest.mark.asyncio
async def test_unknown_change_type_is_acknowledged(store, logger):
    await store.save(make_record(PaymentStatus.PENDING))

    result = await _reconciler(store, logger).handle(_event(change_type=9))

    assert result.handled is False
    assert (await store.get("gw-1")).status == PaymentStatus.PENDING
    assert "notification_change_type_unknown" in logger.events("warning")


@pytest.mark.asyncio
async def test_missing_status_is_filled_from_gateway(store, logger, gateway):
    await store.save(make_record(PaymentStatus.PENDING))
    gateway.query_result = SaleResult(PaymentId="gw-1", Status=2, Amount=10000)

    result = await _reconciler(store, logger, gateway=gateway).handle(_event(status=None, amount=None))

    assert gateway.queries == ["gw-1"]
    assert result.status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_missing_status_and_failed_query_is_acknowledged(store, logger, gateway):
    await store.save(make_record(PaymentStatus.PENDING))
    gateway.query_error = GatewayError("boom")

    result = await _reconciler(store, logger, gateway=gateway).handle(_event(status=None, amount=None))

    assert result.handled is False
    assert (await store.get("gw-1")).status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_missing_payment_id_rejected(store, logger):
    with pytest.raises(DomainValidationException):
        await _reconciler(store, logger).handle(PixNotification.model_validate({"ChangeType": 1}))


@pytest.mark.asyncio
async def test_missing_change_type_rejected(store, logger):
    with pytest.raises(DomainValidationException):
        await _reconciler(store, logger).handle(PixNotification.model_validate({"PaymentId": "gw-1"}))


@pytest.mark.asyncio
async def test_unknown_payment_raises_not_found(store, logger):
    with pytest.raises(PaymentNotFoundException):
        await _reconciler(store, logger).handle(_event(payment_id="missing"))
