import asyncio

import pytest

from application.dtos.payments import VoucherRefundRequest
from application.services.voucher_refund_service import ORDER_CANCEL_REASON, VoucherRefundService
from domain.common.exceptions import DomainValidationException, PaymentNotFoundException
from domain.payment.status import PaymentStatus
from fakes import FakeOrders, FakeVouchers, YieldingStore, make_record


def _request(value=5000):
    return VoucherRefundRequest.model_validate({"orderId": "order-1", "userId": "user-1", "refundValue": value})


@pytest.mark.asyncio
async def test_voucher_refund_issues_voucher_and_cancels_order(store, logger):
    await store.save(make_record(PaymentStatus.PAID))
    vouchers, orders = FakeVouchers(), FakeOrders()
    svc = VoucherRefundService(store=store, vouchers=vouchers, orders=orders, logger=logger)

    resp = await svc.refund("pay-1", _request())

    assert resp.success is True
    assert resp.gift_card_id == "gc-1"
    assert resp.redemption_code == "ABCD-1234"
    assert resp.refund_value == 5000
    assert vouchers.issued == [{"user_id": "user-1", "amount": 5000, "order_id": "order-1"}]
    assert orders.cancelled == [("order-1", ORDER_CANCEL_REASON)]
    assert (await store.get("gw-1")).status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_order_cancel_failure_does_not_undo_voucher(store, logger):
    await store.save(make_record(PaymentStatus.PAID))
    svc = VoucherRefundService(
        store=store, vouchers=FakeVouchers(), orders=FakeOrders(fail_cancel=True), logger=logger
    )

    resp = await svc.refund("pay-1", _request())

    assert resp.success is True
    assert (await store.get("pay-1")).status == PaymentStatus.REFUNDED
    assert "voucher_refund_order_cancel_failed" in logger.events("error")


@pytest.mark.asyncio
async def test_voucher_failure_propagates_and_keeps_status(store, logger):
    await store.save(make_record(PaymentStatus.PAID))
    svc = VoucherRefundService(store=store, vouchers=FakeVouchers(fail=True), logger=logger)

    with pytest.raises(RuntimeError):
        await svc.refund("pay-1", _request())
    assert (await store.get("gw-1")).status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_already_refunded_payment(store, logger):
    await store.save(make_record(PaymentStatus.REFUNDED))
    vouchers = FakeVouchers()
    svc = VoucherRefundService(store=store, vouchers=vouchers, logger=logger)

    resp = await svc.refund("pay-1", _request())

    assert resp.success is False
    assert vouchers.issued == []


@pytest.mark.parametrize("status", [PaymentStatus.DENIED, PaymentStatus.ABORTED, PaymentStatus.PENDING])
@pytest.mark.asyncio
async def test_unpaid_payment_gets_no_voucher(store, logger, status):
    await store.save(make_record(status))
    vouchers = FakeVouchers()
    svc = VoucherRefundService(store=store, vouchers=vouchers, logger=logger)

    resp = await svc.refund("pay-1", _request())

    assert resp.success is False
    assert vouchers.issued == []
    assert (await store.get("gw-1")).status == status
    assert "voucher_refund_not_paid" in logger.events("warning")


@pytest.mark.asyncio
async def test_concurrent_refunds_issue_one_voucher(logger):
    store = YieldingStore()
    await store.save(make_record(PaymentStatus.PAID))
    vouchers = FakeVouchers()
    svc = VoucherRefundService(store=store, vouchers=vouchers, logger=logger)

    results = await asyncio.gather(svc.refund("pay-1", _request()), svc.refund("gw-1", _request()))

    assert len(vouchers.issued) == 1
    assert sorted(r.success for r in results) == [False, True]
    assert (await store.get("pay-1")).status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_refund_above_amount_rejected(store, logger):
    await store.save(make_record(PaymentStatus.PAID, amount=1000))
    svc = VoucherRefundService(store=store, vouchers=FakeVouchers(), logger=logger)

    with pytest.raises(DomainValidationException):
        await svc.refund("pay-1", _request(5000))


@pytest.mark.asyncio
async def test_unknown_or_non_pix_payment(store, logger):
    await store.save(make_record(payment_type="boleto", gateway_payment_id="gw-2", platform_payment_id="pay-2"))
    svc = VoucherRefundService(store=store, vouchers=FakeVouchers(), logger=logger)

    with pytest.raises(PaymentNotFoundException):
        await svc.refund("missing", _request())
    with pytest.raises(PaymentNotFoundException) as exc_info:
        await svc.refund("pay-2", _request())
    assert exc_info.value.reason == PaymentNotFoundException.WRONG_TYPE


def test_refund_value_must_be_positive():
    with pytest.raises(ValueError):
        _request(0)
