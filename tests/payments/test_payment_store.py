import asyncio
from dataclasses import replace

import pytest

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
    PaymentNotFoundException,
    StaleStatusException,
    StorageException,
)
from domain.payment.status import PaymentStatus
from fakes import YieldingStore, make_record


@pytest.mark.asyncio
async def test_save_writes_both_keys(store):
    record = make_record()
    await store.save(record)

    by_gateway = await store.get("gw-1")
    by_platform = await store.get("pay-1")
    assert by_gateway == by_platform
    assert by_gateway.split_payments == record.split_payments


@pytest.mark.asyncio
async def test_get_missing_returns_none(store):
    assert await store.get("nope") is None


@pytest.mark.asyncio
async def test_update_status_through_either_key_updates_both(store):
    await store.save(make_record())

    updated = await store.update_status("pay-1", PaymentStatus.PAID)

    assert updated.status == PaymentStatus.PAID
    assert (await store.get("gw-1")).status == PaymentStatus.PAID
    assert (await store.get("pay-1")).status == PaymentStatus.PAID
    assert updated.last_updated >= updated.created_at


@pytest.mark.asyncio
async def test_update_missing_raises_not_found(store):
    with pytest.raises(PaymentNotFoundException):
        await store.update_status("nope", PaymentStatus.PAID)


@pytest.mark.asyncio
async def test_terminal_record_rejects_new_status(store):
    await store.save(make_record(PaymentStatus.VOIDED))

    with pytest.raises(InvalidStatusTransitionException) as exc_info:
        await store.update_status("gw-1", PaymentStatus.PAID)

    assert exc_info.value.current == PaymentStatus.VOIDED
    assert (await store.get("pay-1")).status == PaymentStatus.VOIDED


@pytest.mark.asyncio
async def test_terminal_record_accepts_same_status(store):
    original = make_record(PaymentStatus.REFUNDED)
    await store.save(original)

    updated = await store.update_status("gw-1", PaymentStatus.REFUNDED)

    assert updated.status == PaymentStatus.REFUNDED
    assert updated.last_updated >= original.last_updated


@pytest.mark.asyncio
async def test_failed_mutator_writes_nothing(store):
    await store.save(make_record())

    def boom(record):
        raise DomainValidationException("nope")

    with pytest.raises(DomainValidationException):
        await store.update("gw-1", boom)
    assert (await store.get("gw-1")).status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_corrupt_document_raises_storage_error(store):
    await store.save(make_record())
    store._docs["gw-1"] = {"status": 1}

    with pytest.raises(StorageException):
        await store.get("gw-1")


@pytest.mark.asyncio
async def test_unknown_status_in_document_is_corrupt(store):
    await store.save(make_record())
    store._docs["pay-1"]["status"] = 99

    with pytest.raises(StorageException):
        await store.get("pay-1")


def test_record_without_distinct_platform_id_has_one_key():
    assert make_record(platform_payment_id=None).keys == ("gw-1",)
    assert make_record(platform_payment_id="gw-1").keys == ("gw-1",)
    assert make_record().keys == ("gw-1", "pay-1")


def test_record_rejects_negative_amount():
    with pytest.raises(DomainValidationException):
        make_record(amount=-1)


@pytest.mark.asyncio
async def test_authorization_outcome_roundtrip(authorizations):
    assert await authorizations.get_outcome("pay-1") is None
    await authorizations.save_outcome("pay-1", {"status": "undefined"})
    assert await authorizations.get_outcome("pay-1") == {"status": "undefined"}


@pytest.mark.asyncio
async def test_update_status_checks_expected_status_under_lock(store):
    await store.save(make_record(PaymentStatus.PENDING))
    await store.update_status("gw-1", PaymentStatus.PAID)

    with pytest.raises(StaleStatusException) as exc_info:
        await store.update_status("pay-1", PaymentStatus.VOIDED, expected={PaymentStatus.PENDING})

    assert exc_info.value.current == PaymentStatus.PAID
    assert (await store.get("pay-1")).status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_concurrent_updates_on_one_record_are_serialized():
    store = YieldingStore()
    await store.save(make_record(amount=100))

    def add_one(record):
        return replace(record, amount=record.amount + 1)

    await asyncio.gather(*(store.update(key, add_one) for key in ("gw-1", "pay-1", "gw-1", "pay-1")))

    assert (await store.get("gw-1")).amount == 104
    assert (await store.get("pay-1")).amount == 104


@pytest.mark.asyncio
async def test_transition_reports_status_read_under_lock():
    store = YieldingStore()
    await store.save(make_record(PaymentStatus.PENDING))

    results = await asyncio.gather(
        store.transition("gw-1", lambda r: r.with_status(PaymentStatus.PAID)),
        store.transition("pay-1", lambda r: r.with_status(PaymentStatus.PAID)),
    )

    assert sorted(before.status for before, _ in results) == [PaymentStatus.PENDING, PaymentStatus.PAID]
    assert all(after.status == PaymentStatus.PAID for _, after in results)
