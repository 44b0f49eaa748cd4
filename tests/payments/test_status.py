import pytest

from domain.payment.status import (
    PaymentStatus,
    can_cancel,
    can_settle,
    describe,
    is_already_cancelled,
    is_terminal,
    status_info,
)


@pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.SCHEDULED])
def test_pending_and_scheduled_are_cancellable(status):
    assert can_cancel(status)
    assert not is_terminal(status)


@pytest.mark.parametrize(
    "status",
    [PaymentStatus.PAID, PaymentStatus.VOIDED, PaymentStatus.REFUNDED, PaymentStatus.ABORTED, PaymentStatus.DENIED],
)
def test_other_statuses_are_not_cancellable(status):
    assert not can_cancel(status)


def test_only_paid_can_settle():
    assert can_settle(PaymentStatus.PAID)
    assert [s for s in PaymentStatus if can_settle(s)] == [PaymentStatus.PAID]


def test_terminal_set():
    assert {s for s in PaymentStatus if is_terminal(s)} == {
        PaymentStatus.VOIDED,
        PaymentStatus.REFUNDED,
        PaymentStatus.ABORTED,
        PaymentStatus.DENIED,
    }
    assert is_already_cancelled(PaymentStatus.VOIDED)
    assert not is_already_cancelled(PaymentStatus.ABORTED)


def test_describe_known_and_unknown():
    assert describe(2) == "Paid"
    assert describe(99) == "Unknown(99)"


def test_status_info_for_pending():
    info = status_info(PaymentStatus.PENDING)
    assert info.can_cancel and info.is_pending
    assert not info.can_settle and not info.is_terminal
    assert info.description == "Pending"


@pytest.mark.parametrize("status", list(range(0, 25)))
def test_cancel_and_settle_are_mutually_exclusive(status):
    assert not (can_cancel(status) and can_settle(status))
